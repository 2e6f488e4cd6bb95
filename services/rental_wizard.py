"""
Мастер оформления аренды: держит черновик, загружает справочники,
распознает документы и отправляет готовую аренду в хранилище.

Один мастер = один черновик. Одновременно идет не больше одной отправки.
После reset() результаты запросов, начатых раньше, отбрасываются.
"""
import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional

from loguru import logger

from config.settings import settings
from database.models.rental import ApprovalStatus, Rental
from services.customer_service import CustomerService, customer_data_from_draft
from services.errors import (
    DraftValidationError,
    OCRError,
    RentalConflictError,
    RentalNotFoundError,
    SubmissionTimeoutError,
)
from services.ocr_service import OCRService
from services.rental_draft import (
    ApplyScan,
    EditField,
    PricingContext,
    RentalDraft,
    TransportFees,
    VehicleRates,
    recompute,
    reduce,
    validate_draft,
    validate_step,
)
from services.rental_pricing import ApprovalDecision, derive_approval, derive_financials
from services.rental_service import RentalService, payload_from_draft
from services.settings_service import DamageDepositConfig, SettingsService
from services.vehicle_service import VehicleService


CONFLICT_PREFIX = "Vehicle Scheduling Conflict: "


@dataclass
class SubmissionResult:
    rental: Rental
    approval_status: ApprovalStatus
    notified_count: int
    message: str


class RentalWizard:
    """Оформление одной аренды сотрудником"""

    def __init__(
        self,
        user_role: Optional[str],
        user_id: Optional[int] = None,
        notifier=None,
        ocr: Optional[OCRService] = None,
        draft: Optional[RentalDraft] = None,
        context: Optional[PricingContext] = None,
        submission_timeout: Optional[float] = None,
        requested_by: Optional[str] = None,
    ):
        self.user_role = user_role
        self.user_id = user_id
        self.requested_by = requested_by
        self.notifier = notifier
        self.ocr = ocr or OCRService()
        self.draft = draft or RentalDraft()
        self.context = context or PricingContext(ocr_confidence_threshold=settings.ocr_confidence_threshold)
        self.submission_timeout = submission_timeout or settings.submission_timeout

        self.vehicles: List[VehicleRates] = list(self.context.vehicles.values())
        self.errors: Dict[str, str] = {}
        self.ocr_error: Optional[str] = None

        self._generation = 0
        self._submitting = False
        self._submitted: Optional[Rental] = None
        self._scan_task: Optional[asyncio.Task] = None
        self._scan_cancelled = False

    @classmethod
    async def for_rental(cls, rental_id: int, user_role: Optional[str], **kwargs) -> "RentalWizard":
        """Мастер в режиме редактирования сохраненной аренды"""
        rental = await RentalService.get_rental(rental_id)
        if rental is None:
            raise RentalNotFoundError(f"Rental {rental_id} not found")

        # Техника аренды может быть уже занята и не попасть в список доступной
        context = kwargs.pop("context", None) or PricingContext(
            ocr_confidence_threshold=settings.ocr_confidence_threshold
        )
        vehicle = await VehicleService.get_vehicle(rental.vehicle_id)
        auto_unit_price = None
        if vehicle is not None:
            vehicles = dict(context.vehicles)
            vehicles[vehicle.id] = VehicleService.to_rates(vehicle)
            context = context.model_copy(update={"vehicles": vehicles})
            auto_unit_price = VehicleService.unit_price_for(vehicle, rental.rental_type)

        draft = RentalDraft.from_rental(rental, auto_unit_price=auto_unit_price)
        return cls(user_role, draft=draft, context=context, **kwargs)

    @property
    def is_edit_mode(self) -> bool:
        return self.draft.rental_id is not None

    @property
    def is_submitting(self) -> bool:
        return self._submitting

    @property
    def is_submitted(self) -> bool:
        return self._submitted is not None

    @property
    def is_scanning(self) -> bool:
        return self._scan_task is not None and not self._scan_task.done()

    # ==================== СПРАВОЧНИКИ ====================

    async def _load_vehicles(self) -> List[VehicleRates]:
        try:
            vehicles = await VehicleService.list_available_vehicles()
            return [VehicleService.to_rates(v) for v in vehicles]
        except Exception as e:
            logger.error(f"❌ Ошибка загрузки техники: {e}")
            return []

    async def _load_transport_fees(self) -> TransportFees:
        try:
            return await SettingsService.get_transport_fees()
        except Exception as e:
            logger.error(f"❌ Ошибка загрузки стоимости транспорта: {e}")
            return TransportFees()

    async def _load_deposit_config(self) -> DamageDepositConfig:
        try:
            return await SettingsService.get_damage_deposit_presets()
        except Exception as e:
            logger.error(f"❌ Ошибка загрузки пресетов залога: {e}")
            return DamageDepositConfig()

    async def load_reference_data(self) -> bool:
        """
        Загрузить технику, стоимость транспорта и пресеты залога.
        Каждая ошибка гасится отдельно: форма работает с пустыми данными.
        """
        generation = self._generation
        vehicles, fees, deposits = await asyncio.gather(
            self._load_vehicles(),
            self._load_transport_fees(),
            self._load_deposit_config(),
        )
        if generation != self._generation:
            logger.info("🗑️ Справочники загружены после сброса формы, результат отброшен")
            return False

        # В режиме редактирования текущая техника может быть уже не "available"
        rates = {v.vehicle_id: v for v in vehicles}
        for vehicle_id, known in self.context.vehicles.items():
            rates.setdefault(vehicle_id, known)

        self.vehicles = vehicles
        self.context = self.context.model_copy(update={
            "vehicles": rates,
            "transport_fees": fees,
            "deposit_presets": deposits.presets,
            "allow_custom_deposit": deposits.allow_custom_deposit,
        })
        self.draft = recompute(self.draft, self.context, previous=self.draft)
        logger.info(f"📋 Справочники загружены: техники {len(vehicles)}")
        return True

    # ==================== ДЕЙСТВИЯ ====================

    def dispatch(self, action: Any) -> RentalDraft:
        self.draft = reduce(self.draft, action, self.context)
        if isinstance(action, EditField):
            self.errors.pop(action.field, None)
        return self.draft

    def validate_step(self, step: int) -> bool:
        self.errors = validate_step(self.draft, step)
        return not self.errors

    def preview_approval(self) -> ApprovalDecision:
        """Что произойдет с ценой при сохранении под текущей ролью"""
        draft = self.draft
        decision = derive_approval(
            draft.unit_price,
            draft.auto_unit_price,
            self.user_role,
            draft.quantity,
            draft.transport_fee,
            settings.price_override_tolerance,
        )

        # Одобренная ранее цена остается одобренной, пока ее не меняют
        if (
            draft.approval_status == ApprovalStatus.APPROVED
            and draft.approved_unit_price is not None
            and draft.unit_price == draft.approved_unit_price
            and decision.approval_status != ApprovalStatus.APPROVED
        ):
            total = derive_financials(draft.quantity, draft.unit_price, draft.transport_fee, 0).total_amount
            return ApprovalDecision(ApprovalStatus.APPROVED, None, total, draft.unit_price)
        return decision

    # ==================== OCR ====================

    async def scan_document(self, image: bytes, filename: str = "document.jpg") -> bool:
        """
        Распознать документ и дополнить черновик.

        Returns:
            True, если поля применены к черновику
        """
        if self.is_scanning:
            logger.warning("⚠️ OCR уже выполняется")
            return False

        generation = self._generation
        self.ocr_error = None
        self._scan_cancelled = False
        self._scan_task = asyncio.ensure_future(self.ocr.extract_fields(image, filename))
        try:
            result = await self._scan_task
        except asyncio.CancelledError:
            if not self._scan_cancelled:
                raise
            logger.info("🛑 Распознавание отменено пользователем")
            return False
        except OCRError as e:
            self.ocr_error = str(e)
            logger.error(f"❌ Ошибка OCR: {e}")
            return False
        finally:
            self._scan_task = None

        if generation != self._generation:
            logger.info("🗑️ OCR завершился после сброса формы, результат отброшен")
            return False

        before = self.draft
        self.dispatch(ApplyScan(result))
        return self.draft != before

    def cancel_scan(self) -> bool:
        if not self.is_scanning:
            return False
        self._scan_cancelled = True
        self._scan_task.cancel()
        return True

    def dismiss_ocr_error(self) -> None:
        self.ocr_error = None

    # ==================== ОТПРАВКА ====================

    @staticmethod
    async def _resolve_customer(draft: RentalDraft) -> int:
        if draft.customer_id:
            return draft.customer_id
        customer = await CustomerService.upsert_customer(customer_data_from_draft(draft))
        return customer.id

    async def _persist(self, draft: RentalDraft, decision: ApprovalDecision) -> Rental:
        # Работаем со снимком: reset() во время отправки не меняет сохраняемые данные
        customer_id = await self._resolve_customer(draft)
        payload = payload_from_draft(draft, decision, customer_id, self.user_id)
        if draft.rental_id is not None:
            payload.pop("created_by")
            return await RentalService.update_rental(draft.rental_id, payload)
        return await RentalService.create_rental(payload)

    async def _notify(self, pending_total: Decimal, rental: Rental) -> int:
        if self.notifier is None:
            logger.warning("⚠️ Уведомления не настроены, запрос на одобрение только сохранен")
            return 0
        try:
            return await self.notifier.notify_approvers(
                pending_total, str(rental.id), self.requested_by or "Employee"
            )
        except Exception as e:
            logger.error(f"❌ Ошибка отправки уведомлений: {e}")
            return 0

    async def submit(self) -> Optional[SubmissionResult]:
        """
        Сохранить аренду.

        Returns:
            None, если отправка уже идет, уже завершена или форму сбросили
            во время отправки.

        Raises:
            DraftValidationError, RentalConflictError, SubmissionTimeoutError
            и ошибки хранилища; текст для пользователя лежит в self.errors
        """
        if self._submitted is not None:
            logger.warning("⚠️ Аренда уже сохранена, повторная отправка проигнорирована")
            return None
        if self._submitting:
            logger.warning("⚠️ Отправка уже выполняется, повтор проигнорирован")
            return None

        self._submitting = True
        self.errors = {}
        generation = self._generation
        draft = self.draft
        was_edit = draft.rental_id is not None
        previous_request = draft.pending_total_request if draft.approval_status == ApprovalStatus.PENDING else None
        try:
            errors = validate_draft(draft)
            if errors:
                raise DraftValidationError(errors)

            decision = self.preview_approval()
            rental = await asyncio.wait_for(self._persist(draft, decision), timeout=self.submission_timeout)

        except DraftValidationError as e:
            self.errors = dict(e.errors)
            raise
        except asyncio.TimeoutError as e:
            self.errors = {"general": f"Saving timed out after {self.submission_timeout:g}s"}
            logger.error(f"❌ Хранилище не ответило за {self.submission_timeout}s")
            raise SubmissionTimeoutError(self.errors["general"]) from e
        except RentalConflictError as e:
            self.errors = {"general": f"{CONFLICT_PREFIX}{e}"}
            logger.warning(f"🚫 Конфликт расписания: {e}")
            raise
        except Exception as e:
            self.errors = {"general": str(e) or "An unexpected error occurred"}
            logger.error(f"❌ Ошибка сохранения аренды: {e}")
            raise
        finally:
            self._submitting = False

        if generation != self._generation:
            logger.warning(f"🗑️ Аренда #{rental.id} сохранена после сброса формы, результат отброшен")
            return None

        self._submitted = rental
        self.draft = self.draft.model_copy(update={
            "rental_id": rental.id,
            "customer_id": rental.customer_id,
            "approval_status": decision.approval_status,
            "pending_total_request": decision.pending_total_request,
            "approved_unit_price": decision.effective_unit_price
            if decision.approval_status == ApprovalStatus.APPROVED else None,
        })

        message = f"Rental successfully {'updated' if was_edit else 'created'}!"
        notified = 0
        if decision.approval_status == ApprovalStatus.PENDING:
            message += " Price override submitted for admin approval."
            if decision.pending_total_request != previous_request:
                notified = await self._notify(decision.pending_total_request, rental)
            else:
                logger.info(f"⏳ Запрос на одобрение аренды #{rental.id} не изменился, повторно не отправлен")

        return SubmissionResult(
            rental=rental,
            approval_status=decision.approval_status,
            notified_count=notified,
            message=message,
        )

    # ==================== СБРОС ====================

    def reset(self) -> None:
        """Очистить форму; незавершенные запросы больше не влияют на нее"""
        self._generation += 1
        self.cancel_scan()
        self.draft = RentalDraft()
        self.errors = {}
        self.ocr_error = None
        self._submitted = None
