"""
Распознавание документов клиента (паспорт / ID / права) через внешний OCR API.

Распознанные поля только дополняют форму: значение, которое сотрудник уже
ввел руками, OCR не перезаписывает.
"""
import asyncio
from typing import Any, Dict, FrozenSet, Optional

import aiohttp
from loguru import logger
from pydantic import BaseModel, Field

from config.settings import settings
from services.errors import OCRError, OCRTimeoutError


SOURCE_USER = "user"
SOURCE_OCR = "ocr"

# Ключ ответа OCR -> поле черновика
OCR_FIELD_MAP = {
    "full_name": "customer_name",
    "phone": "customer_phone",
    "email": "customer_email",
    "licence_number": "customer_licence_number",
    "document_number": "customer_id_number",
    "id_number": "customer_id_number",
    "date_of_birth": "customer_dob",
    "place_of_birth": "customer_place_of_birth",
    "nationality": "customer_nationality",
    "issue_date": "customer_issue_date",
    "id_scan_url": "customer_id_image",
}

_CONFIDENCE_KEYS = ("confidence", "confidence_estimate")


class OCRResult(BaseModel):
    confidence: float = 0.0
    fields: Dict[str, Any] = Field(default_factory=dict)


def parse_ocr_response(data: Dict[str, Any]) -> OCRResult:
    """Ответ бывает вида {"confidence", "fields": {...}} или плоским"""
    confidence = next((data[k] for k in _CONFIDENCE_KEYS if data.get(k) is not None), 0.0)
    fields = data.get("fields")
    if not isinstance(fields, dict):
        fields = {k: v for k, v in data.items() if k not in _CONFIDENCE_KEYS}
    try:
        confidence = float(confidence)
    except (TypeError, ValueError):
        confidence = 0.0
    return OCRResult(confidence=confidence, fields=fields)


def merge_field(current: Any, incoming: Any, source: str, user_edited: bool = False) -> Any:
    """
    Единое правило слияния: ввод пользователя всегда главнее OCR.
    Пустое входящее значение ничего не меняет.
    """
    if source == SOURCE_USER:
        return incoming
    if user_edited:
        return current
    if incoming is None or (isinstance(incoming, str) and not incoming.strip()):
        return current
    return incoming.strip() if isinstance(incoming, str) else incoming


def merge_ocr_fields(
    current: Dict[str, Any],
    result: OCRResult,
    edited_fields: FrozenSet[str] = frozenset(),
    threshold: float = 0.8,
) -> Dict[str, Any]:
    """Обновления для черновика; пусто, если уверенность ниже порога"""
    if result.confidence < threshold:
        logger.warning(f"⚠️ OCR уверенность {result.confidence:.2f} ниже порога {threshold}, поля не применены")
        return {}

    updates: Dict[str, Any] = {}
    for key, value in result.fields.items():
        target = OCR_FIELD_MAP.get(key, key)
        if target not in current:
            continue
        merged = merge_field(current[target], value, SOURCE_OCR, target in edited_fields)
        if merged != current[target]:
            updates[target] = merged

    logger.info(f"📄 OCR заполнил поля: {sorted(updates)}")
    return updates


class OCRService:
    """Клиент OCR API"""

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_url = api_url if api_url is not None else settings.ocr_api_url
        self.api_key = api_key if api_key is not None else settings.ocr_api_key
        self.timeout = timeout if timeout is not None else settings.ocr_timeout

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(self, image: bytes, filename: str) -> Dict[str, Any]:
        form = aiohttp.FormData()
        form.add_field("file", image, filename=filename, content_type="image/jpeg")

        async with aiohttp.ClientSession() as session:
            async with session.post(self.api_url, data=form, headers=self._get_headers()) as response:
                response_text = await response.text()
                logger.debug(f"OCR response: {response.status}")
                if response.status != 200:
                    raise OCRError(f"OCR service returned {response.status}: {response_text[:200]}")
                return await response.json(content_type=None)

    async def extract_fields(self, image: bytes, filename: str = "document.jpg") -> OCRResult:
        """
        Распознать документ.

        Raises:
            OCRTimeoutError: ответ не пришел за self.timeout секунд
            OCRError: сервис не настроен, вернул ошибку или не JSON
        """
        if not self.api_url:
            raise OCRError("OCR service is not configured")
        if not image:
            raise OCRError("Empty image")

        logger.info(f"📷 Отправка документа на OCR ({len(image)} байт)")
        try:
            data = await asyncio.wait_for(self._request(image, filename), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise OCRTimeoutError(f"OCR timed out after {self.timeout:g}s") from e
        except aiohttp.ClientError as e:
            raise OCRError(f"OCR request failed: {e}") from e
        except ValueError as e:
            # 200 с HTML-страницей шлюза вместо JSON
            raise OCRError("Unexpected OCR response") from e

        if not isinstance(data, dict):
            raise OCRError("Unexpected OCR response")
        result = parse_ocr_response(data)
        logger.info(f"✅ OCR готов, уверенность {result.confidence:.2f}")
        return result
