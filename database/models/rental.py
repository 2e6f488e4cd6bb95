from sqlalchemy import Column, Integer, String, DateTime, Date, Boolean, Enum, ForeignKey, Numeric, Text
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database.base import Base
import enum


class RentalType(enum.Enum):
    HOURLY = "hourly"           # Почасовая
    DAILY = "daily"             # Посуточная


class RentalStatus(enum.Enum):
    SCHEDULED = "scheduled"     # Запланирована
    ACTIVE = "active"           # Активная аренда
    COMPLETED = "completed"     # Завершена
    CANCELLED = "cancelled"     # Отменена


class PaymentStatus(enum.Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


class ApprovalStatus(enum.Enum):
    AUTO = "auto"               # Цена совпадает с расчетной
    PENDING = "pending"         # Ждет одобрения администратора
    APPROVED = "approved"       # Одобрена (admin/owner)


# Аренды в этих статусах занимают технику
BLOCKING_STATUSES = (RentalStatus.SCHEDULED, RentalStatus.ACTIVE)


class Rental(Base):
    __tablename__ = "rentals"

    id = Column(Integer, primary_key=True, index=True)

    # Связи
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Тип и статус аренды
    rental_type = Column(Enum(RentalType), nullable=False)
    status = Column(Enum(RentalStatus), default=RentalStatus.SCHEDULED, nullable=False)

    # Временные рамки
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)

    pickup_location = Column(String(255), default="Office", nullable=False)
    dropoff_location = Column(String(255), default="Office", nullable=False)
    transport_pickup = Column(Boolean, default=False, nullable=False)
    transport_dropoff = Column(Boolean, default=False, nullable=False)

    # Финансы
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    transport_fee = Column(Numeric(10, 2), default=0, nullable=False)
    total_amount = Column(Numeric(10, 2), nullable=False)
    deposit_amount = Column(Numeric(10, 2), default=0, nullable=False)
    remaining_amount = Column(Numeric(10, 2), default=0, nullable=False)
    damage_deposit = Column(Numeric(10, 2), default=0, nullable=False)
    damage_deposit_source = Column(String(100), nullable=True)
    payment_status = Column(Enum(PaymentStatus), default=PaymentStatus.UNPAID, nullable=False)

    # Одобрение ручной цены
    approval_status = Column(Enum(ApprovalStatus), default=ApprovalStatus.AUTO, nullable=False)
    pending_total_request = Column(Numeric(10, 2), nullable=True)

    notes = Column(Text, nullable=True)

    # Временные метки
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Связи
    customer = relationship("Customer", back_populates="rentals")
    vehicle = relationship("Vehicle", back_populates="rentals")

    def __repr__(self):
        return f"<Rental(id={self.id}, vehicle_id={self.vehicle_id}, status={self.status.value})>"

    @property
    def is_pending_approval(self) -> bool:
        return self.approval_status == ApprovalStatus.PENDING

    @property
    def is_paid(self) -> bool:
        return self.deposit_amount >= self.total_amount
