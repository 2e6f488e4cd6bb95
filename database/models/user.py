from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Boolean, Enum
from sqlalchemy.sql import func
from database.base import Base
import enum


class UserRole(enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    EMPLOYEE = "employee"
    GUIDE = "guide"


# Роли, чьи ручные цены требуют одобрения
STAFF_ROLES = frozenset({UserRole.EMPLOYEE.value, UserRole.GUIDE.value})
# Роли, которые одобряют ручные цены
APPROVER_ROLES = frozenset({UserRole.OWNER.value, UserRole.ADMIN.value})


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    telegram_id = Column(BigInteger, unique=True, nullable=False, index=True)
    username = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=False)
    phone = Column(String(20), nullable=True)

    role = Column(Enum(UserRole), default=UserRole.EMPLOYEE, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Уведомления о запросах на одобрение цены
    notifications_enabled = Column(Boolean, default=True, nullable=False)

    # Временные метки
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<User(id={self.id}, telegram_id={self.telegram_id}, role={self.role.value})>"

    @property
    def is_approver(self) -> bool:
        return self.role.value in APPROVER_ROLES

    @property
    def is_staff(self) -> bool:
        """Сотрудник (employee/guide), цены которого проходят одобрение"""
        return self.role.value in STAFF_ROLES

    @property
    def can_book_rentals(self) -> bool:
        return self.is_active and (self.is_staff or self.is_approver)
