from sqlalchemy import Column, Integer, String, DateTime, Boolean, Numeric, JSON
from sqlalchemy.sql import func
from database.base import Base


class SystemSettings(Base):
    __tablename__ = "system_settings"

    id = Column(Integer, primary_key=True, index=True)

    company_name = Column(String(255), default="Rental Desk", nullable=False)

    # Доставка техники клиенту и забор обратно
    transport_pickup_fee = Column(Numeric(10, 2), default=0, nullable=False)
    transport_dropoff_fee = Column(Numeric(10, 2), default=0, nullable=False)

    # Залог за повреждения: {"<vehicle_model_id>": [{"label", "amount", "enabled"}]}
    damage_deposit_presets = Column(JSON, default=dict, nullable=False)
    allow_custom_deposit = Column(Boolean, default=True, nullable=False)

    # Временные метки
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<SystemSettings(id={self.id}, company={self.company_name})>"
