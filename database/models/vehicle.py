from sqlalchemy import Column, Integer, String, DateTime, Enum, ForeignKey, Numeric
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database.base import Base
import enum


class VehicleStatus(enum.Enum):
    AVAILABLE = "available"      # Доступен
    RENTED = "rented"            # В аренде
    MAINTENANCE = "maintenance"  # На обслуживании
    OUT_OF_SERVICE = "out_of_service"


class VehicleModel(Base):
    __tablename__ = "vehicle_models"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, nullable=False)

    vehicles = relationship("Vehicle", back_populates="model")

    def __repr__(self):
        return f"<VehicleModel(id={self.id}, name={self.name})>"


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    plate_number = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    model_id = Column(Integer, ForeignKey("vehicle_models.id"), nullable=True)

    status = Column(Enum(VehicleStatus), default=VehicleStatus.AVAILABLE, nullable=False)

    # Тарифы
    hourly_rate = Column(Numeric(10, 2), nullable=False, default=0)
    daily_rate = Column(Numeric(10, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    model = relationship("VehicleModel", back_populates="vehicles")
    rentals = relationship("Rental", back_populates="vehicle")

    def __repr__(self):
        return f"<Vehicle(id={self.id}, plate={self.plate_number}, status={self.status.value})>"

    @property
    def is_available(self) -> bool:
        return self.status == VehicleStatus.AVAILABLE
