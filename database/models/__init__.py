from .user import User, UserRole
from .vehicle import Vehicle, VehicleModel, VehicleStatus
from .customer import Customer
from .rental import Rental, RentalType, RentalStatus, PaymentStatus, ApprovalStatus
from .settings import SystemSettings

__all__ = [
    "User", "UserRole",
    "Vehicle", "VehicleModel", "VehicleStatus",
    "Customer",
    "Rental", "RentalType", "RentalStatus", "PaymentStatus", "ApprovalStatus",
    "SystemSettings"
]
