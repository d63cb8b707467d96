from .vehicle_model import Vehicle, VehicleStatus, VehicleType
from .booking_model import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES

__all__ = [
    "Vehicle",
    "VehicleStatus",
    "VehicleType",
    "Booking",
    "BookingStatus",
    "ACTIVE_BOOKING_STATUSES",
]
