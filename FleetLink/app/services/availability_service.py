"""
Vehicle availability search and conflict-checked booking creation.

Booking creation for a given vehicle is serialized: an in-process lock per
vehicle id covers concurrent requests in the same worker, and the vehicle
row is read with ``SELECT ... FOR UPDATE`` so that separate workers on a
database that supports row locks queue behind each other as well. The
overlap re-check and the insert both happen inside that section.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Union
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.core.errors import ErrorKind, FleetLinkError, error_stage
from app.models.booking_model import Booking, BookingStatus
from app.models.vehicle_model import Vehicle, VehicleStatus, utc_now
from app.schemas.vehicle import VehicleRead
from app.services.route_estimator import (
    TimestampLike,
    estimate_duration,
    estimate_end_time,
    estimate_route,
    is_valid_pincode,
    parse_timestamp,
)

logger = logging.getLogger("availability")


class _VehicleLock:
    __slots__ = ("lock", "holders")

    def __init__(self):
        self.lock = threading.Lock()
        self.holders = 0


# Entries live only while some thread holds or waits for them
_vehicle_locks: Dict[str, _VehicleLock] = {}
_vehicle_locks_guard = threading.Lock()


@contextmanager
def vehicle_booking_lock(vehicle_id: Union[UUID, str]) -> Iterator[None]:
    """Hold the booking lock of one vehicle for the duration of the block."""
    key = str(vehicle_id)
    with _vehicle_locks_guard:
        entry = _vehicle_locks.get(key)
        if entry is None:
            entry = _vehicle_locks[key] = _VehicleLock()
        entry.holders += 1
    try:
        with entry.lock:
            yield
    finally:
        with _vehicle_locks_guard:
            entry.holders -= 1
            if entry.holders == 0:
                del _vehicle_locks[key]


def _missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def _validate_pincodes(from_pincode: str, to_pincode: str) -> None:
    if not is_valid_pincode(from_pincode) or not is_valid_pincode(to_pincode):
        raise FleetLinkError(
            ErrorKind.INVALID_PINCODE,
            "Invalid pincode format. Pincodes must be 6 digits."
        )


def _future_start(start_time: TimestampLike) -> datetime:
    start = parse_timestamp(start_time)
    if start <= utc_now():
        raise FleetLinkError(ErrorKind.PAST_START_TIME, "Start time must be in the future")
    return start


def find_available_vehicles(
    db: Session,
    capacity_required: Optional[int],
    from_pincode: Optional[str],
    to_pincode: Optional[str],
    start_time: Optional[TimestampLike],
) -> List[Dict[str, Any]]:
    """
    Find active vehicles with enough capacity and no booking in the window

    Args:
        db: Database session
        capacity_required: Minimum capacity in kg
        from_pincode: Source pincode
        to_pincode: Destination pincode
        start_time: Requested start of the ride

    Returns:
        Available vehicles, each with ride duration, route info and the
        search window attached
    """
    with error_stage("Error finding available vehicles"):
        if any(_missing(v) for v in (capacity_required, from_pincode, to_pincode, start_time)):
            raise FleetLinkError(ErrorKind.MISSING_CRITERIA, "All search criteria are required")

        _validate_pincodes(from_pincode, to_pincode)
        requested_start = _future_start(start_time)

        duration = estimate_duration(from_pincode, to_pincode)
        requested_end = estimate_end_time(requested_start, duration)

        candidates = db.query(Vehicle).filter(
            Vehicle.capacity_kg >= capacity_required,
            Vehicle.status == VehicleStatus.ACTIVE
        ).order_by(Vehicle.capacity_kg.asc(), Vehicle.created_at.desc()).all()

        if not candidates:
            return []

        available = []
        for vehicle in candidates:
            if Booking.find_overlapping(db, vehicle.id, requested_start, requested_end):
                continue

            available.append({
                **VehicleRead.model_validate(vehicle).model_dump(),
                "estimated_ride_duration_hours": duration,
                "route_info": estimate_route(from_pincode, to_pincode, vehicle.capacity_kg),
                "search_criteria": {
                    "from_pincode": from_pincode,
                    "to_pincode": to_pincode,
                    "requested_start_time": requested_start,
                    "requested_end_time": requested_end,
                },
            })

        logger.debug(
            "Availability search capacity=%s window=%s..%s candidates=%d available=%d",
            capacity_required, requested_start, requested_end, len(candidates), len(available)
        )
        return available


def _reserve(
    db: Session,
    vehicle_id: UUID,
    customer_id: str,
    from_pincode: str,
    to_pincode: str,
    start_time: TimestampLike,
) -> Booking:
    vehicle = db.query(Vehicle).filter(Vehicle.id == vehicle_id).with_for_update().first()
    if not vehicle:
        raise FleetLinkError(ErrorKind.NOT_FOUND, "Vehicle not found")

    if vehicle.status != VehicleStatus.ACTIVE:
        raise FleetLinkError(ErrorKind.VEHICLE_NOT_ACTIVE, "Vehicle is not available for booking")

    _validate_pincodes(from_pincode, to_pincode)
    booking_start = _future_start(start_time)

    duration = estimate_duration(from_pincode, to_pincode)
    booking_end = estimate_end_time(booking_start, duration)

    if Booking.find_overlapping(db, vehicle.id, booking_start, booking_end):
        logger.warning("Slot conflict vehicle=%s window=%s..%s", vehicle.id, booking_start, booking_end)
        raise FleetLinkError(
            ErrorKind.SLOT_UNAVAILABLE,
            "Vehicle is no longer available for the requested time slot"
        )

    booking = Booking(
        vehicle_id=vehicle.id,
        customer_id=customer_id.strip(),
        from_pincode=from_pincode,
        to_pincode=to_pincode,
        start_time=booking_start,
        end_time=booking_end,
        estimated_ride_duration_hours=duration,
        status=BookingStatus.CONFIRMED,
    )
    db.add(booking)
    db.commit()
    return booking


def create_booking(
    db: Session,
    vehicle_id: Optional[UUID],
    customer_id: Optional[str],
    from_pincode: Optional[str],
    to_pincode: Optional[str],
    start_time: Optional[TimestampLike],
) -> Booking:
    """
    Book a vehicle for the ride between two pincodes

    The overlap check is repeated here because the vehicle may have been
    booked since the caller searched for it.

    Returns:
        The confirmed booking with its vehicle loaded
    """
    with error_stage("Error creating booking"):
        if any(_missing(v) for v in (vehicle_id, customer_id, from_pincode, to_pincode, start_time)):
            raise FleetLinkError(ErrorKind.MISSING_FIELDS, "All booking fields are required")

        if not isinstance(vehicle_id, UUID):
            try:
                vehicle_id = UUID(str(vehicle_id))
            except ValueError as exc:
                raise FleetLinkError(ErrorKind.NOT_FOUND, "Vehicle not found") from exc

        with vehicle_booking_lock(vehicle_id):
            try:
                booking = _reserve(db, vehicle_id, customer_id, from_pincode, to_pincode, start_time)
            except (FleetLinkError, SQLAlchemyError):
                # release the row lock before the next waiter runs
                db.rollback()
                raise

        logger.info(
            "Booking created id=%s vehicle=%s customer=%s window=%s..%s",
            booking.id, vehicle_id, booking.customer_id, booking.start_time, booking.end_time
        )
        return db.query(Booking).options(joinedload(Booking.vehicle)).filter(Booking.id == booking.id).one()
