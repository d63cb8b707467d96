import logging
import random
import time
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ErrorKind, FleetLinkError, error_stage
from app.models.booking_model import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES
from app.models.vehicle_model import Vehicle, VehicleStatus
from app.schemas.vehicle import VehicleCreate
from app.services.availability_service import vehicle_booking_lock

logger = logging.getLogger("vehicles")

# Auto-generated numbers can collide within the same millisecond
MAX_REGISTRATION_ATTEMPTS = 3


def generate_registration_number() -> str:
    """
    Generate a registration number
    Format: FL-<epoch millis>-<0..999>
    Example: FL-1760745600123-417
    """
    return f"{settings.REGISTRATION_PREFIX}-{int(time.time() * 1000)}-{random.randint(0, 999)}"


def _registration_taken(db: Session, registration_number: str) -> bool:
    return db.query(Vehicle.id).filter(
        Vehicle.registration_number == registration_number
    ).first() is not None


def create_vehicle(db: Session, vehicle_data: VehicleCreate) -> Vehicle:
    """
    Register a new vehicle

    Args:
        db: Database session
        vehicle_data: Validated vehicle payload

    Returns:
        The persisted vehicle
    """
    explicit_number = (vehicle_data.registration_number or "").strip() or None
    attempts = 1 if explicit_number else MAX_REGISTRATION_ATTEMPTS

    for attempt in range(attempts):
        registration_number = explicit_number or generate_registration_number()
        vehicle = Vehicle(
            name=vehicle_data.name.strip(),
            capacity_kg=vehicle_data.capacity_kg,
            tyres=vehicle_data.tyres,
            status=vehicle_data.status,
            registration_number=registration_number,
        )
        db.add(vehicle)
        try:
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            if not _registration_taken(db, registration_number):
                raise FleetLinkError(ErrorKind.INTERNAL, f"Error creating vehicle: {exc.orig}") from exc
            if explicit_number or attempt == attempts - 1:
                raise FleetLinkError(
                    ErrorKind.DUPLICATE_REGISTRATION,
                    "Vehicle with this registration number already exists"
                ) from exc
            continue

        db.refresh(vehicle)
        logger.info("Vehicle created id=%s registration_number=%s", vehicle.id, vehicle.registration_number)
        return vehicle


def list_vehicles(
    db: Session,
    status: Optional[VehicleStatus] = None,
    min_capacity: Optional[int] = None
) -> List[Vehicle]:
    """List vehicles, newest first, optionally filtered by status and minimum capacity"""
    with error_stage("Error fetching vehicles"):
        query = db.query(Vehicle)

        if status is not None:
            query = query.filter(Vehicle.status == status)

        if min_capacity is not None:
            query = query.filter(Vehicle.capacity_kg >= min_capacity)

        return query.order_by(Vehicle.created_at.desc()).all()


def _load_vehicle(db: Session, vehicle_id: UUID) -> Vehicle:
    vehicle = db.query(Vehicle).filter(Vehicle.id == vehicle_id).first()
    if not vehicle:
        raise FleetLinkError(ErrorKind.NOT_FOUND, "Vehicle not found")
    return vehicle


def get_vehicle(db: Session, vehicle_id: UUID) -> Vehicle:
    with error_stage("Error fetching vehicle"):
        return _load_vehicle(db, vehicle_id)


def update_vehicle_status(db: Session, vehicle_id: UUID, status: VehicleStatus) -> Vehicle:
    """
    Update vehicle status

    The status value is validated at the HTTP boundary.
    """
    with error_stage("Error updating vehicle status"):
        vehicle = _load_vehicle(db, vehicle_id)
        vehicle.status = status
        db.commit()
        db.refresh(vehicle)
        logger.info("Vehicle status changed id=%s status=%s", vehicle.id, status.value)
        return vehicle


def retire_vehicle(db: Session, vehicle_id: UUID) -> Vehicle:
    """
    Soft delete a vehicle by marking it retired

    Vehicles with confirmed or in-progress bookings cannot be retired.
    Runs under the vehicle's booking lock so no booking lands between the
    check and the write.
    """
    with error_stage("Error deleting vehicle"), vehicle_booking_lock(vehicle_id):
        try:
            vehicle = db.query(Vehicle).filter(Vehicle.id == vehicle_id).with_for_update().first()
            if not vehicle:
                raise FleetLinkError(ErrorKind.NOT_FOUND, "Vehicle not found")

            active_bookings = db.query(Booking).filter(
                Booking.vehicle_id == vehicle.id,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES)
            ).count()

            if active_bookings > 0:
                raise FleetLinkError(
                    ErrorKind.HAS_ACTIVE_BOOKINGS,
                    "Cannot delete vehicle with active bookings"
                )

            vehicle.status = VehicleStatus.RETIRED
            db.commit()
        except (FleetLinkError, SQLAlchemyError):
            db.rollback()
            raise

        db.refresh(vehicle)
        logger.info("Vehicle retired id=%s", vehicle.id)
        return vehicle


def get_vehicle_utilization(
    db: Session,
    vehicle_id: UUID,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Calculate booking statistics for a vehicle

    Hours are summed over every fetched booking, cancelled ones included.

    Args:
        db: Database session
        vehicle_id: ID of the vehicle
        start_date: Only bookings created at or after this time
        end_date: Only bookings created at or before this time

    Returns:
        Dictionary with utilization statistics
    """
    with error_stage("Error calculating vehicle utilization"):
        vehicle = _load_vehicle(db, vehicle_id)

        query = db.query(Booking).filter(Booking.vehicle_id == vehicle.id)
        if start_date is not None:
            query = query.filter(Booking.created_at >= start_date)
        if end_date is not None:
            query = query.filter(Booking.created_at <= end_date)

        bookings = query.all()

        def count(status: BookingStatus) -> int:
            return len([b for b in bookings if b.status == status])

        total_hours = sum([b.estimated_ride_duration_hours or 0 for b in bookings])

        return {
            "vehicle_id": vehicle.id,
            "vehicle_name": vehicle.name,
            "total_bookings": len(bookings),
            "confirmed_bookings": count(BookingStatus.CONFIRMED),
            "in_progress_bookings": count(BookingStatus.IN_PROGRESS),
            "completed_bookings": count(BookingStatus.COMPLETED),
            "cancelled_bookings": count(BookingStatus.CANCELLED),
            "total_hours_booked": total_hours,
            "average_ride_duration": total_hours / len(bookings) if bookings else 0,
        }
