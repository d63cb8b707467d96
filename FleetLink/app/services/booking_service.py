import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import case, func
from sqlalchemy.orm import Session, joinedload

from app.core.config import settings
from app.core.errors import ErrorKind, FleetLinkError, error_stage
from app.models.booking_model import Booking, BookingStatus
from app.models.vehicle_model import utc_now

logger = logging.getLogger("bookings")


def _load_booking(db: Session, booking_id: UUID) -> Booking:
    booking = db.query(Booking).options(joinedload(Booking.vehicle)).filter(
        Booking.id == booking_id
    ).first()
    if not booking:
        raise FleetLinkError(ErrorKind.NOT_FOUND, "Booking not found")
    return booking


def get_booking(db: Session, booking_id: UUID) -> Booking:
    """Get a booking with its vehicle details"""
    with error_stage("Error fetching booking"):
        return _load_booking(db, booking_id)


def list_bookings(
    db: Session,
    customer_id: Optional[str] = None,
    vehicle_id: Optional[UUID] = None,
    status: Optional[BookingStatus] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None
) -> List[Booking]:
    """
    List bookings, newest first

    Args:
        db: Database session
        customer_id: Only bookings of this customer
        vehicle_id: Only bookings of this vehicle
        status: Only bookings in this status
        start_date: Only rides starting at or after this time
        end_date: Only rides starting at or before this time

    Returns:
        Matching bookings with vehicles loaded
    """
    with error_stage("Error fetching bookings"):
        query = db.query(Booking).options(joinedload(Booking.vehicle))

        if customer_id:
            query = query.filter(Booking.customer_id == customer_id)
        if vehicle_id:
            query = query.filter(Booking.vehicle_id == vehicle_id)
        if status:
            query = query.filter(Booking.status == status)
        if start_date:
            query = query.filter(Booking.start_time >= start_date)
        if end_date:
            query = query.filter(Booking.start_time <= end_date)

        return query.order_by(Booking.created_at.desc()).all()


def _apply_status(booking: Booking, status: BookingStatus, extra: Dict[str, Any]) -> None:
    booking.status = status

    # Update timestamps based on status
    if status == BookingStatus.IN_PROGRESS and not booking.actual_start_time:
        booking.actual_start_time = utc_now()
    elif status == BookingStatus.COMPLETED and not booking.actual_end_time:
        booking.actual_end_time = utc_now()

    for field, value in extra.items():
        if value is not None:
            setattr(booking, field, value)


def update_booking_status(
    db: Session,
    booking_id: UUID,
    status: BookingStatus,
    notes: Optional[str] = None
) -> Booking:
    """
    Move a booking to a new status

    Entering in-progress stamps actual_start_time and entering completed
    stamps actual_end_time, unless they are already set.
    """
    with error_stage("Error updating booking"):
        booking = _load_booking(db, booking_id)
        _apply_status(booking, status, {"notes": notes})
        db.commit()
        db.refresh(booking)
        logger.info("Booking status changed id=%s status=%s", booking.id, status.value)
        return booking


def cancel_booking(db: Session, booking_id: UUID, reason: Optional[str] = None) -> Booking:
    """
    Cancel a booking

    Completed or already cancelled bookings cannot be cancelled, nor can
    bookings starting within the cancellation window (2 hours by default).
    """
    with error_stage("Error cancelling booking"):
        booking = _load_booking(db, booking_id)

        if booking.status == BookingStatus.COMPLETED:
            raise FleetLinkError(ErrorKind.ALREADY_COMPLETED, "Cannot cancel completed booking")

        if booking.status == BookingStatus.CANCELLED:
            raise FleetLinkError(ErrorKind.ALREADY_CANCELLED, "Booking is already cancelled")

        window = timedelta(hours=settings.CANCELLATION_WINDOW_HOURS)
        if booking.start_time - utc_now() < window:
            raise FleetLinkError(
                ErrorKind.TOO_CLOSE_TO_START,
                f"Cannot cancel booking less than {settings.CANCELLATION_WINDOW_HOURS:g} hours before start time"
            )

        notes = f"Cancelled: {reason}" if reason else "Cancelled by user"
        _apply_status(booking, BookingStatus.CANCELLED, {"notes": notes[:500]})
        db.commit()
        db.refresh(booking)
        logger.info("Booking cancelled id=%s vehicle=%s", booking.id, booking.vehicle_id)
        return booking


def delete_booking(db: Session, booking_id: UUID) -> bool:
    """Hard delete a booking. Only cancelled bookings can be deleted."""
    with error_stage("Error deleting booking"):
        booking = _load_booking(db, booking_id)

        if booking.status != BookingStatus.CANCELLED:
            raise FleetLinkError(ErrorKind.NOT_CANCELLED, "Only cancelled bookings can be deleted")

        db.delete(booking)
        db.commit()
        logger.info("Booking deleted id=%s", booking_id)
        return True


def get_customer_bookings(
    db: Session,
    customer_id: str,
    limit: int = 10,
    offset: int = 0,
    status: Optional[BookingStatus] = None
) -> Dict[str, Any]:
    """
    Get a page of a customer's booking history

    Returns:
        Dictionary with the bookings, the total count and has_more
    """
    with error_stage("Error fetching customer bookings"):
        query = db.query(Booking).filter(Booking.customer_id == customer_id)
        if status:
            query = query.filter(Booking.status == status)

        total = query.count()
        bookings = query.options(joinedload(Booking.vehicle)).order_by(
            Booking.created_at.desc()
        ).offset(offset).limit(limit).all()

        return {
            "bookings": bookings,
            "total": total,
            "limit": limit,
            "offset": offset,
            "has_more": (offset + limit) < total,
        }


def get_booking_analytics(
    db: Session,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None
) -> Dict[str, Any]:
    """
    Aggregate booking counts and ride hours

    Args:
        db: Database session
        start_date: Only bookings created at or after this time
        end_date: Only bookings created at or before this time

    Returns:
        Dictionary with counts per status, total and average hours
    """
    def status_count(status: BookingStatus):
        return func.coalesce(func.sum(case((Booking.status == status, 1), else_=0)), 0)

    with error_stage("Error fetching booking analytics"):
        query = db.query(
            func.count(Booking.id),
            status_count(BookingStatus.CONFIRMED),
            status_count(BookingStatus.IN_PROGRESS),
            status_count(BookingStatus.COMPLETED),
            status_count(BookingStatus.CANCELLED),
            func.coalesce(func.sum(Booking.estimated_ride_duration_hours), 0),
            func.coalesce(func.avg(Booking.estimated_ride_duration_hours), 0),
        )
        if start_date:
            query = query.filter(Booking.created_at >= start_date)
        if end_date:
            query = query.filter(Booking.created_at <= end_date)

        total, confirmed, in_progress, completed, cancelled, total_hours, average = query.one()

        return {
            "total_bookings": int(total or 0),
            "confirmed_bookings": int(confirmed or 0),
            "in_progress_bookings": int(in_progress or 0),
            "completed_bookings": int(completed or 0),
            "cancelled_bookings": int(cancelled or 0),
            "total_hours": float(total_hours or 0),
            "average_duration": float(average or 0),
        }
