from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime
from uuid import UUID

from app.database import get_db
from app.models.booking_model import BookingStatus
from app.schemas.booking import (
    BookingCreate,
    BookingRead,
    BookingStatusUpdate,
    BookingCancel,
    CustomerBookingsPage,
    BookingAnalytics,
)
from app.services.availability_service import create_booking
from app.services.booking_service import (
    get_booking,
    list_bookings,
    update_booking_status,
    cancel_booking,
    delete_booking,
    get_customer_bookings,
    get_booking_analytics,
)

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


def _clean(value: Optional[str]) -> Optional[str]:
    return value.strip() if isinstance(value, str) else value


@router.post("/", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def book_vehicle(
    booking_data: BookingCreate,
    db: Session = Depends(get_db)
):
    """
    Book a vehicle
    - The slot is checked again at booking time; 409 if it was taken meanwhile
    """
    return create_booking(
        db,
        vehicle_id=_clean(booking_data.vehicle_id),
        customer_id=_clean(booking_data.customer_id),
        from_pincode=_clean(booking_data.from_pincode),
        to_pincode=_clean(booking_data.to_pincode),
        start_time=_clean(booking_data.start_time),
    )


@router.get("/", response_model=List[BookingRead])
def bookings(
    customer_id: Optional[str] = Query(None),
    vehicle_id: Optional[UUID] = Query(None),
    status_filter: Optional[BookingStatus] = Query(None, alias="status", description="Filter by status"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db)
):
    return list_bookings(db, customer_id, vehicle_id, status_filter, start_date, end_date)


@router.get("/analytics", response_model=BookingAnalytics)
def booking_analytics(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db)
):
    return get_booking_analytics(db, start_date, end_date)


@router.get("/customer/{customer_id}", response_model=CustomerBookingsPage)
def customer_bookings(
    customer_id: str,
    limit: int = Query(10, ge=1, le=100),
    offset: int = Query(0, ge=0),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db)
):
    return get_customer_bookings(db, customer_id, limit=limit, offset=offset, status=status_filter)


@router.get("/{booking_id}", response_model=BookingRead)
def booking_detail(
    booking_id: UUID,
    db: Session = Depends(get_db)
):
    return get_booking(db, booking_id)


@router.patch("/{booking_id}/status", response_model=BookingRead)
def change_booking_status(
    booking_id: UUID,
    update_data: BookingStatusUpdate,
    db: Session = Depends(get_db)
):
    return update_booking_status(db, booking_id, update_data.status, notes=update_data.notes)


@router.patch("/{booking_id}/cancel", response_model=BookingRead)
def cancel(
    booking_id: UUID,
    cancel_data: Optional[BookingCancel] = None,
    db: Session = Depends(get_db)
):
    """
    Cancel a booking
    - Not allowed for completed or cancelled bookings
    - Not allowed within 2 hours of the start time
    """
    reason = cancel_data.reason if cancel_data else None
    return cancel_booking(db, booking_id, reason)


@router.delete("/{booking_id}")
def remove_booking(
    booking_id: UUID,
    db: Session = Depends(get_db)
):
    """Hard delete a cancelled booking"""
    delete_booking(db, booking_id)
    return {"success": True, "message": "Booking deleted successfully"}
