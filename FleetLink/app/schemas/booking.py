from __future__ import annotations
from typing import List, Optional
from uuid import UUID
from datetime import datetime
from pydantic import BaseModel, Field

from app.models.booking_model import BookingStatus
from app.schemas.vehicle import VehicleRead


class BookingCreate(BaseModel):
    # Presence and format are checked by the booking engine so that each
    # failure reports its own error kind
    vehicle_id: Optional[str] = None
    customer_id: Optional[str] = None
    from_pincode: Optional[str] = None
    to_pincode: Optional[str] = None
    start_time: Optional[str] = None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus
    notes: Optional[str] = Field(None, max_length=500)


class BookingCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=480)


class BookingRead(BaseModel):
    id: UUID
    vehicle_id: UUID
    customer_id: str
    from_pincode: str
    to_pincode: str
    start_time: datetime
    end_time: datetime
    estimated_ride_duration_hours: float
    status: BookingStatus
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None
    actual_duration_hours: Optional[float] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    vehicle: Optional[VehicleRead] = None

    model_config = {"from_attributes": True}


class CustomerBookingsPage(BaseModel):
    bookings: List[BookingRead]
    total: int
    limit: int
    offset: int
    has_more: bool


class BookingAnalytics(BaseModel):
    total_bookings: int
    confirmed_bookings: int
    in_progress_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    total_hours: float
    average_duration: float
