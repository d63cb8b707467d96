from __future__ import annotations
from typing import Optional
from uuid import UUID
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from app.models.vehicle_model import VehicleStatus, VehicleType
from app.schemas.route import RouteInfo


class VehicleBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    capacity_kg: int = Field(..., ge=1, le=50000)
    tyres: int = Field(..., ge=2, le=18)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Vehicle name is required")
        return value


class VehicleCreate(VehicleBase):
    registration_number: Optional[str] = Field(None, max_length=50)
    status: VehicleStatus = VehicleStatus.ACTIVE


class VehicleStatusUpdate(BaseModel):
    status: VehicleStatus


class VehicleRead(VehicleBase):
    id: UUID
    registration_number: str
    status: VehicleStatus
    vehicle_type: VehicleType
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class SearchCriteria(BaseModel):
    from_pincode: str
    to_pincode: str
    requested_start_time: datetime
    requested_end_time: datetime


class AvailableVehicleRead(VehicleRead):
    estimated_ride_duration_hours: float
    route_info: RouteInfo
    search_criteria: SearchCriteria


class VehicleUtilization(BaseModel):
    vehicle_id: UUID
    vehicle_name: str
    total_bookings: int
    confirmed_bookings: int
    in_progress_bookings: int
    completed_bookings: int
    cancelled_bookings: int
    total_hours_booked: float
    average_ride_duration: float
