from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from uuid import UUID
from datetime import datetime
from typing import List, Optional

from app.database import get_db
from app.models.vehicle_model import VehicleStatus
from app.schemas.vehicle import (
    VehicleCreate,
    VehicleRead,
    VehicleStatusUpdate,
    AvailableVehicleRead,
    VehicleUtilization,
)
from app.services.vehicle_service import (
    create_vehicle,
    list_vehicles,
    get_vehicle,
    update_vehicle_status,
    retire_vehicle,
    get_vehicle_utilization,
)
from app.services.availability_service import find_available_vehicles

router = APIRouter(
    prefix="/api/vehicles",
    tags=["Vehicles"]
)


@router.post("/", response_model=VehicleRead, status_code=status.HTTP_201_CREATED)
def register_vehicle(
    vehicle_data: VehicleCreate,
    db: Session = Depends(get_db)
):
    """Register a new vehicle. A registration number is generated when none is given."""
    return create_vehicle(db, vehicle_data)


@router.get("/", response_model=List[VehicleRead])
def vehicles(
    status_filter: Optional[VehicleStatus] = Query(None, alias="status", description="Filter by status"),
    min_capacity: Optional[int] = Query(None, ge=1),
    db: Session = Depends(get_db)
):
    return list_vehicles(db, status=status_filter, min_capacity=min_capacity)


# ----------------------------------------
# Availability Search
# ----------------------------------------

@router.get("/available", response_model=List[AvailableVehicleRead])
def available_vehicles(
    capacity_required: Optional[int] = Query(None, ge=1),
    from_pincode: Optional[str] = Query(None),
    to_pincode: Optional[str] = Query(None),
    start_time: Optional[str] = Query(None, description="ISO-8601 start of the ride"),
    db: Session = Depends(get_db)
):
    """
    Find active vehicles with enough capacity that are free for the whole ride
    """
    return find_available_vehicles(
        db,
        capacity_required,
        from_pincode.strip() if from_pincode else from_pincode,
        to_pincode.strip() if to_pincode else to_pincode,
        start_time,
    )


@router.get("/{vehicle_id}", response_model=VehicleRead)
def vehicle_detail(
    vehicle_id: UUID,
    db: Session = Depends(get_db)
):
    return get_vehicle(db, vehicle_id)


# ----------------------------------------
# Vehicle Utilization
# ----------------------------------------

@router.get("/{vehicle_id}/utilization", response_model=VehicleUtilization)
def vehicle_utilization(
    vehicle_id: UUID,
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    db: Session = Depends(get_db)
):
    return get_vehicle_utilization(db, vehicle_id, start_date, end_date)


@router.patch("/{vehicle_id}/status", response_model=VehicleRead)
def change_vehicle_status(
    vehicle_id: UUID,
    update_data: VehicleStatusUpdate,
    db: Session = Depends(get_db)
):
    return update_vehicle_status(db, vehicle_id, update_data.status)


@router.delete("/{vehicle_id}", response_model=VehicleRead)
def delete_vehicle(
    vehicle_id: UUID,
    db: Session = Depends(get_db)
):
    """
    Retire a vehicle (soft delete)
    - Refused while the vehicle has confirmed or in-progress bookings
    """
    return retire_vehicle(db, vehicle_id)
