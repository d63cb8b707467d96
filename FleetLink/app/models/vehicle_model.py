from sqlalchemy import Column, Integer, String, DateTime, Enum, CheckConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from sqlalchemy.dialects.postgresql import UUID
import enum
from app.database import Base
import uuid


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class VehicleStatus(str, enum.Enum):
    ACTIVE = "active"
    MAINTENANCE = "maintenance"
    RETIRED = "retired"

class VehicleType(str, enum.Enum):
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"

class Vehicle(Base):
    __tablename__ = "vehicles"
    __table_args__ = (
        CheckConstraint("capacity_kg >= 1 AND capacity_kg <= 50000", name="ck_vehicles_capacity_range"),
        CheckConstraint("tyres >= 2 AND tyres <= 18", name="ck_vehicles_tyres_range"),
    )
    
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(100), nullable=False)
    capacity_kg = Column(Integer, nullable=False, index=True)  # Maximum weight capacity
    tyres = Column(Integer, nullable=False)
    status = Column(Enum(VehicleStatus), default=VehicleStatus.ACTIVE, nullable=False, index=True)
    registration_number = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
    
    # Relationships
    bookings = relationship("Booking", back_populates="vehicle")

    @property
    def vehicle_type(self) -> VehicleType:
        if self.capacity_kg <= 1000:
            return VehicleType.LIGHT
        if self.capacity_kg <= 5000:
            return VehicleType.MEDIUM
        return VehicleType.HEAVY

    def __repr__(self):
        return f"<Vehicle(id={self.id}, registration_number={self.registration_number}, status={self.status})>"
