from sqlalchemy import Column, String, Float, ForeignKey, DateTime, Enum, CheckConstraint, Index
from sqlalchemy.orm import relationship, Session
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime
from typing import List, Optional
import enum
import uuid
from app.database import Base
from app.models.vehicle_model import utc_now

class BookingStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

# Statuses that hold a vehicle for their time window
ACTIVE_BOOKING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.IN_PROGRESS)

class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_bookings_end_after_start"),
        CheckConstraint("estimated_ride_duration_hours >= 0.1", name="ck_bookings_min_duration"),
        Index("ix_bookings_vehicle_window", "vehicle_id", "start_time", "end_time"),
        Index("ix_bookings_customer_created", "customer_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    vehicle_id = Column(UUID(as_uuid=True), ForeignKey("vehicles.id"), nullable=False)
    customer_id = Column(String, nullable=False)

    # Route
    from_pincode = Column(String(6), nullable=False)
    to_pincode = Column(String(6), nullable=False)

    # Reserved window
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    estimated_ride_duration_hours = Column(Float, nullable=False)

    status = Column(Enum(BookingStatus), default=BookingStatus.CONFIRMED, nullable=False, index=True)
    actual_start_time = Column(DateTime, nullable=True)
    actual_end_time = Column(DateTime, nullable=True)
    notes = Column(String(500), nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=utc_now)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)

    # Relationships
    vehicle = relationship("Vehicle", back_populates="bookings")

    @property
    def actual_duration_hours(self) -> Optional[float]:
        if self.actual_start_time and self.actual_end_time:
            return (self.actual_end_time - self.actual_start_time).total_seconds() / 3600
        return None

    @classmethod
    def find_overlapping(
        cls,
        db: Session,
        vehicle_id: uuid.UUID,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: Optional[uuid.UUID] = None,
    ) -> List["Booking"]:
        """
        Active bookings of a vehicle intersecting [start_time, end_time).

        Touching endpoints do not overlap.
        """
        query = db.query(cls).filter(
            cls.vehicle_id == vehicle_id,
            cls.status.in_(ACTIVE_BOOKING_STATUSES),
            cls.start_time < end_time,
            cls.end_time > start_time,
        )
        if exclude_booking_id is not None:
            query = query.filter(cls.id != exclude_booking_id)
        return query.all()
