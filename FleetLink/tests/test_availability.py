import threading
import time
import uuid
from datetime import timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.errors import ErrorKind, FleetLinkError
from app.models.booking_model import Booking, BookingStatus
from app.models.vehicle_model import VehicleStatus, utc_now
from app.schemas.vehicle import VehicleCreate
from app.services import availability_service, vehicle_service
from app.services.availability_service import create_booking, find_available_vehicles


def _search(db, capacity, start, from_pincode="110001", to_pincode="110003"):
    return find_available_vehicles(db, capacity, from_pincode, to_pincode, start)


def _book(db, vehicle_id, start, from_pincode="110001", to_pincode="110003", customer_id="customer-1"):
    return create_booking(
        db,
        vehicle_id=vehicle_id,
        customer_id=customer_id,
        from_pincode=from_pincode,
        to_pincode=to_pincode,
        start_time=start,
    )


def test_search_filters_by_capacity(db, make_vehicle):
    vehicle_a = make_vehicle(name="A", capacity_kg=1000)
    vehicle_b = make_vehicle(name="B", capacity_kg=2000)
    start = utc_now() + timedelta(hours=24)

    assert [v["id"] for v in _search(db, 1500, start)] == [vehicle_b.id]
    assert {v["id"] for v in _search(db, 500, start)} == {vehicle_a.id, vehicle_b.id}


def test_search_skips_inactive_vehicles(db, make_vehicle):
    vehicle = make_vehicle()
    vehicle_service.update_vehicle_status(db, vehicle.id, VehicleStatus.MAINTENANCE)
    assert _search(db, 500, utc_now() + timedelta(hours=24)) == []


def test_search_result_is_enriched(db, make_vehicle):
    make_vehicle(capacity_kg=2000)
    start = utc_now() + timedelta(hours=24)

    [result] = _search(db, 500, start, "110001", "110005")
    assert result["estimated_ride_duration_hours"] == 4
    assert result["route_info"]["distance_km"] == 200
    assert result["route_info"]["cost"] == 4500
    criteria = result["search_criteria"]
    assert criteria["requested_end_time"] - criteria["requested_start_time"] == timedelta(hours=4)


def test_search_validates_criteria(db):
    start = utc_now() + timedelta(hours=24)

    with pytest.raises(FleetLinkError) as exc_info:
        find_available_vehicles(db, None, "110001", "110002", start)
    assert exc_info.value.kind == ErrorKind.MISSING_CRITERIA
    assert exc_info.value.message.startswith("Error finding available vehicles:")

    with pytest.raises(FleetLinkError) as exc_info:
        _search(db, 500, start, "11000", "110002")
    assert exc_info.value.kind == ErrorKind.INVALID_PINCODE

    with pytest.raises(FleetLinkError) as exc_info:
        _search(db, 500, "tomorrow")
    assert exc_info.value.kind == ErrorKind.INVALID_TIME_FORMAT

    with pytest.raises(FleetLinkError) as exc_info:
        _search(db, 500, utc_now() - timedelta(minutes=1))
    assert exc_info.value.kind == ErrorKind.PAST_START_TIME


def test_overlapping_window_excluded_and_touching_window_allowed(db, make_vehicle):
    vehicle = make_vehicle()
    start = utc_now() + timedelta(hours=24)
    booking = _book(db, vehicle.id, start)  # 2 hour ride
    assert booking.end_time - booking.start_time == timedelta(hours=2)

    for offset in (timedelta(hours=-1), timedelta(0), timedelta(hours=1), timedelta(minutes=119)):
        assert _search(db, 500, booking.start_time + offset) == []
        with pytest.raises(FleetLinkError) as exc_info:
            _book(db, vehicle.id, booking.start_time + offset)
        assert exc_info.value.kind == ErrorKind.SLOT_UNAVAILABLE

    touching = booking.end_time
    assert [v["id"] for v in _search(db, 500, touching)] == [vehicle.id]
    assert _book(db, vehicle.id, touching).status == BookingStatus.CONFIRMED


def test_cancelled_booking_frees_the_slot(db, make_vehicle):
    vehicle = make_vehicle()
    start = utc_now() + timedelta(hours=24)
    booking = _book(db, vehicle.id, start)
    booking.status = BookingStatus.CANCELLED
    db.commit()

    assert [v["id"] for v in _search(db, 500, start)] == [vehicle.id]


def test_find_overlapping_excludes_given_booking(db, make_vehicle):
    vehicle = make_vehicle()
    booking = _book(db, vehicle.id, utc_now() + timedelta(hours=24))

    found = Booking.find_overlapping(db, vehicle.id, booking.start_time, booking.end_time)
    assert [b.id for b in found] == [booking.id]
    assert Booking.find_overlapping(
        db, vehicle.id, booking.start_time, booking.end_time, exclude_booking_id=booking.id
    ) == []


def test_create_booking_validations(db, make_vehicle):
    vehicle = make_vehicle()
    start = utc_now() + timedelta(hours=24)

    with pytest.raises(FleetLinkError) as exc_info:
        _book(db, vehicle.id, start, customer_id="  ")
    assert exc_info.value.kind == ErrorKind.MISSING_FIELDS
    assert exc_info.value.message == "Error creating booking: All booking fields are required"

    with pytest.raises(FleetLinkError) as exc_info:
        _book(db, uuid.uuid4(), start)
    assert exc_info.value.kind == ErrorKind.NOT_FOUND

    with pytest.raises(FleetLinkError) as exc_info:
        _book(db, "not-a-uuid", start)
    assert exc_info.value.kind == ErrorKind.NOT_FOUND

    with pytest.raises(FleetLinkError) as exc_info:
        _book(db, vehicle.id, start, to_pincode="1100022")
    assert exc_info.value.kind == ErrorKind.INVALID_PINCODE

    with pytest.raises(FleetLinkError) as exc_info:
        _book(db, vehicle.id, "31/12/2030")
    assert exc_info.value.kind == ErrorKind.INVALID_TIME_FORMAT

    with pytest.raises(FleetLinkError) as exc_info:
        _book(db, vehicle.id, utc_now())
    assert exc_info.value.kind == ErrorKind.PAST_START_TIME

    vehicle_service.update_vehicle_status(db, vehicle.id, VehicleStatus.MAINTENANCE)
    with pytest.raises(FleetLinkError) as exc_info:
        _book(db, vehicle.id, start)
    assert exc_info.value.kind == ErrorKind.VEHICLE_NOT_ACTIVE

    assert db.query(Booking).count() == 0


def test_end_to_end_search_then_book(db):
    vehicle = vehicle_service.create_vehicle(db, VehicleCreate(name="Tata Ace", capacity_kg=1000, tyres=4))
    start = (utc_now() + timedelta(hours=24)).isoformat() + "Z"

    results = find_available_vehicles(db, 500, "110001", "110002", start)
    assert len(results) == 1
    assert results[0]["id"] == vehicle.id
    assert results[0]["estimated_ride_duration_hours"] == 1

    booking = _book(db, vehicle.id, start, "110001", "110002")
    assert booking.status == "confirmed"
    assert booking.end_time == booking.start_time + timedelta(hours=1)
    assert booking.vehicle.id == vehicle.id
    assert booking.vehicle.name == "Tata Ace"

    with pytest.raises(FleetLinkError) as exc_info:
        _book(db, vehicle.id, start, "110001", "110002")
    assert exc_info.value.kind == ErrorKind.SLOT_UNAVAILABLE
    assert exc_info.value.message == (
        "Error creating booking: Vehicle is no longer available for the requested time slot"
    )


def test_concurrent_bookings_for_same_slot_are_serialized(file_session_factory, monkeypatch):
    setup = file_session_factory()
    vehicle = vehicle_service.create_vehicle(setup, VehicleCreate(name="Van", capacity_kg=1000, tyres=4))
    vehicle_id = vehicle.id
    setup.close()

    # Widen the gap between the overlap check and the insert
    original = Booking.find_overlapping.__func__

    def slow_find_overlapping(cls, *args, **kwargs):
        found = original(cls, *args, **kwargs)
        time.sleep(0.2)
        return found

    monkeypatch.setattr(Booking, "find_overlapping", classmethod(slow_find_overlapping))

    start = utc_now() + timedelta(hours=24)
    outcomes = []
    outcomes_lock = threading.Lock()

    def attempt(customer_id):
        session = file_session_factory()
        try:
            _book(session, vehicle_id, start, customer_id=customer_id)
            result = "booked"
        except FleetLinkError as exc:
            result = exc.kind
        finally:
            session.close()
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(f"customer-{i}",)) for i in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert sorted(outcomes, key=str) == sorted(["booked", ErrorKind.SLOT_UNAVAILABLE], key=str)

    check = file_session_factory()
    try:
        assert check.query(Booking).filter(Booking.vehicle_id == vehicle_id).count() == 1
    finally:
        check.close()


def test_far_future_start_is_a_time_format_error(db, make_vehicle):
    vehicle = make_vehicle()

    with pytest.raises(FleetLinkError) as exc_info:
        _search(db, 500, "9999-12-31T23:00:00", "110001", "110023")
    assert exc_info.value.kind == ErrorKind.INVALID_TIME_FORMAT
    assert exc_info.value.message.startswith("Error finding available vehicles:")

    with pytest.raises(FleetLinkError) as exc_info:
        _book(db, vehicle.id, "9999-12-31T23:00:00Z", "110001", "110023")
    assert exc_info.value.kind == ErrorKind.INVALID_TIME_FORMAT
    assert db.query(Booking).count() == 0


def test_booking_locks_are_released(db, make_vehicle):
    start = utc_now() + timedelta(hours=24)
    for _ in range(20):
        with pytest.raises(FleetLinkError):
            _book(db, uuid.uuid4(), start)
    assert availability_service._vehicle_locks == {}

    vehicle = make_vehicle()
    _book(db, vehicle.id, start)
    with pytest.raises(FleetLinkError):
        _book(db, vehicle.id, start)
    assert availability_service._vehicle_locks == {}


def test_commit_failure_is_internal_and_rolled_back(db, make_vehicle, monkeypatch):
    vehicle = make_vehicle()

    def failing_commit():
        raise IntegrityError("INSERT INTO bookings", {}, Exception("FOREIGN KEY constraint failed"))

    monkeypatch.setattr(db, "commit", failing_commit)
    with pytest.raises(FleetLinkError) as exc_info:
        _book(db, vehicle.id, utc_now() + timedelta(hours=24))
    assert exc_info.value.kind == ErrorKind.INTERNAL
    assert exc_info.value.status_code == 500

    monkeypatch.undo()
    assert db.query(Booking).count() == 0
