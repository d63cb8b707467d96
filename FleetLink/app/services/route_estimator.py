import math
import re
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Union

from app.core.errors import ErrorKind, FleetLinkError, error_stage

# Average speed in km/h used to turn duration into distance
AVERAGE_SPEED_KMH = 50

# Pricing (in currency units)
BASE_FARE = 500
PER_KM_RATE = 10
CAPACITY_UNIT_KG = 1000

MIN_DURATION_HOURS = 0.5

_PINCODE_RE = re.compile(r"[0-9]{6}")

TimestampLike = Union[datetime, str]


def round_half_up(value: Union[int, float, Decimal]) -> int:
    """Round to the nearest whole number, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def is_valid_pincode(pincode: Any) -> bool:
    """
    Validate pincode format

    Only a string of exactly 6 ASCII digits is accepted; numbers are
    rejected even when they have 6 digits.
    """
    return isinstance(pincode, str) and _PINCODE_RE.fullmatch(pincode) is not None


def _to_millis(value: datetime) -> datetime:
    return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def parse_timestamp(value: TimestampLike) -> datetime:
    """
    Parse a timestamp into a naive UTC datetime with millisecond precision

    Args:
        value: datetime or ISO-8601 string (a trailing "Z" is accepted)

    Returns:
        Naive datetime in UTC
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith(("Z", "z")):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            raise FleetLinkError(ErrorKind.INVALID_TIME_FORMAT, "Invalid start time format")
    else:
        raise FleetLinkError(ErrorKind.INVALID_TIME_FORMAT, "Invalid start time format")

    if parsed.tzinfo is not None:
        try:
            parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
        except OverflowError:
            raise FleetLinkError(ErrorKind.INVALID_TIME_FORMAT, "Start time is out of range")
    return _to_millis(parsed)


def estimate_duration(from_pincode: str, to_pincode: str) -> float:
    """
    Estimate ride duration in hours from two pincodes

    Placeholder formula: abs(to - from) % 24, never below 0.5 hours.

    Args:
        from_pincode: Source pincode (6 digits)
        to_pincode: Destination pincode (6 digits)

    Returns:
        Estimated duration in hours
    """
    with error_stage("Error calculating ride duration"):
        if not is_valid_pincode(from_pincode) or not is_valid_pincode(to_pincode):
            raise FleetLinkError(
                ErrorKind.INVALID_PINCODE,
                "Invalid pincode format. Pincodes must be 6 digits."
            )

        duration = abs(int(to_pincode) - int(from_pincode)) % 24
        return float(max(duration, MIN_DURATION_HOURS))


def estimate_end_time(start_time: TimestampLike, duration_hours: float) -> datetime:
    """
    Calculate end time based on start time and duration

    Args:
        start_time: Start time
        duration_hours: Duration in hours, must be positive

    Returns:
        End time at millisecond precision
    """
    with error_stage("Error calculating end time"):
        start = parse_timestamp(start_time)

        if (
            isinstance(duration_hours, bool)
            or not isinstance(duration_hours, (int, float))
            or not math.isfinite(duration_hours)
            or duration_hours <= 0
        ):
            raise FleetLinkError(ErrorKind.INVALID_DURATION, "Duration must be a positive number")

        try:
            end = start + timedelta(hours=duration_hours)
        except OverflowError:
            raise FleetLinkError(ErrorKind.INVALID_TIME_FORMAT, "End time is out of range")
        return _to_millis(end)


def estimate_distance(from_pincode: str, to_pincode: str) -> int:
    """
    Estimate distance in kilometers
    Assumes average speed of 50 km/h

    Args:
        from_pincode: Source pincode
        to_pincode: Destination pincode

    Returns:
        Estimated distance in kilometers
    """
    with error_stage("Error calculating distance"):
        duration = estimate_duration(from_pincode, to_pincode)
        return round_half_up(duration * AVERAGE_SPEED_KMH)


def estimate_route(from_pincode: str, to_pincode: str, capacity_kg: float = 1000) -> Dict[str, Any]:
    """
    Get route information including duration, distance, and estimated cost

    Pricing Structure:
    - Base fare: 500
    - 10 per km
    - Capacity multiplier: capacity_kg / 1000, never below 1x

    Args:
        from_pincode: Source pincode
        to_pincode: Destination pincode
        capacity_kg: Vehicle capacity used for the cost multiplier

    Returns:
        Dictionary with route information
    """
    with error_stage("Error getting route info"):
        duration = estimate_duration(from_pincode, to_pincode)
        distance = estimate_distance(from_pincode, to_pincode)

        capacity_multiplier = max(1, capacity_kg / CAPACITY_UNIT_KG)
        cost = round_half_up(BASE_FARE + distance * PER_KM_RATE * capacity_multiplier)

        return {
            "from_pincode": from_pincode,
            "to_pincode": to_pincode,
            "duration_hours": duration,
            "distance_km": distance,
            "cost": cost,
            "route_label": f"{from_pincode} → {to_pincode}",
        }
