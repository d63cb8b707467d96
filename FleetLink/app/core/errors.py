"""
Error types shared by the FleetLink services and the HTTP layer.

Services raise :class:`FleetLinkError` with an :class:`ErrorKind`; the
exception handler in ``app.main`` maps the kind to an HTTP status code.
"""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import SQLAlchemyError


class ErrorKind(str, enum.Enum):
    INVALID_PINCODE = "InvalidPincode"
    INVALID_TIME_FORMAT = "InvalidTimeFormat"
    PAST_START_TIME = "PastStartTime"
    INVALID_DURATION = "InvalidDuration"
    MISSING_FIELDS = "MissingFields"
    MISSING_CRITERIA = "MissingCriteria"
    NOT_FOUND = "NotFound"
    VEHICLE_NOT_ACTIVE = "VehicleNotActive"
    SLOT_UNAVAILABLE = "SlotUnavailable"
    DUPLICATE_REGISTRATION = "DuplicateRegistration"
    HAS_ACTIVE_BOOKINGS = "HasActiveBookings"
    ALREADY_COMPLETED = "AlreadyCompleted"
    ALREADY_CANCELLED = "AlreadyCancelled"
    TOO_CLOSE_TO_START = "TooCloseToStart"
    NOT_CANCELLED = "NotCancelled"
    INTERNAL = "Internal"


HTTP_STATUS_BY_KIND = {
    ErrorKind.INVALID_PINCODE: 400,
    ErrorKind.INVALID_TIME_FORMAT: 400,
    ErrorKind.PAST_START_TIME: 400,
    ErrorKind.INVALID_DURATION: 400,
    ErrorKind.MISSING_FIELDS: 400,
    ErrorKind.MISSING_CRITERIA: 400,
    ErrorKind.VEHICLE_NOT_ACTIVE: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.SLOT_UNAVAILABLE: 409,
    ErrorKind.DUPLICATE_REGISTRATION: 409,
    ErrorKind.HAS_ACTIVE_BOOKINGS: 409,
    ErrorKind.ALREADY_COMPLETED: 409,
    ErrorKind.ALREADY_CANCELLED: 409,
    ErrorKind.TOO_CLOSE_TO_START: 409,
    ErrorKind.NOT_CANCELLED: 409,
    ErrorKind.INTERNAL: 500,
}


class FleetLinkError(Exception):
    """Domain failure with a machine-readable kind."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_KIND.get(self.kind, 500)

    def with_stage(self, stage: str) -> "FleetLinkError":
        return FleetLinkError(self.kind, f"{stage}: {self.message}")

    def __repr__(self) -> str:
        return f"FleetLinkError(kind={self.kind.value!r}, message={self.message!r})"


@contextmanager
def error_stage(stage: str) -> Iterator[None]:
    """
    Prefix any FleetLinkError raised inside the block with ``stage``.

    Database errors become ``ErrorKind.INTERNAL`` so the boundary never
    has to inspect driver exceptions.
    """
    try:
        yield
    except FleetLinkError as exc:
        raise exc.with_stage(stage) from exc
    except SQLAlchemyError as exc:
        raise FleetLinkError(ErrorKind.INTERNAL, f"{stage}: {exc}") from exc


def _format_extra(extra: dict | None) -> str:
    if not extra:
        return ""
    parts = [f"{key}={value}" for key, value in extra.items() if value is not None]
    return f" {' '.join(parts)}" if parts else ""


def log_exception(
    logger: logging.Logger,
    msg: str,
    *,
    extra: dict | None = None,
    exc: Optional[BaseException] = None,
) -> None:
    """Log an exception with context. Uses logger.exception for stack traces."""
    suffix = _format_extra(extra)
    if exc is not None:
        logger.error(f"{msg}{suffix}: {exc}", exc_info=exc)
        return
    logger.exception(f"{msg}{suffix}")
