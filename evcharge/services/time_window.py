from datetime import datetime, timedelta

from ..config import get_settings
from ..core.clock import as_utc
from ..db import models
from .errors import ConflictError, ValidationError


def _horizon() -> timedelta:
    return timedelta(days=get_settings().booking_horizon_days)


def _cutoff_window() -> timedelta:
    return timedelta(hours=get_settings().modify_cutoff_hours)


def validate_booking_window(start_time: datetime, end_time: datetime, now: datetime) -> None:
    start_time = as_utc(start_time)
    end_time = as_utc(end_time)
    now = as_utc(now)
    if start_time >= end_time:
        raise ValidationError("InvalidRange", "Start time must be before end time")
    if start_time < now:
        raise ValidationError("OutOfWindow", "Cannot book a start time in the past")
    if start_time > now + _horizon():
        raise ValidationError(
            "OutOfWindow",
            f"Bookings can only be made up to {get_settings().booking_horizon_days} days ahead",
        )


def modification_cutoff(booking: models.Booking) -> datetime:
    return as_utc(booking.start_time) - _cutoff_window()


def ensure_modifiable(booking: models.Booking, now: datetime) -> None:
    # modification is allowed only strictly before the cutoff
    if as_utc(now) >= modification_cutoff(booking):
        raise ConflictError(
            "TooLateToModify",
            f"Cannot modify booking within {get_settings().modify_cutoff_hours} hours of start",
        )
