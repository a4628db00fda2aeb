from __future__ import annotations

import logging
from dataclasses import asdict, dataclass

import httpx

from ..config import get_settings
from ..core.clock import format_local, station_timezone
from ..db import models

logger = logging.getLogger(__name__)

_EVENT_TEXT = {
    "created": "is pending approval",
    "approved": "has been approved",
    "updated": "has been rescheduled",
    "cancelled": "has been cancelled",
    "finalized": "is complete",
}


@dataclass(slots=True)
class BookingNotification:
    booking_id: int
    owner_id: str
    station_id: int
    event: str
    status: str
    message: str


def build_booking_message(booking: models.Booking, event: str) -> str:
    starts = format_local(booking.start_time, station_timezone())
    return f"Your charging booking #{booking.id} on {starts} {_EVENT_TEXT.get(event, event)}."


def booking_notification(booking: models.Booking, event: str) -> BookingNotification:
    return BookingNotification(
        booking_id=booking.id,
        owner_id=booking.owner_id,
        station_id=booking.station_id,
        event=event,
        status=booking.status.value,
        message=build_booking_message(booking, event),
    )


def notify_booking_event(notification: BookingNotification) -> None:
    """Post the event to the notification webhook; failures are only logged."""

    settings = get_settings()
    url = settings.notification_webhook_url
    if not url:
        logger.info(
            "Notification webhook is not configured; skipping booking event",
            extra={"booking_id": notification.booking_id, "event": notification.event},
        )
        return

    with httpx.Client(timeout=10) as client:
        try:
            response = client.post(url, json=asdict(notification))
            response.raise_for_status()
        except httpx.HTTPError:
            logger.exception(
                "Failed to deliver booking notification",
                extra={"booking_id": notification.booking_id, "event": notification.event},
            )
