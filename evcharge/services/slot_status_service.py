import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.clock import utc_now
from ..db import models
from ..db.models.booking import ACTIVE_BOOKING_STATUSES
from ..db.models.slot import SlotStatus
from .errors import ConflictError, NotFoundError, ServiceError, TransientError, ValidationError

logger = logging.getLogger(__name__)

# Booked is owned by the booking lifecycle and never set by hand
SETTABLE_STATUSES = (SlotStatus.available, SlotStatus.inactive)


def _get_slot(db: Session, slot_id: int) -> models.Slot:
    slot = db.get(models.Slot, slot_id)
    if slot is None:
        raise NotFoundError("SlotNotFound", f"Slot {slot_id} not found")
    return slot


def has_active_booking(db: Session, slot_id: int) -> bool:
    found = db.scalar(
        select(models.Booking.id)
        .where(
            models.Booking.slot_id == slot_id,
            models.Booking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        .limit(1)
    )
    return found is not None


def set_slot_status(
    db: Session,
    slot_id: int,
    status: SlotStatus | str,
    *,
    now: datetime | None = None,
) -> models.Slot:
    """Put a slot in or out of service.

    The flip is a single conditional update that also requires the slot to
    have no Pending or Approved booking, so it cannot race a claim.
    """

    try:
        target = SlotStatus(status)
    except ValueError as exc:
        raise ValidationError("InvalidSlotStatus", f"Unknown slot status {status!r}") from exc
    if target not in SETTABLE_STATUSES:
        raise ValidationError("InvalidSlotStatus", f"Slot status {target.value} cannot be set")

    now = now or utc_now()
    try:
        _get_slot(db, slot_id)
        active = (
            select(models.Booking.id)
            .where(
                models.Booking.slot_id == slot_id,
                models.Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .exists()
        )
        result = db.execute(
            update(models.Slot)
            .where(
                models.Slot.id == slot_id,
                models.Slot.status.in_(SETTABLE_STATUSES),
                ~active,
            )
            .values(status=target, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            if has_active_booking(db, slot_id):
                raise ConflictError(
                    "SlotHasActiveBooking",
                    f"Slot {slot_id} is linked to an active booking",
                )
            raise ConflictError("InvalidTransition", f"Slot {slot_id} cannot change status")
        db.commit()
    except ServiceError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Slot store unavailable")
        raise TransientError("StoreUnavailable", "Slot store is unavailable") from exc

    slot = db.get(models.Slot, slot_id, populate_existing=True)
    logger.info("Slot status changed", extra={"slot_id": slot_id, "status": target.value})
    return slot


def toggle_slot_status(db: Session, slot_id: int, *, now: datetime | None = None) -> models.Slot:
    slot = _get_slot(db, slot_id)
    target = SlotStatus.inactive if slot.status == SlotStatus.available else SlotStatus.available
    return set_slot_status(db, slot_id, target, now=now)


__all__ = [
    "SETTABLE_STATUSES",
    "has_active_booking",
    "set_slot_status",
    "toggle_slot_status",
]
