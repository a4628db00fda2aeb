import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..db import models
from .errors import ConflictError

logger = logging.getLogger(__name__)


def find_available_slots(db: Session, station_id: int, connector_type: str) -> list[int]:
    return list(
        db.scalars(
            select(models.Slot.id)
            .where(
                models.Slot.station_id == station_id,
                models.Slot.connector_type == connector_type,
                models.Slot.status == models.SlotStatus.available,
            )
            .order_by(models.Slot.id)
        )
    )


def _try_claim(db: Session, slot_id: int, now: datetime) -> bool:
    result = db.execute(
        update(models.Slot)
        .where(
            models.Slot.id == slot_id,
            models.Slot.status == models.SlotStatus.available,
        )
        .values(status=models.SlotStatus.booked, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def claim_slot(
    db: Session, station_id: int, connector_type: str, *, now: datetime
) -> models.Slot:
    """Mark the lowest-id free slot of the station and connector type as booked.

    The status flip is a conditional update, so two sessions racing for the
    same slot cannot both succeed. The caller owns the transaction.
    """

    for slot_id in find_available_slots(db, station_id, connector_type):
        if _try_claim(db, slot_id, now):
            slot = db.get(models.Slot, slot_id, populate_existing=True)
            logger.info(
                "Slot claimed",
                extra={"slot_id": slot_id, "station_id": station_id},
            )
            return slot
        logger.debug("Slot taken concurrently", extra={"slot_id": slot_id})
    raise ConflictError(
        "NoAvailableSlot",
        f"No available {connector_type} slot at station {station_id}",
    )


def release_slot(db: Session, slot_id: int, *, now: datetime) -> bool:
    result = db.execute(
        update(models.Slot)
        .where(
            models.Slot.id == slot_id,
            models.Slot.status == models.SlotStatus.booked,
        )
        .values(status=models.SlotStatus.available, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    released = result.rowcount == 1
    if not released:
        logger.warning("Slot was not booked on release", extra={"slot_id": slot_id})
    return released
