import logging

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db import models
from .errors import ConflictError

logger = logging.getLogger(__name__)


def registered_slot_count(db: Session, station_id: int) -> int:
    return db.scalar(
        select(func.count(models.Slot.id)).where(models.Slot.station_id == station_id)
    ) or 0


def ensure_capacity(db: Session, station: models.Station) -> None:
    """Fail when fewer slots are registered than the station declares."""

    registered = registered_slot_count(db, station.id)
    if registered < station.capacity:
        logger.warning(
            "Station has fewer registered slots than its capacity",
            extra={
                "station_id": station.id,
                "capacity": station.capacity,
                "registered": registered,
            },
        )
        raise ConflictError(
            "OperationalMismatch",
            f"Station {station.id} has {registered} slots registered for capacity {station.capacity}",
        )
