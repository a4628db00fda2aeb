"""Rolling window of generated time slots.

Every slot gets ten fixed two-hour sessions per station-local day. The daily
run deletes yesterday and adds the day six days ahead, so the table always
spans seven local days.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from itertools import groupby
import logging
import threading

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from zoneinfo import ZoneInfo

from ..core.clock import as_utc, local_day_bounds, local_today, station_timezone, utc_now
from ..core.constants import FIXED_SESSION_STARTS, ROLLING_WINDOW_DAYS, SESSION_DURATION
from ..db import models
from ..db.models.time_slot import TimeSlotStatus
from .errors import ConflictError, NotFoundError, TransientError

logger = logging.getLogger(__name__)

# one maintenance run per process at a time
_maintenance_lock = threading.Lock()


@dataclass(slots=True)
class MaintenanceResult:
    day_deleted: date
    day_added: date
    deleted: int
    created: int
    skipped: bool


@dataclass(slots=True)
class TimeSlotAvailability:
    start_time: datetime
    end_time: datetime
    total_slots: int
    available_count: int
    any_available_time_slot_id: int | None


def _session_bounds(day: date, tz: ZoneInfo) -> list[tuple[datetime, datetime]]:
    bounds = []
    for starts_at in FIXED_SESSION_STARTS:
        local_start = datetime.combine(day, starts_at, tzinfo=tz)
        bounds.append(
            (
                local_start.astimezone(timezone.utc),
                (local_start + SESSION_DURATION).astimezone(timezone.utc),
            )
        )
    return bounds


def _day_exists(db: Session, day: date, tz: ZoneInfo) -> bool:
    start, end = local_day_bounds(day, tz)
    found = db.scalar(
        select(models.TimeSlot.id)
        .where(models.TimeSlot.start_time >= start, models.TimeSlot.start_time < end)
        .limit(1)
    )
    return found is not None


def _delete_day(db: Session, day: date, tz: ZoneInfo, now: datetime) -> int:
    start, end = local_day_bounds(day, tz)
    expired = set(
        db.scalars(
            select(models.TimeSlot.id).where(
                models.TimeSlot.start_time >= start,
                models.TimeSlot.start_time < end,
            )
        )
    )
    if not expired:
        return 0
    db.execute(
        delete(models.TimeSlot)
        .where(models.TimeSlot.id.in_(expired))
        .execution_options(synchronize_session=False)
    )
    for slot in db.scalars(select(models.Slot)):
        refs = slot.time_slot_ids or []
        if expired.intersection(refs):
            slot.time_slot_ids = [ref for ref in refs if ref not in expired]
            slot.updated_at = now
    return len(expired)


def _active_ranges(db: Session, start: datetime, end: datetime) -> dict[int, list[tuple[datetime, datetime]]]:
    ranges: dict[int, list[tuple[datetime, datetime]]] = {}
    rows = db.execute(
        select(models.Booking.slot_id, models.Booking.start_time, models.Booking.end_time).where(
            models.Booking.status.in_(models.ACTIVE_BOOKING_STATUSES),
            models.Booking.start_time < end,
            models.Booking.end_time > start,
        )
    )
    for slot_id, booked_from, booked_to in rows:
        ranges.setdefault(slot_id, []).append((as_utc(booked_from), as_utc(booked_to)))
    return ranges


def _session_status(
    start: datetime, end: datetime, booked: list[tuple[datetime, datetime]]
) -> TimeSlotStatus:
    if any(booked_from < end and booked_to > start for booked_from, booked_to in booked):
        return TimeSlotStatus.booked
    return TimeSlotStatus.available


def _generate_day(db: Session, day: date, tz: ZoneInfo, now: datetime) -> int:
    bounds = _session_bounds(day, tz)
    # bookings made before their day entered the window
    booked = _active_ranges(db, bounds[0][0], bounds[-1][1])
    created = 0
    for slot in db.scalars(select(models.Slot).order_by(models.Slot.id)).all():
        rows = [
            models.TimeSlot(
                station_id=slot.station_id,
                slot_id=slot.id,
                start_time=start,
                end_time=end,
                status=_session_status(start, end, booked.get(slot.id, [])),
            )
            for start, end in bounds
        ]
        db.add_all(rows)
        db.flush()
        slot.time_slot_ids = [*(slot.time_slot_ids or []), *(row.id for row in rows)]
        slot.updated_at = now
        created += len(rows)
    return created


def _run_daily(db: Session, now: datetime, tz: ZoneInfo) -> MaintenanceResult:
    today = local_today(now, tz)
    day_to_delete = today - timedelta(days=1)
    day_to_add = today + timedelta(days=ROLLING_WINDOW_DAYS - 1)
    logger.info("Running daily time slot maintenance", extra={"today": today.isoformat()})

    deleted = _delete_day(db, day_to_delete, tz, now)
    db.commit()
    logger.info(
        "Deleted expired time slots",
        extra={"count": deleted, "day": day_to_delete.isoformat()},
    )

    if _day_exists(db, day_to_add, tz):
        logger.info(
            "Skipping generation, time slots already exist",
            extra={"day": day_to_add.isoformat()},
        )
        return MaintenanceResult(day_to_delete, day_to_add, deleted, 0, True)

    created = _generate_day(db, day_to_add, tz, now)
    db.commit()
    logger.info(
        "Generated time slots",
        extra={"count": created, "day": day_to_add.isoformat()},
    )
    return MaintenanceResult(day_to_delete, day_to_add, deleted, created, False)


def _guarded(db: Session, run):
    if not _maintenance_lock.acquire(blocking=False):
        raise ConflictError("MaintenanceInProgress", "Time slot maintenance is already running")
    try:
        return run()
    except SQLAlchemyError as exc:
        db.rollback()
        raise TransientError("StoreUnavailable", "Time slot store is unavailable") from exc
    finally:
        _maintenance_lock.release()


def run_daily_maintenance(
    db: Session, *, now: datetime | None = None, tz: ZoneInfo | None = None
) -> MaintenanceResult:
    """Drop yesterday's time slots and add the newest day of the window.

    Re-running on the same day deletes nothing new and skips generation
    because the new day is already present. A run that fails after the
    deletion commit leaves the window one day short until the next run.
    """

    now = as_utc(now or utc_now())
    tz = tz or station_timezone()
    return _guarded(db, lambda: _run_daily(db, now, tz))


def bootstrap_rolling_window(
    db: Session, *, now: datetime | None = None, tz: ZoneInfo | None = None
) -> int:
    """Generate every missing day of the current window, e.g. on first deploy."""

    now = as_utc(now or utc_now())
    tz = tz or station_timezone()

    def run() -> int:
        today = local_today(now, tz)
        created = 0
        for offset in range(ROLLING_WINDOW_DAYS):
            day = today + timedelta(days=offset)
            if _day_exists(db, day, tz):
                continue
            created += _generate_day(db, day, tz, now)
        db.commit()
        logger.info("Bootstrapped time slot window", extra={"count": created})
        return created

    return _guarded(db, run)


def mark_time_slots(
    db: Session,
    slot_id: int,
    start: datetime,
    end: datetime,
    status: TimeSlotStatus,
) -> int:
    """Set the status of the slot's sessions overlapping ``[start, end)``.

    Runs inside the caller's transaction.
    """

    result = db.execute(
        update(models.TimeSlot)
        .where(
            models.TimeSlot.slot_id == slot_id,
            models.TimeSlot.start_time < as_utc(end),
            models.TimeSlot.end_time > as_utc(start),
        )
        .values(status=status)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount


def get_time_slots_by_date(
    db: Session,
    station_id: int,
    slot_id: int,
    day: date,
    *,
    tz: ZoneInfo | None = None,
) -> list[models.TimeSlot]:
    start, end = local_day_bounds(day, tz or station_timezone())
    return list(
        db.scalars(
            select(models.TimeSlot)
            .where(
                models.TimeSlot.station_id == station_id,
                models.TimeSlot.slot_id == slot_id,
                models.TimeSlot.start_time >= start,
                models.TimeSlot.start_time < end,
            )
            .order_by(models.TimeSlot.start_time)
        )
    )


def get_station_availability(
    db: Session,
    station_id: int,
    day: date,
    *,
    tz: ZoneInfo | None = None,
) -> list[TimeSlotAvailability]:
    station = db.get(models.Station, station_id)
    if station is None:
        raise NotFoundError("StationNotFound", f"Station {station_id} not found")
    if not station.is_active:
        raise ConflictError("StationInactive", f"Station {station_id} is inactive")
    start, end = local_day_bounds(day, tz or station_timezone())
    rows = db.scalars(
        select(models.TimeSlot)
        .where(
            models.TimeSlot.station_id == station_id,
            models.TimeSlot.start_time >= start,
            models.TimeSlot.start_time < end,
        )
        .order_by(models.TimeSlot.start_time, models.TimeSlot.end_time, models.TimeSlot.id)
    ).all()
    result = []
    for (block_start, block_end), group in groupby(rows, key=lambda t: (t.start_time, t.end_time)):
        block = list(group)
        available = [t for t in block if t.status == TimeSlotStatus.available]
        result.append(
            TimeSlotAvailability(
                start_time=as_utc(block_start),
                end_time=as_utc(block_end),
                total_slots=len(block),
                available_count=len(available),
                any_available_time_slot_id=available[0].id if available else None,
            )
        )
    return result


def list_available_slots_for_time_slot(db: Session, time_slot_id: int) -> list[models.Slot]:
    """Free slots whose session matches the given one's station, start and end."""

    time_slot = db.get(models.TimeSlot, time_slot_id)
    if time_slot is None:
        raise NotFoundError("TimeSlotNotFound", f"Time slot {time_slot_id} not found")
    if time_slot.status != TimeSlotStatus.available:
        return []
    return list(
        db.scalars(
            select(models.Slot)
            .join(models.TimeSlot, models.TimeSlot.slot_id == models.Slot.id)
            .where(
                models.TimeSlot.station_id == time_slot.station_id,
                models.TimeSlot.start_time == time_slot.start_time,
                models.TimeSlot.end_time == time_slot.end_time,
                models.TimeSlot.status == TimeSlotStatus.available,
                models.Slot.status == models.SlotStatus.available,
            )
            .order_by(models.Slot.number, models.Slot.id)
        )
    )


__all__ = [
    "MaintenanceResult",
    "TimeSlotAvailability",
    "run_daily_maintenance",
    "bootstrap_rolling_window",
    "get_time_slots_by_date",
    "get_station_availability",
    "list_available_slots_for_time_slot",
    "mark_time_slots",
]
