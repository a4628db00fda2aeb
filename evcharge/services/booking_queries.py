from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session
from zoneinfo import ZoneInfo

from ..core.clock import as_utc, local_day_bounds, local_today, station_timezone, utc_now
from ..core.constants import UPCOMING_BOOKINGS_DAYS
from ..db import models
from ..db.models.booking import BookingStatus


def count_pending_bookings(db: Session) -> int:
    return db.scalar(
        select(func.count(models.Booking.id)).where(
            models.Booking.status == BookingStatus.pending
        )
    ) or 0


def count_approved_future_bookings(db: Session, *, now: datetime | None = None) -> int:
    now = as_utc(now or utc_now())
    return db.scalar(
        select(func.count(models.Booking.id)).where(
            models.Booking.status == BookingStatus.approved,
            models.Booking.start_time > now,
        )
    ) or 0


def count_approved_bookings_by_station(
    db: Session,
    station_id: int,
    *,
    today_only: bool = False,
    now: datetime | None = None,
    tz: ZoneInfo | None = None,
) -> int:
    query = select(func.count(models.Booking.id)).where(
        models.Booking.station_id == station_id,
        models.Booking.status == BookingStatus.approved,
    )
    if today_only:
        tz = tz or station_timezone()
        start, end = local_day_bounds(local_today(now or utc_now(), tz), tz)
        query = query.where(models.Booking.start_time >= start, models.Booking.start_time < end)
    return db.scalar(query) or 0


def list_bookings_by_owner(db: Session, owner_id: str) -> list[models.Booking]:
    return list(
        db.scalars(
            select(models.Booking)
            .where(models.Booking.owner_id == owner_id)
            .order_by(models.Booking.start_time.desc())
        )
    )


def list_bookings_by_station(db: Session, station_id: int) -> list[models.Booking]:
    return list(
        db.scalars(
            select(models.Booking)
            .where(models.Booking.station_id == station_id)
            .order_by(models.Booking.start_time.desc())
        )
    )


def _approved_between(
    db: Session, station_id: int, start: datetime, end: datetime
) -> list[models.Booking]:
    return list(
        db.scalars(
            select(models.Booking)
            .where(
                models.Booking.station_id == station_id,
                models.Booking.status == BookingStatus.approved,
                models.Booking.start_time >= start,
                models.Booking.start_time < end,
            )
            .order_by(models.Booking.start_time)
        )
    )


def list_today_approved_bookings(
    db: Session,
    station_id: int,
    *,
    now: datetime | None = None,
    tz: ZoneInfo | None = None,
) -> list[models.Booking]:
    tz = tz or station_timezone()
    start, end = local_day_bounds(local_today(now or utc_now(), tz), tz)
    return _approved_between(db, station_id, start, end)


def list_upcoming_approved_bookings(
    db: Session,
    station_id: int,
    *,
    now: datetime | None = None,
    tz: ZoneInfo | None = None,
) -> list[models.Booking]:
    """Approved bookings for the next few local days, today excluded."""

    tz = tz or station_timezone()
    today = local_today(now or utc_now(), tz)
    start, _ = local_day_bounds(today + timedelta(days=1), tz)
    end, _ = local_day_bounds(today + timedelta(days=UPCOMING_BOOKINGS_DAYS + 1), tz)
    return _approved_between(db, station_id, start, end)


def list_bookings(
    db: Session,
    statuses: list[BookingStatus],
    *,
    page: int = 1,
    page_size: int = 10,
) -> tuple[list[models.Booking], int]:
    page = max(page, 1)
    base = select(models.Booking).where(models.Booking.status.in_(statuses))
    total = db.scalar(select(func.count()).select_from(base.subquery())) or 0
    items = list(
        db.scalars(
            base.order_by(models.Booking.start_time.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
    )
    return items, total


def reservation_overview(
    db: Session, *, from_date: datetime | None = None, to_date: datetime | None = None
) -> dict[str, int]:
    query = select(models.Booking.status, func.count(models.Booking.id))
    if from_date:
        query = query.where(models.Booking.start_time >= as_utc(from_date))
    if to_date:
        query = query.where(models.Booking.end_time <= as_utc(to_date))
    counts = dict(db.execute(query.group_by(models.Booking.status)).all())
    return {
        "pending": int(counts.get(BookingStatus.pending, 0)),
        "approved": int(counts.get(BookingStatus.approved, 0)),
        "finalized": int(counts.get(BookingStatus.finalized, 0)),
        "cancelled": int(counts.get(BookingStatus.cancelled, 0)),
    }
