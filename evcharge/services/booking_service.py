from contextlib import contextmanager
from datetime import datetime
import logging

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from ..core.auth import Role
from ..core.clock import as_utc, utc_now
from ..db import models
from ..db.models.booking import ACTIVE_BOOKING_STATUSES, BookingStatus
from ..db.models.time_slot import TimeSlotStatus
from . import capacity_service, qr_service, slot_allocator, time_window, timeslot_service
from .errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ServiceError,
    TransientError,
)

logger = logging.getLogger(__name__)


@contextmanager
def _transaction(db: Session, *, integrity_reason: str = "Conflict"):
    try:
        yield
    except ServiceError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(integrity_reason) from exc
    except OperationalError as exc:
        db.rollback()
        logger.exception("Booking store unavailable")
        raise TransientError("StoreUnavailable", "Booking store is unavailable") from exc


def _commit(db: Session, deadline: datetime | None) -> None:
    if deadline is not None and utc_now() > as_utc(deadline):
        raise TransientError("DeadlineExceeded", "Request deadline exceeded")
    db.commit()


def get_booking(db: Session, booking_id: int) -> models.Booking:
    booking = db.get(models.Booking, booking_id)
    if booking is None:
        raise NotFoundError("BookingNotFound", f"Booking {booking_id} not found")
    return booking


def _ensure_requester(booking: models.Booking, requester_id: str, requester_role: Role | str) -> None:
    try:
        role = Role(requester_role)
    except ValueError as exc:
        raise ForbiddenError("Forbidden", f"Unknown requester role {requester_role!r}") from exc
    if role == Role.owner and booking.owner_id != requester_id:
        raise ForbiddenError("Forbidden", "Booking belongs to another owner")


def _ensure_active(booking: models.Booking) -> None:
    if booking.status not in ACTIVE_BOOKING_STATUSES:
        raise ConflictError(
            "InvalidTransition", f"Booking is already {booking.status.value}"
        )


def _free_sessions(db: Session, booking: models.Booking) -> None:
    timeslot_service.mark_time_slots(
        db, booking.slot_id, booking.start_time, booking.end_time, TimeSlotStatus.available
    )


def _transition(
    db: Session,
    booking_id: int,
    *,
    allowed: tuple[BookingStatus, ...],
    target: BookingStatus,
    now: datetime,
) -> models.Booking:
    result = db.execute(
        update(models.Booking)
        .where(models.Booking.id == booking_id, models.Booking.status.in_(allowed))
        .values(status=target, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    booking = db.get(models.Booking, booking_id, populate_existing=True)
    if booking is None:
        raise NotFoundError("BookingNotFound", f"Booking {booking_id} not found")
    if result.rowcount != 1:
        raise ConflictError(
            "InvalidTransition",
            f"Cannot move booking from {booking.status.value} to {target.value}",
        )
    return booking


def create_booking(
    db: Session,
    *,
    station_id: int,
    connector_type: str,
    start_time: datetime,
    end_time: datetime,
    owner_id: str,
    now: datetime | None = None,
    deadline: datetime | None = None,
) -> models.Booking:
    now = now or utc_now()
    start_time = as_utc(start_time)
    end_time = as_utc(end_time)
    with _transaction(db, integrity_reason="NoAvailableSlot"):
        time_window.validate_booking_window(start_time, end_time, now)
        station = db.get(models.Station, station_id)
        if station is None:
            raise NotFoundError("StationNotFound", f"Station {station_id} not found")
        if not station.is_active:
            raise ConflictError("StationInactive", f"Station {station_id} is inactive")
        capacity_service.ensure_capacity(db, station)
        slot = slot_allocator.claim_slot(db, station.id, connector_type, now=now)
        timeslot_service.mark_time_slots(db, slot.id, start_time, end_time, TimeSlotStatus.booked)
        qr = qr_service.issue_token(start_time, now)
        booking = models.Booking(
            station_id=station.id,
            slot_id=slot.id,
            owner_id=owner_id,
            status=BookingStatus.pending,
            start_time=start_time,
            end_time=end_time,
            created_at=now,
            updated_at=now,
            qr_token=qr.token,
            qr_expires_at=qr.expires_at,
        )
        db.add(booking)
        db.flush()
        _commit(db, deadline)
    logger.info(
        "Booking created",
        extra={"booking_id": booking.id, "slot_id": slot.id, "owner_id": owner_id},
    )
    return booking


def update_booking(
    db: Session,
    booking_id: int,
    *,
    start_time: datetime,
    end_time: datetime,
    requester_id: str,
    requester_role: Role | str,
    now: datetime | None = None,
    deadline: datetime | None = None,
) -> models.Booking:
    """Reschedule a booking in place.

    The slot stays claimed; the new range is not checked against other
    bookings of the same slot.
    """

    now = now or utc_now()
    start_time = as_utc(start_time)
    end_time = as_utc(end_time)
    with _transaction(db):
        booking = get_booking(db, booking_id)
        _ensure_requester(booking, requester_id, requester_role)
        _ensure_active(booking)
        time_window.ensure_modifiable(booking, now)
        time_window.validate_booking_window(start_time, end_time, now)
        _free_sessions(db, booking)
        timeslot_service.mark_time_slots(
            db, booking.slot_id, start_time, end_time, TimeSlotStatus.booked
        )
        booking.start_time = start_time
        booking.end_time = end_time
        if booking.qr_expires_at is not None and as_utc(booking.qr_expires_at) > start_time:
            booking.qr_expires_at = start_time
        booking.updated_at = now
        _commit(db, deadline)
    logger.info("Booking rescheduled", extra={"booking_id": booking.id})
    return booking


def cancel_booking(
    db: Session,
    booking_id: int,
    *,
    requester_id: str,
    requester_role: Role | str,
    now: datetime | None = None,
    deadline: datetime | None = None,
) -> models.Booking:
    now = now or utc_now()
    with _transaction(db):
        booking = get_booking(db, booking_id)
        _ensure_requester(booking, requester_id, requester_role)
        _ensure_active(booking)
        time_window.ensure_modifiable(booking, now)
        booking = _transition(
            db,
            booking_id,
            allowed=ACTIVE_BOOKING_STATUSES,
            target=BookingStatus.cancelled,
            now=now,
        )
        _free_sessions(db, booking)
        slot_allocator.release_slot(db, booking.slot_id, now=now)
        _commit(db, deadline)
    logger.info(
        "Booking cancelled",
        extra={"booking_id": booking.id, "requester_id": requester_id},
    )
    return booking


def approve_booking(
    db: Session,
    booking_id: int,
    *,
    operator_id: str,
    now: datetime | None = None,
    deadline: datetime | None = None,
) -> models.Booking:
    now = now or utc_now()
    with _transaction(db):
        booking = _transition(
            db,
            booking_id,
            allowed=(BookingStatus.pending,),
            target=BookingStatus.approved,
            now=now,
        )
        _commit(db, deadline)
    logger.info(
        "Booking approved",
        extra={"booking_id": booking.id, "operator_id": operator_id},
    )
    return booking


def finalize_booking(
    db: Session,
    booking_id: int,
    *,
    operator_id: str,
    now: datetime | None = None,
    deadline: datetime | None = None,
) -> models.Booking:
    now = now or utc_now()
    with _transaction(db):
        booking = _transition(
            db,
            booking_id,
            allowed=(BookingStatus.approved,),
            target=BookingStatus.finalized,
            now=now,
        )
        _free_sessions(db, booking)
        slot_allocator.release_slot(db, booking.slot_id, now=now)
        _commit(db, deadline)
    logger.info(
        "Booking finalized",
        extra={"booking_id": booking.id, "operator_id": operator_id},
    )
    return booking


def auto_cancel_future_bookings_for_slot(
    db: Session,
    slot_id: int,
    *,
    reason: str = "Slot unavailable",
    cancelled_by: str = "system",
    now: datetime | None = None,
    deadline: datetime | None = None,
) -> list[models.Booking]:
    """Cancel every active booking on the slot that has not started yet.

    The modification cutoff does not apply; this is how a slot is cleared
    before it is taken out of service.
    """

    now = now or utc_now()
    with _transaction(db):
        if db.get(models.Slot, slot_id) is None:
            raise NotFoundError("SlotNotFound", f"Slot {slot_id} not found")
        booking_ids = list(
            db.scalars(
                select(models.Booking.id).where(
                    models.Booking.slot_id == slot_id,
                    models.Booking.status.in_(ACTIVE_BOOKING_STATUSES),
                    models.Booking.start_time > as_utc(now),
                )
            )
        )
        cancelled = []
        for booking_id in booking_ids:
            booking = _transition(
                db,
                booking_id,
                allowed=ACTIVE_BOOKING_STATUSES,
                target=BookingStatus.cancelled,
                now=now,
            )
            _free_sessions(db, booking)
            cancelled.append(booking)
        if cancelled:
            slot_allocator.release_slot(db, slot_id, now=now)
        _commit(db, deadline)
    logger.info(
        "Future bookings cancelled for slot",
        extra={
            "slot_id": slot_id,
            "count": len(cancelled),
            "reason": reason,
            "cancelled_by": cancelled_by,
        },
    )
    return cancelled


def generate_qr_code(
    db: Session,
    booking_id: int,
    *,
    now: datetime | None = None,
    renderer: qr_service.QrRenderer = qr_service.render_png,
) -> qr_service.QrCode:
    """Replace the booking's check-in token and return it with its image."""

    now = now or utc_now()
    with _transaction(db):
        booking = get_booking(db, booking_id)
        _ensure_active(booking)
        qr = qr_service.issue_token(booking.start_time, now)
        qr.image = renderer(qr.token)
        booking.qr_token = qr.token
        booking.qr_expires_at = qr.expires_at
        booking.updated_at = now
        db.commit()
    return qr


__all__ = [
    "get_booking",
    "create_booking",
    "update_booking",
    "cancel_booking",
    "approve_booking",
    "finalize_booking",
    "auto_cancel_future_bookings_for_slot",
    "generate_qr_code",
]
