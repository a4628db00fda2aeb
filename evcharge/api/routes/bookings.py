import base64
from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session
from ...api import deps
from ...api.errors import http_error
from ...core.auth import Principal, Role
from ...db.session import get_db
from ...db import models, schemas
from ...db.models.booking import BookingStatus
from ...services import booking_queries, booking_service, notification_service
from ...services.errors import ServiceError

router = APIRouter(prefix="/bookings", tags=["bookings"])

_PAGED_STATUSES = {
    "pending": [BookingStatus.pending],
    "approved": [BookingStatus.approved],
    "completed": [BookingStatus.finalized],
}


def _notify(background_tasks: BackgroundTasks, booking: models.Booking, event: str) -> None:
    background_tasks.add_task(
        notification_service.notify_booking_event,
        notification_service.booking_notification(booking, event),
    )


def _ensure_operator_station(principal: Principal, station_id: int) -> None:
    if principal.role != Role.operator or principal.station_id is None:
        return
    if station_id != principal.station_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def _ensure_station_scope(db: Session, principal: Principal, booking_id: int) -> None:
    booking = db.get(models.Booking, booking_id)
    if booking is not None:
        _ensure_operator_station(principal, booking.station_id)


@router.post("", response_model=schemas.Booking, status_code=status.HTTP_201_CREATED)
def create_booking(
    payload: schemas.BookingCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    deadline: datetime | None = Depends(deps.request_deadline),
    principal: Principal = Depends(deps.require_roles("owner", "admin")),
):
    owner_id = principal.id if principal.is_owner else payload.owner_id
    if not owner_id:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="owner_id is required"
        )
    try:
        booking = booking_service.create_booking(
            db,
            station_id=payload.station_id,
            connector_type=payload.connector_type,
            start_time=payload.start_time,
            end_time=payload.end_time,
            owner_id=owner_id,
            deadline=deadline,
        )
    except ServiceError as exc:
        raise http_error(exc) from exc
    _notify(background_tasks, booking, "created")
    return booking


@router.get("/count/pending", response_model=schemas.Count)
def count_pending_bookings(
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.require_roles("admin", "operator")),
):
    return {"count": booking_queries.count_pending_bookings(db)}


@router.get("/count/approved", response_model=schemas.Count)
def count_approved_future_bookings(
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.require_roles("admin", "operator")),
):
    return {"count": booking_queries.count_approved_future_bookings(db)}


@router.get("/overview", response_model=schemas.ReservationOverview)
def reservation_overview(
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.require_roles("admin")),
):
    return booking_queries.reservation_overview(db, from_date=from_date, to_date=to_date)


@router.get("/count/approved/station/{station_id}", response_model=schemas.Count)
def count_station_approved_bookings(
    station_id: int,
    today_only: bool = False,
    db: Session = Depends(get_db),
    principal: Principal = Depends(deps.require_roles("admin", "operator")),
):
    _ensure_operator_station(principal, station_id)
    return {
        "count": booking_queries.count_approved_bookings_by_station(
            db, station_id, today_only=today_only
        )
    }


@router.get("/owner/{owner_id}", response_model=list[schemas.Booking])
def list_owner_bookings(
    owner_id: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(deps.require_roles("owner", "admin")),
):
    if principal.is_owner and principal.id != owner_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return booking_queries.list_bookings_by_owner(db, owner_id)


@router.get("/station/{station_id}", response_model=list[schemas.Booking])
def list_station_bookings(
    station_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(deps.require_roles("admin", "operator")),
):
    _ensure_operator_station(principal, station_id)
    return booking_queries.list_bookings_by_station(db, station_id)


@router.get("/station/{station_id}/today", response_model=list[schemas.Booking])
def list_today_bookings(
    station_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(deps.require_roles("admin", "operator")),
):
    _ensure_operator_station(principal, station_id)
    return booking_queries.list_today_approved_bookings(db, station_id)


@router.get("/station/{station_id}/upcoming", response_model=list[schemas.Booking])
def list_upcoming_bookings(
    station_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(deps.require_roles("admin", "operator")),
):
    _ensure_operator_station(principal, station_id)
    return booking_queries.list_upcoming_approved_bookings(db, station_id)


@router.get("/status/{listing}", response_model=schemas.BookingPage)
def list_bookings_by_status(
    listing: str,
    page: int = 1,
    page_size: int = 10,
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.require_roles("admin", "operator")),
):
    statuses = _PAGED_STATUSES.get(listing)
    if statuses is None:
        raise HTTPException(status_code=404, detail="Unknown booking listing")
    items, total = booking_queries.list_bookings(db, statuses, page=page, page_size=page_size)
    return {"items": items, "total": total, "page": page, "page_size": page_size}


@router.get("/{booking_id}", response_model=schemas.Booking)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(deps.get_current_principal),
):
    try:
        booking = booking_service.get_booking(db, booking_id)
    except ServiceError as exc:
        raise http_error(exc) from exc
    if principal.is_owner and booking.owner_id != principal.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return booking


@router.put("/{booking_id}", response_model=schemas.Booking)
def update_booking(
    booking_id: int,
    payload: schemas.BookingUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    deadline: datetime | None = Depends(deps.request_deadline),
    principal: Principal = Depends(deps.require_roles("owner", "operator", "admin")),
):
    _ensure_station_scope(db, principal, booking_id)
    try:
        booking = booking_service.update_booking(
            db,
            booking_id,
            start_time=payload.start_time,
            end_time=payload.end_time,
            requester_id=principal.id,
            requester_role=principal.role,
            deadline=deadline,
        )
    except ServiceError as exc:
        raise http_error(exc) from exc
    _notify(background_tasks, booking, "updated")
    return booking


@router.patch("/{booking_id}/cancel", response_model=schemas.Booking)
def cancel_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    deadline: datetime | None = Depends(deps.request_deadline),
    principal: Principal = Depends(deps.require_roles("owner", "operator", "admin")),
):
    _ensure_station_scope(db, principal, booking_id)
    try:
        booking = booking_service.cancel_booking(
            db,
            booking_id,
            requester_id=principal.id,
            requester_role=principal.role,
            deadline=deadline,
        )
    except ServiceError as exc:
        raise http_error(exc) from exc
    _notify(background_tasks, booking, "cancelled")
    return booking


@router.patch("/{booking_id}/approve", response_model=schemas.Booking)
def approve_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    deadline: datetime | None = Depends(deps.request_deadline),
    principal: Principal = Depends(deps.require_roles("operator", "admin")),
):
    _ensure_station_scope(db, principal, booking_id)
    try:
        booking = booking_service.approve_booking(
            db, booking_id, operator_id=principal.id, deadline=deadline
        )
    except ServiceError as exc:
        raise http_error(exc) from exc
    _notify(background_tasks, booking, "approved")
    return booking


@router.patch("/{booking_id}/finalize", response_model=schemas.Booking)
def finalize_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    deadline: datetime | None = Depends(deps.request_deadline),
    principal: Principal = Depends(deps.require_roles("operator", "admin")),
):
    _ensure_station_scope(db, principal, booking_id)
    try:
        booking = booking_service.finalize_booking(
            db, booking_id, operator_id=principal.id, deadline=deadline
        )
    except ServiceError as exc:
        raise http_error(exc) from exc
    _notify(background_tasks, booking, "finalized")
    return booking


@router.get("/{booking_id}/qrcode", response_model=schemas.QrCode)
def generate_qr_code(
    booking_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(deps.get_current_principal),
):
    booking = db.get(models.Booking, booking_id)
    if booking is not None and principal.is_owner and booking.owner_id != principal.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    try:
        qr = booking_service.generate_qr_code(db, booking_id)
    except ServiceError as exc:
        raise http_error(exc) from exc
    return {
        "token": qr.token,
        "expires_at": qr.expires_at,
        "image_base64": base64.b64encode(qr.image).decode("ascii") if qr.image else None,
    }
