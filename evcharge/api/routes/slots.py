from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session
from ...api import deps
from ...api.errors import http_error
from ...core.auth import Principal, Role
from ...db.session import get_db
from ...db import models, schemas
from ...db.models.slot import SlotStatus
from ...services import booking_service, notification_service, slot_status_service
from ...services.errors import ServiceError

router = APIRouter(tags=["slots"])


def _slot_for_operator(db: Session, principal: Principal, slot_id: int) -> models.Slot:
    slot = db.get(models.Slot, slot_id)
    if not slot:
        raise HTTPException(status_code=404, detail="SlotNotFound")
    if (
        principal.role == Role.operator
        and principal.station_id is not None
        and slot.station_id != principal.station_id
    ):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return slot


@router.get("/stations/{station_id}/slots", response_model=list[schemas.Slot])
def list_station_slots(
    station_id: int,
    connector_type: str | None = None,
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.get_current_principal),
):
    station = db.get(models.Station, station_id)
    if not station:
        raise HTTPException(status_code=404, detail="Station not found")
    stmt = select(models.Slot).where(models.Slot.station_id == station_id)
    if connector_type:
        stmt = stmt.where(models.Slot.connector_type == connector_type)
    return list(db.scalars(stmt.order_by(models.Slot.number, models.Slot.id)))


@router.patch("/slots/{slot_id}/toggle", response_model=schemas.Slot)
def toggle_slot_status(
    slot_id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(deps.require_roles("operator", "admin")),
):
    _slot_for_operator(db, principal, slot_id)
    try:
        return slot_status_service.toggle_slot_status(db, slot_id)
    except ServiceError as exc:
        raise http_error(exc) from exc


@router.patch("/slots/{slot_id}/status", response_model=schemas.Slot)
def update_slot_status(
    slot_id: int,
    payload: schemas.SlotStatusUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    principal: Principal = Depends(deps.require_roles("operator", "admin")),
):
    _slot_for_operator(db, principal, slot_id)
    try:
        if payload.cancel_future_bookings and payload.status == SlotStatus.inactive:
            cancelled = booking_service.auto_cancel_future_bookings_for_slot(
                db, slot_id, cancelled_by=principal.id
            )
            for booking in cancelled:
                background_tasks.add_task(
                    notification_service.notify_booking_event,
                    notification_service.booking_notification(booking, "cancelled"),
                )
        return slot_status_service.set_slot_status(db, slot_id, payload.status)
    except ServiceError as exc:
        raise http_error(exc) from exc
