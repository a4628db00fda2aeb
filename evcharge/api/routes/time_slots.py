from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
from ...api import deps
from ...api.errors import http_error
from ...core.auth import Principal
from ...db.session import get_db
from ...db import schemas
from ...services import timeslot_service
from ...services.errors import ServiceError

router = APIRouter(prefix="/time-slots", tags=["time-slots"])


@router.post("/sync", response_model=schemas.MaintenanceResult)
def sync_time_slots(
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.require_roles("admin")),
):
    try:
        return timeslot_service.run_daily_maintenance(db)
    except ServiceError as exc:
        raise http_error(exc) from exc


@router.post("/bootstrap", response_model=schemas.Count)
def bootstrap_time_slots(
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.require_roles("admin")),
):
    try:
        return {"count": timeslot_service.bootstrap_rolling_window(db)}
    except ServiceError as exc:
        raise http_error(exc) from exc


@router.get("", response_model=list[schemas.TimeSlot])
def get_time_slots_by_date(
    station_id: int,
    slot_id: int,
    day: date,
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.get_current_principal),
):
    slots = timeslot_service.get_time_slots_by_date(db, station_id, slot_id, day)
    if not slots:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No time slots found for the given date",
        )
    return slots


@router.get("/{time_slot_id}/slots", response_model=list[schemas.Slot])
def list_available_slots_for_time_slot(
    time_slot_id: int,
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.get_current_principal),
):
    try:
        return timeslot_service.list_available_slots_for_time_slot(db, time_slot_id)
    except ServiceError as exc:
        raise http_error(exc) from exc


@router.get("/stations/{station_id}", response_model=list[schemas.TimeSlotAvailability])
def get_station_availability(
    station_id: int,
    day: date,
    db: Session = Depends(get_db),
    _: Principal = Depends(deps.get_current_principal),
):
    try:
        return timeslot_service.get_station_availability(db, station_id, day)
    except ServiceError as exc:
        raise http_error(exc) from exc
