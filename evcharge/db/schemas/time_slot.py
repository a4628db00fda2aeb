from datetime import date, datetime
from pydantic import BaseModel

from ..models.time_slot import TimeSlotStatus


class TimeSlot(BaseModel):
    id: int
    station_id: int
    slot_id: int
    start_time: datetime
    end_time: datetime
    status: TimeSlotStatus

    class Config:
        from_attributes = True


class TimeSlotAvailability(BaseModel):
    start_time: datetime
    end_time: datetime
    total_slots: int
    available_count: int
    any_available_time_slot_id: int | None = None

    class Config:
        from_attributes = True


class MaintenanceResult(BaseModel):
    day_deleted: date
    day_added: date
    deleted: int
    created: int
    skipped: bool

    class Config:
        from_attributes = True
