from datetime import datetime
from pydantic import BaseModel

from ..models.slot import SlotStatus


class Slot(BaseModel):
    id: int
    station_id: int
    number: int
    connector_type: str
    status: SlotStatus
    start_time: datetime | None = None
    end_time: datetime | None = None

    class Config:
        from_attributes = True


class SlotStatusUpdate(BaseModel):
    status: SlotStatus
    cancel_future_bookings: bool = False
