from datetime import datetime
from pydantic import BaseModel, Field

from ..models.booking import BookingStatus


class BookingBase(BaseModel):
    start_time: datetime
    end_time: datetime


class BookingCreate(BookingBase):
    station_id: int
    connector_type: str = Field(min_length=1, max_length=32)
    owner_id: str | None = None


class BookingUpdate(BookingBase):
    pass


class Booking(BookingBase):
    id: int
    station_id: int
    slot_id: int
    owner_id: str
    status: BookingStatus
    created_at: datetime
    updated_at: datetime
    qr_token: str | None = None
    qr_expires_at: datetime | None = None

    class Config:
        from_attributes = True


class BookingPage(BaseModel):
    items: list[Booking]
    total: int
    page: int
    page_size: int


class QrCode(BaseModel):
    token: str
    expires_at: datetime
    image_base64: str | None = None


class ReservationOverview(BaseModel):
    pending: int
    approved: int
    finalized: int
    cancelled: int


class Count(BaseModel):
    count: int
