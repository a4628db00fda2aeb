from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, func, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class BookingStatus(str, PyEnum):
    pending = "Pending"
    approved = "Approved"
    finalized = "Finalized"
    cancelled = "Cancelled"


ACTIVE_BOOKING_STATUSES = (BookingStatus.pending, BookingStatus.approved)

# SQLAlchemy persists enum member names
_ACTIVE_STATUS_SQL = "status IN ('pending', 'approved')"


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        Index(
            "uq_booking_active_slot",
            "slot_id",
            unique=True,
            sqlite_where=text(_ACTIVE_STATUS_SQL),
            postgresql_where=text(_ACTIVE_STATUS_SQL),
        ),
        Index("ix_booking_status_start", "status", "start_time"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    station_id: Mapped[int] = mapped_column(ForeignKey("stations.id", ondelete="CASCADE"), index=True)
    slot_id: Mapped[int] = mapped_column(ForeignKey("slots.id", ondelete="CASCADE"))
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[BookingStatus] = mapped_column(Enum(BookingStatus), default=BookingStatus.pending)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
    qr_token: Mapped[str | None] = mapped_column(String(64))
    qr_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    station = relationship("Station")
    slot = relationship("Slot")
