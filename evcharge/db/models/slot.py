from datetime import datetime
from enum import Enum as PyEnum
from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from ..session import Base


class SlotStatus(str, PyEnum):
    available = "Available"
    booked = "Booked"
    inactive = "Inactive"


class Slot(Base):
    __tablename__ = "slots"
    __table_args__ = (
        UniqueConstraint("station_id", "number", name="uq_slot_station_number"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    station_id: Mapped[int] = mapped_column(ForeignKey("stations.id", ondelete="CASCADE"), index=True)
    number: Mapped[int] = mapped_column(Integer, default=1)
    connector_type: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[SlotStatus] = mapped_column(Enum(SlotStatus), default=SlotStatus.available)
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    # ids of the generated TimeSlot rows currently inside the rolling window
    time_slot_ids: Mapped[list] = mapped_column(JSON, default=list)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    station = relationship("Station", back_populates="slots")
    time_slots = relationship("TimeSlot", back_populates="slot")
