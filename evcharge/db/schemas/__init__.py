from .booking import (
    Booking,
    BookingCreate,
    BookingPage,
    BookingUpdate,
    Count,
    QrCode,
    ReservationOverview,
)
from .slot import Slot, SlotStatusUpdate
from .time_slot import MaintenanceResult, TimeSlot, TimeSlotAvailability
