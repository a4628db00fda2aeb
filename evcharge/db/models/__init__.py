from .station import Station
from .slot import Slot, SlotStatus
from .time_slot import TimeSlot, TimeSlotStatus
from .booking import Booking, BookingStatus, ACTIVE_BOOKING_STATUSES
