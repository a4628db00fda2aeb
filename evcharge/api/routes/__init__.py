from . import (
    bookings,
    slots,
    time_slots,
)

__all__ = [
    "bookings",
    "slots",
    "time_slots",
]
