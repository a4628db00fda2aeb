from . import (
    booking_queries,
    booking_service,
    capacity_service,
    notification_service,
    qr_service,
    slot_allocator,
    slot_status_service,
    time_window,
    timeslot_service,
)
__all__ = [
    "booking_queries",
    "booking_service",
    "capacity_service",
    "notification_service",
    "qr_service",
    "slot_allocator",
    "slot_status_service",
    "time_window",
    "timeslot_service",
]
