"""Common application-wide constants."""

from datetime import time, timedelta

# Local start times of the generated charging sessions for every slot and day
FIXED_SESSION_STARTS = (
    time(1, 15),
    time(3, 30),
    time(5, 45),
    time(8, 0),
    time(10, 15),
    time(12, 30),
    time(14, 45),
    time(17, 0),
    time(19, 15),
    time(21, 30),
)
SESSION_DURATION = timedelta(minutes=120)

# Number of local calendar days kept in the time slot table
ROLLING_WINDOW_DAYS = 7

# Upcoming approved bookings cover this many local days after today
UPCOMING_BOOKINGS_DAYS = 3


__all__ = [
    "FIXED_SESSION_STARTS",
    "SESSION_DURATION",
    "ROLLING_WINDOW_DAYS",
    "UPCOMING_BOOKINGS_DAYS",
]
