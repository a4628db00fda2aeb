from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from evcharge.db import models
from evcharge.db.models.booking import BookingStatus
from evcharge.services import booking_queries, booking_service

NOW = datetime(2026, 3, 10, 6, 0, tzinfo=timezone.utc)
TZ = ZoneInfo("Asia/Colombo")


@pytest.fixture()
def bookings(db_session):
    station = models.Station(name="Kurunegala", capacity=4)
    db_session.add(station)
    db_session.commit()
    db_session.add_all(
        [models.Slot(station_id=station.id, number=n, connector_type="CCS") for n in range(1, 5)]
    )
    db_session.commit()

    def book(offset, owner):
        start = NOW + offset
        return booking_service.create_booking(
            db_session,
            station_id=station.id,
            connector_type="CCS",
            start_time=start,
            end_time=start + timedelta(hours=1),
            owner_id=owner,
            now=NOW,
        )

    today = book(timedelta(hours=3), "owner-a")
    tomorrow = book(timedelta(days=1), "owner-a")
    later = book(timedelta(days=4), "owner-b")
    pending = book(timedelta(days=2), "owner-b")
    for booking in (today, tomorrow, later):
        booking_service.approve_booking(db_session, booking.id, operator_id="op-1", now=NOW)
    return station, today, tomorrow, later, pending


def test_counts(db_session, bookings):
    assert booking_queries.count_pending_bookings(db_session) == 1
    assert booking_queries.count_approved_future_bookings(db_session, now=NOW) == 3
    assert booking_queries.count_approved_future_bookings(db_session, now=NOW + timedelta(days=2)) == 1


def test_today_and_upcoming_use_local_days(db_session, bookings):
    station, today, tomorrow, later, _ = bookings

    todays = booking_queries.list_today_approved_bookings(db_session, station.id, now=NOW, tz=TZ)
    upcoming = booking_queries.list_upcoming_approved_bookings(db_session, station.id, now=NOW, tz=TZ)

    assert [b.id for b in todays] == [today.id]
    # four days out falls past the three day horizon
    assert [b.id for b in upcoming] == [tomorrow.id]
    assert later.id not in [b.id for b in upcoming]


def test_list_by_owner_newest_first(db_session, bookings):
    _, today, tomorrow, _, _ = bookings

    owned = booking_queries.list_bookings_by_owner(db_session, "owner-a")

    assert [b.id for b in owned] == [tomorrow.id, today.id]


def test_paged_status_listing(db_session, bookings):
    _, today, tomorrow, later, _ = bookings

    first, total = booking_queries.list_bookings(
        db_session, [BookingStatus.approved], page=1, page_size=2
    )
    second, _ = booking_queries.list_bookings(
        db_session, [BookingStatus.approved], page=2, page_size=2
    )

    assert total == 3
    assert [b.id for b in first] == [later.id, tomorrow.id]
    assert [b.id for b in second] == [today.id]


def test_reservation_overview(db_session, bookings):
    _, _, _, _, pending = bookings
    booking_service.cancel_booking(
        db_session, pending.id, requester_id="owner-b", requester_role="owner", now=NOW
    )

    overview = booking_queries.reservation_overview(db_session)
    window = booking_queries.reservation_overview(
        db_session, from_date=NOW, to_date=NOW + timedelta(days=1, hours=1)
    )

    assert overview == {"pending": 0, "approved": 3, "finalized": 0, "cancelled": 1}
    assert window == {"pending": 0, "approved": 2, "finalized": 0, "cancelled": 0}


def test_station_approved_count(db_session, bookings):
    station = bookings[0]

    assert booking_queries.count_approved_bookings_by_station(db_session, station.id) == 3
    assert (
        booking_queries.count_approved_bookings_by_station(
            db_session, station.id, today_only=True, now=NOW, tz=TZ
        )
        == 1
    )
    assert booking_queries.count_approved_bookings_by_station(db_session, station.id + 1) == 0
