from datetime import datetime, timedelta, timezone
import pytest
from evcharge.db import models
from evcharge.services import booking_service
from evcharge.services.errors import ConflictError, NotFoundError, TransientError, ValidationError

NOW = datetime(2026, 3, 10, 6, 0, tzinfo=timezone.utc)


def create_station(session, capacity=1, is_active=True):
    station = models.Station(name="Colombo Central", capacity=capacity, is_active=is_active)
    session.add(station)
    session.commit()
    session.refresh(station)
    return station


def create_slot(session, station, number=1, connector_type="CCS", status=models.SlotStatus.available):
    slot = models.Slot(
        station_id=station.id,
        number=number,
        connector_type=connector_type,
        status=status,
    )
    session.add(slot)
    session.commit()
    session.refresh(slot)
    return slot


def book(session, station, start=None, owner="owner-a", connector_type="CCS", **kwargs):
    start = start or NOW + timedelta(days=1)
    return booking_service.create_booking(
        session,
        station_id=station.id,
        connector_type=connector_type,
        start_time=start,
        end_time=start + timedelta(hours=1),
        owner_id=owner,
        now=kwargs.pop("now", NOW),
        **kwargs,
    )


def test_create_booking_claims_slot(db_session):
    station = create_station(db_session)
    slot = create_slot(db_session, station)

    booking = book(db_session, station)

    db_session.refresh(slot)
    assert booking.status == models.BookingStatus.pending
    assert booking.slot_id == slot.id
    assert slot.status == models.SlotStatus.booked
    assert booking.qr_token
    assert booking.qr_expires_at.replace(tzinfo=timezone.utc) == NOW + timedelta(minutes=15)


def test_second_booking_gets_no_available_slot(db_session):
    station = create_station(db_session)
    create_slot(db_session, station)
    book(db_session, station, owner="owner-a")

    with pytest.raises(ConflictError) as exc_info:
        book(db_session, station, owner="owner-b")

    assert exc_info.value.reason == "NoAvailableSlot"
    assert db_session.query(models.Booking).count() == 1


def test_lowest_slot_id_is_claimed_first(db_session):
    station = create_station(db_session, capacity=3)
    first = create_slot(db_session, station, number=1)
    second = create_slot(db_session, station, number=2)
    create_slot(db_session, station, number=3, connector_type="Type2")

    assert book(db_session, station, owner="a").slot_id == first.id
    assert book(db_session, station, owner="b").slot_id == second.id
    with pytest.raises(ConflictError):
        book(db_session, station, owner="c")


def test_connector_type_must_match(db_session):
    station = create_station(db_session)
    create_slot(db_session, station, connector_type="CHAdeMO")

    with pytest.raises(ConflictError) as exc_info:
        book(db_session, station, connector_type="CCS")
    assert exc_info.value.reason == "NoAvailableSlot"


def test_inactive_station_rejects_booking(db_session):
    station = create_station(db_session, is_active=False)
    slot = create_slot(db_session, station)

    with pytest.raises(ConflictError) as exc_info:
        book(db_session, station)

    db_session.refresh(slot)
    assert exc_info.value.reason == "StationInactive"
    assert slot.status == models.SlotStatus.available


def test_missing_station(db_session):
    with pytest.raises(NotFoundError):
        booking_service.create_booking(
            db_session,
            station_id=999,
            connector_type="CCS",
            start_time=NOW + timedelta(hours=2),
            end_time=NOW + timedelta(hours=3),
            owner_id="owner-a",
            now=NOW,
        )


def test_capacity_mismatch_is_operational_error(db_session):
    station = create_station(db_session, capacity=2)
    slot = create_slot(db_session, station)

    with pytest.raises(ConflictError) as exc_info:
        book(db_session, station)

    db_session.refresh(slot)
    assert exc_info.value.reason == "OperationalMismatch"
    assert slot.status == models.SlotStatus.available


@pytest.mark.parametrize(
    "start, end, reason",
    [
        (NOW + timedelta(hours=3), NOW + timedelta(hours=2), "InvalidRange"),
        (NOW + timedelta(hours=3), NOW + timedelta(hours=3), "InvalidRange"),
        (NOW - timedelta(seconds=1), NOW + timedelta(hours=1), "OutOfWindow"),
        (NOW + timedelta(days=7, seconds=1), NOW + timedelta(days=7, hours=1), "OutOfWindow"),
    ],
)
def test_time_window_rejections(db_session, start, end, reason):
    station = create_station(db_session)
    slot = create_slot(db_session, station)

    with pytest.raises(ValidationError) as exc_info:
        booking_service.create_booking(
            db_session,
            station_id=station.id,
            connector_type="CCS",
            start_time=start,
            end_time=end,
            owner_id="owner-a",
            now=NOW,
        )

    db_session.refresh(slot)
    assert exc_info.value.reason == reason
    assert slot.status == models.SlotStatus.available


def test_window_edges_are_accepted(db_session):
    station = create_station(db_session, capacity=2)
    create_slot(db_session, station, number=1)
    create_slot(db_session, station, number=2)

    at_now = book(db_session, station, start=NOW, owner="a")
    at_horizon = book(db_session, station, start=NOW + timedelta(days=7), owner="b")

    assert at_now.status == models.BookingStatus.pending
    assert at_horizon.status == models.BookingStatus.pending
    # a booking starting right away cannot carry a token past its start
    assert at_now.qr_expires_at.replace(tzinfo=timezone.utc) == NOW


def test_approve_then_finalize_frees_slot(db_session):
    station = create_station(db_session)
    slot = create_slot(db_session, station)
    booking = book(db_session, station, owner="owner-a")

    approved = booking_service.approve_booking(db_session, booking.id, operator_id="op-1", now=NOW)
    assert approved.status == models.BookingStatus.approved
    db_session.refresh(slot)
    assert slot.status == models.SlotStatus.booked

    finalized = booking_service.finalize_booking(db_session, booking.id, operator_id="op-1", now=NOW)
    db_session.refresh(slot)
    assert finalized.status == models.BookingStatus.finalized
    assert slot.status == models.SlotStatus.available

    rebooked = book(db_session, station, owner="owner-b")
    assert rebooked.slot_id == slot.id


def test_finalize_requires_approval(db_session):
    station = create_station(db_session)
    slot = create_slot(db_session, station)
    booking = book(db_session, station)

    with pytest.raises(ConflictError) as exc_info:
        booking_service.finalize_booking(db_session, booking.id, operator_id="op-1", now=NOW)

    db_session.refresh(slot)
    db_session.refresh(booking)
    assert exc_info.value.reason == "InvalidTransition"
    assert booking.status == models.BookingStatus.pending
    assert slot.status == models.SlotStatus.booked


def test_approve_twice_is_rejected(db_session):
    station = create_station(db_session)
    create_slot(db_session, station)
    booking = book(db_session, station)
    booking_service.approve_booking(db_session, booking.id, operator_id="op-1", now=NOW)

    with pytest.raises(ConflictError):
        booking_service.approve_booking(db_session, booking.id, operator_id="op-1", now=NOW)


def test_approve_unknown_booking(db_session):
    with pytest.raises(NotFoundError):
        booking_service.approve_booking(db_session, 404, operator_id="op-1", now=NOW)


def test_expired_deadline_rolls_back(db_session):
    station = create_station(db_session)
    slot = create_slot(db_session, station)

    with pytest.raises(TransientError) as exc_info:
        book(db_session, station, deadline=datetime.now(timezone.utc) - timedelta(seconds=1))

    db_session.refresh(slot)
    assert exc_info.value.reason == "DeadlineExceeded"
    assert slot.status == models.SlotStatus.available
    assert db_session.query(models.Booking).count() == 0
