from datetime import datetime, timedelta, timezone

import pytest

from evcharge.core.auth import Role
from evcharge.db import models
from evcharge.services import booking_service, qr_service
from evcharge.services.errors import ConflictError, NotFoundError

NOW = datetime(2026, 3, 10, 6, 0, tzinfo=timezone.utc)


def create_booking(session, start):
    station = models.Station(name="Negombo", capacity=1)
    session.add(station)
    session.commit()
    session.add(models.Slot(station_id=station.id, number=1, connector_type="CCS"))
    session.commit()
    return booking_service.create_booking(
        session,
        station_id=station.id,
        connector_type="CCS",
        start_time=start,
        end_time=start + timedelta(hours=2),
        owner_id="owner-a",
        now=NOW,
    )


def fake_renderer(token):
    return f"png:{token}".encode()


def test_regeneration_issues_new_token(db_session):
    booking = create_booking(db_session, NOW + timedelta(days=1))
    previous = booking.qr_token
    later = NOW + timedelta(hours=1)

    qr = booking_service.generate_qr_code(db_session, booking.id, now=later, renderer=fake_renderer)

    db_session.refresh(booking)
    assert qr.token != previous
    assert booking.qr_token == qr.token
    assert qr.expires_at == later + timedelta(minutes=15)
    assert qr.image == f"png:{qr.token}".encode()

    again = booking_service.generate_qr_code(db_session, booking.id, now=later, renderer=fake_renderer)
    assert again.token != qr.token


def test_expiry_is_capped_at_start(db_session):
    start = NOW + timedelta(minutes=10)
    booking = create_booking(db_session, start)

    qr = booking_service.generate_qr_code(db_session, booking.id, now=NOW, renderer=fake_renderer)

    assert qr.expires_at == start


def test_closed_booking_has_no_qr(db_session):
    booking = create_booking(db_session, NOW + timedelta(days=1))
    booking_service.cancel_booking(
        db_session, booking.id, requester_id="owner-a", requester_role=Role.owner, now=NOW
    )

    with pytest.raises(ConflictError):
        booking_service.generate_qr_code(db_session, booking.id, now=NOW, renderer=fake_renderer)


def test_unknown_booking(db_session):
    with pytest.raises(NotFoundError):
        booking_service.generate_qr_code(db_session, 12, now=NOW, renderer=fake_renderer)


def test_issue_token_uses_ttl():
    qr = qr_service.issue_token(NOW + timedelta(days=2), NOW)
    assert qr.expires_at == NOW + timedelta(minutes=15)
    assert len(qr.token) == 36


def test_render_png_produces_png():
    image = qr_service.render_png("token-123")
    assert image.startswith(b"\x89PNG")
