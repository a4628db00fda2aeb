from __future__ import annotations

import io
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable

import qrcode

from ..config import get_settings
from ..core.clock import as_utc

QrRenderer = Callable[[str], bytes]


@dataclass(slots=True)
class QrCode:
    token: str
    expires_at: datetime
    image: bytes | None = None


def render_png(token: str) -> bytes:
    img = qrcode.make(token)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def issue_token(start_time: datetime, now: datetime) -> QrCode:
    """Mint a fresh check-in token that expires no later than the session start."""

    ttl = timedelta(minutes=get_settings().qr_token_ttl_min)
    expires_at = min(as_utc(now) + ttl, as_utc(start_time))
    return QrCode(token=str(uuid.uuid4()), expires_at=expires_at)


__all__ = ["QrCode", "QrRenderer", "issue_token", "render_png"]
