from datetime import datetime, timedelta
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from ..config import get_settings
from ..core.auth import Principal, Role
from ..core.clock import utc_now
from ..core.security import decode_access_token


oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_current_principal(token: Annotated[str, Depends(oauth2_scheme)]) -> Principal:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    try:
        payload = decode_access_token(token)
    except JWTError as exc:
        raise credentials_exception from exc
    subject = payload.get("sub")
    if subject is None:
        raise credentials_exception
    try:
        role = Role(payload.get("role"))
    except ValueError as exc:
        raise credentials_exception from exc
    station_id = payload.get("station_id")
    return Principal(
        id=str(subject),
        role=role,
        station_id=int(station_id) if station_id is not None else None,
    )


def require_roles(*roles: str):
    def dependency(principal: Annotated[Principal, Depends(get_current_principal)]) -> Principal:
        if principal.role.value not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
        return principal

    return dependency


def request_deadline() -> datetime | None:
    """Latest instant a mutating request may still commit."""
    timeout = get_settings().request_timeout_seconds
    if timeout <= 0:
        return None
    return utc_now() + timedelta(seconds=timeout)
