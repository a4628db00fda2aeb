from dataclasses import dataclass
from enum import Enum as PyEnum


class Role(str, PyEnum):
    admin = "admin"
    operator = "operator"
    owner = "owner"


@dataclass(frozen=True, slots=True)
class Principal:
    """Authenticated caller.

    ``station_id`` is only set for operators bound to a single station.
    """

    id: str
    role: Role
    station_id: int | None = None

    @property
    def is_owner(self) -> bool:
        return self.role == Role.owner
