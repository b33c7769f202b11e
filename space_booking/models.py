from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any

from .booking import TimeSlot


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Principal:
    """Authenticated identity attached to a single request."""

    user_id: int
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def format_clock(value: time) -> str:
    return value.strftime("%H:%M")


def _stored_clock(value: str) -> time:
    """Read an HH:MM value already normalised by ``format_clock``."""
    return datetime.strptime(value, "%H:%M").time()


def _optional_timestamp(value: Any, fallback: datetime) -> datetime:
    if value is None:
        return fallback
    return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class Space:
    space_id: int
    name: str
    description: str
    capacity: int
    created_at: datetime
    updated_at: datetime
    image: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.space_id,
            "nombre": self.name,
            "descripcion": self.description,
            "capacidad": self.capacity,
            "imagen": self.image,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Space":
        created_at = datetime.fromisoformat(str(data["created_at"]))
        return Space(
            space_id=int(data["id"]),
            name=str(data["nombre"]),
            description=str(data.get("descripcion") or ""),
            capacity=int(data["capacidad"]),
            image=(str(data["imagen"]) if data.get("imagen") else None),
            created_at=created_at,
            updated_at=_optional_timestamp(data.get("updated_at"), created_at),
        )


@dataclass(frozen=True)
class Reservation:
    reservation_id: int
    name: str
    space_id: int
    user_id: int
    day: date
    start: time
    end: time
    created_at: datetime
    updated_at: datetime

    @property
    def slot(self) -> TimeSlot:
        return TimeSlot(self.start, self.end)

    @property
    def is_full_day(self) -> bool:
        return self.slot.is_full_day

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.reservation_id,
            "nombre": self.name,
            "espacio_id": self.space_id,
            "user_id": self.user_id,
            "fecha": self.day.isoformat(),
            "hora_inicio": format_clock(self.start),
            "hora_fin": format_clock(self.end),
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Reservation":
        created_at = datetime.fromisoformat(str(data["created_at"]))
        return Reservation(
            reservation_id=int(data["id"]),
            name=str(data.get("nombre") or ""),
            space_id=int(data["espacio_id"]),
            user_id=int(data["user_id"]),
            day=date.fromisoformat(str(data["fecha"])),
            start=_stored_clock(str(data["hora_inicio"])),
            end=_stored_clock(str(data["hora_fin"])),
            created_at=created_at,
            updated_at=_optional_timestamp(data.get("updated_at"), created_at),
        )


@dataclass(frozen=True)
class User:
    user_id: int
    name: str
    email: str
    password_hash: str
    role: Role
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Public representation; the password hash never leaves the store."""
        return {
            "id": self.user_id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value,
            "created_at": self.created_at.isoformat(timespec="seconds"),
            "updated_at": self.updated_at.isoformat(timespec="seconds"),
        }

    def to_record(self) -> dict[str, Any]:
        payload = self.to_dict()
        payload["password"] = self.password_hash
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "User":
        created_at = datetime.fromisoformat(str(data["created_at"]))
        return User(
            user_id=int(data["id"]),
            name=str(data["name"]),
            email=str(data["email"]),
            password_hash=str(data["password"]),
            role=Role(str(data.get("role") or Role.USER.value)),
            created_at=created_at,
            updated_at=_optional_timestamp(data.get("updated_at"), created_at),
        )

    def principal(self) -> Principal:
        return Principal(user_id=self.user_id, role=self.role)


@dataclass(frozen=True)
class AccessToken:
    token_hash: str
    user_id: int
    created_at: datetime
    name: str = "API Token"

    def to_dict(self) -> dict[str, Any]:
        return {
            "token_hash": self.token_hash,
            "user_id": self.user_id,
            "name": self.name,
            "created_at": self.created_at.isoformat(timespec="seconds"),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "AccessToken":
        return AccessToken(
            token_hash=str(data["token_hash"]),
            user_id=int(data["user_id"]),
            name=str(data.get("name") or "API Token"),
            created_at=datetime.fromisoformat(str(data["created_at"])),
        )
