from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Callable, Mapping

from .booking import TimeSlot, conflicts_with
from .errors import ForbiddenError, NotFoundError, ValidationError
from .models import Principal, Reservation
from .validator import REQUIRED_MESSAGE, ReservationValidator, ValidatedReservation, parse_identifier
from .yaml_store import RESERVATIONS, SPACES, BookingYamlRepository

PATCHABLE_FIELDS = ("nombre", "espacio_id", "fecha", "hora_inicio", "hora_fin")


class ReservationStore:
    """CRUD over reservations with owner-only mutation.

    ``create`` and ``update`` hold the repository lock across validation and
    the write, so two requests in this process cannot both claim a slot.
    """

    def __init__(self, repository: BookingYamlRepository, clock: Callable[[], datetime] | None = None) -> None:
        self.repository = repository
        self.clock: Callable[[], datetime] = clock or repository.clock
        self.validator = ReservationValidator(self, self.clock)

    def _all(self) -> list[Reservation]:
        return [Reservation.from_dict(row) for row in self.repository.read_rows(RESERVATIONS)]

    def space_exists(self, space_id: int) -> bool:
        return self.repository.find_row(SPACES, "id", space_id) is not None

    def get(self, reservation_id: int) -> Reservation:
        row = self.repository.find_row(RESERVATIONS, "id", reservation_id)
        if row is None:
            raise NotFoundError("Reserva no encontrada.")
        return Reservation.from_dict(row)

    def list_for_user(self, user_id: int) -> list[Reservation]:
        owned = [record for record in self._all() if record.user_id == user_id]
        return sorted(owned, key=lambda record: (record.day, record.start, record.reservation_id))

    def list_for_space(self, space_id: int) -> list[Reservation]:
        booked = [record for record in self._all() if record.space_id == space_id]
        return sorted(booked, key=lambda record: (record.day, record.start, record.reservation_id))

    def list_on_date(self, space_id: int, day: date, exclude_id: int | None = None) -> list[Reservation]:
        return [
            record
            for record in self._all()
            if record.space_id == space_id and record.day == day and record.reservation_id != exclude_id
        ]

    def spaces_fully_booked_on(self, day: date) -> set[int]:
        return {record.space_id for record in self._all() if record.day == day and record.is_full_day}

    def find_overlapping(
        self,
        space_id: int,
        day: date,
        start: time,
        end: time,
        exclude_id: int | None = None,
    ) -> list[Reservation]:
        candidate = TimeSlot(start, end)
        return [record for record in self.list_on_date(space_id, day, exclude_id) if conflicts_with(candidate, record.slot)]

    def create(self, payload: Mapping[str, Any], principal: Principal) -> Reservation:
        requested_owner = payload.get("user_id")
        if requested_owner is not None and parse_identifier(requested_owner, "user_id") != principal.user_id:
            raise ForbiddenError("No autorizado")

        name = _required_name(payload)
        now = self.clock()
        with self.repository.transaction():
            validated = self._validate_or_log(payload, principal, now=now)
            record = Reservation(
                reservation_id=self.repository.next_id(RESERVATIONS),
                name=name,
                space_id=validated.space_id,
                user_id=principal.user_id,
                day=validated.day,
                start=validated.start,
                end=validated.end,
                created_at=now,
                updated_at=now,
            )
            self.repository.insert_row(RESERVATIONS, record.to_dict())

        self.repository.log_event("RESERVATION_CREATED", _event_payload(record), now)
        return record

    def update(self, reservation_id: int, patch: Mapping[str, Any], principal: Principal) -> Reservation:
        now = self.clock()
        with self.repository.transaction():
            current = self.get(reservation_id)
            if current.user_id != principal.user_id:
                raise ForbiddenError("No autorizado")
            requested_owner = patch.get("user_id")
            if requested_owner is not None and parse_identifier(requested_owner, "user_id") != current.user_id:
                raise ForbiddenError("No autorizado")

            merged = current.to_dict()
            merged.update({field: patch[field] for field in PATCHABLE_FIELDS if field in patch})
            name = _required_name(merged)

            validated = self._validate_or_log(merged, principal, exclude_id=reservation_id, now=now)
            updated = Reservation(
                reservation_id=current.reservation_id,
                name=name,
                space_id=validated.space_id,
                user_id=current.user_id,
                day=validated.day,
                start=validated.start,
                end=validated.end,
                created_at=current.created_at,
                updated_at=now,
            )
            self.repository.replace_row(RESERVATIONS, updated.to_dict())

        self.repository.log_event("RESERVATION_UPDATED", _event_payload(updated), now)
        return updated

    def delete(self, reservation_id: int, principal: Principal) -> Reservation:
        with self.repository.transaction():
            current = self.get(reservation_id)
            if current.user_id != principal.user_id:
                raise ForbiddenError("No autorizado")
            self.repository.delete_rows(RESERVATIONS, lambda row: row.get("id") == reservation_id)

        self.repository.log_event("RESERVATION_DELETED", _event_payload(current))
        return current

    def delete_for_space(self, space_id: int) -> int:
        removed = self.repository.delete_rows(RESERVATIONS, lambda row: row.get("espacio_id") == space_id)
        for row in removed:
            self.repository.log_event("RESERVATION_DELETED", {"reservation_id": row["id"], "reason": "space_deleted"})
        return len(removed)

    def delete_for_user(self, user_id: int) -> int:
        removed = self.repository.delete_rows(RESERVATIONS, lambda row: row.get("user_id") == user_id)
        for row in removed:
            self.repository.log_event("RESERVATION_DELETED", {"reservation_id": row["id"], "reason": "user_deleted"})
        return len(removed)

    def _validate_or_log(
        self,
        payload: Mapping[str, Any],
        principal: Principal,
        exclude_id: int | None = None,
        now: datetime | None = None,
    ) -> ValidatedReservation:
        try:
            return self.validator.validate(payload, exclude_reservation_id=exclude_id, now=now)
        except ValidationError as error:
            self.repository.log_event(
                "RESERVATION_REJECTED",
                {
                    "user_id": principal.user_id,
                    "reservation_id": exclude_id,
                    "field": error.field,
                    "reason": error.message,
                },
                now,
            )
            raise


def _required_name(payload: Mapping[str, Any]) -> str:
    name = payload.get("nombre")
    if name is None or not str(name).strip():
        raise ValidationError("nombre", REQUIRED_MESSAGE.format(field="nombre"))
    return str(name).strip()


def _event_payload(record: Reservation) -> dict[str, Any]:
    return {
        "reservation_id": record.reservation_id,
        "space_id": record.space_id,
        "user_id": record.user_id,
        "date": record.day.isoformat(),
        "start": record.start.strftime("%H:%M"),
        "end": record.end.strftime("%H:%M"),
    }
