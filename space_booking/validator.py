from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any, Callable, Mapping

from .booking import TimeSlot, is_full_day
from .errors import ValidationError

if TYPE_CHECKING:
    from .reservations import ReservationStore

REQUIRED_MESSAGE = "El campo {field} es obligatorio."
PAST_START_MESSAGE = "La hora de inicio debe ser en el futuro."
SLOT_TAKEN_MESSAGE = "El espacio ya está reservado en este horario."


@dataclass(frozen=True)
class ValidatedReservation:
    space_id: int
    day: date
    start: time
    end: time
    full_day: bool

    @property
    def slot(self) -> TimeSlot:
        return TimeSlot(self.start, self.end)

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.day, self.start)


def _required(candidate: Mapping[str, Any], field: str) -> Any:
    value = candidate.get(field)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(field, REQUIRED_MESSAGE.format(field=field))
    return value


def parse_identifier(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(field, f"El campo {field} debe ser un número entero.")
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise ValidationError(field, f"El campo {field} debe ser un número entero.") from None
    if parsed <= 0:
        raise ValidationError(field, f"El campo {field} debe ser un número entero positivo.")
    return parsed


def parse_date(value: Any, field: str = "fecha") -> date:
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(field, f"El campo {field} no es una fecha válida (AAAA-MM-DD).") from None


def parse_time(value: Any, field: str) -> time:
    text = str(value).strip()
    try:
        parsed = datetime.strptime(text, "%H:%M").time()
    except ValueError:
        raise ValidationError(field, f"El campo {field} debe tener el formato HH:MM.") from None
    # strptime tolerates "9:5"; only the two-digit form is accepted on the wire.
    if parsed.strftime("%H:%M") != text:
        raise ValidationError(field, f"El campo {field} debe tener el formato HH:MM.")
    return parsed


class ReservationValidator:
    """Decide whether a proposed booking may be stored.

    Rules run in order and the first violation is raised as a
    ``ValidationError``:

    1. shape: ``espacio_id`` names an existing space, ``fecha`` is a date,
       ``hora_inicio``/``hora_fin`` are HH:MM and the end is after the start;
    2. the start instant (``fecha`` + ``hora_inicio``) lies strictly in the future;
    3. 00:00-23:59 marks a full-day booking;
    4. no other reservation of the same space and date conflicts with the slot.
       ``exclude_reservation_id`` lets an edited reservation ignore itself.

    Validation only reads; the caller commits the result.
    """

    def __init__(self, store: "ReservationStore", clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self.clock: Callable[[], datetime] = clock or datetime.now

    def validate(
        self,
        candidate: Mapping[str, Any],
        exclude_reservation_id: int | None = None,
        now: datetime | None = None,
    ) -> ValidatedReservation:
        validated = self.check_shape(candidate)
        effective_now = now or self.clock()

        if validated.starts_at <= effective_now:
            raise ValidationError("hora_inicio", PAST_START_MESSAGE)

        conflicts = self.store.find_overlapping(
            validated.space_id,
            validated.day,
            validated.start,
            validated.end,
            exclude_id=exclude_reservation_id,
        )
        if conflicts:
            raise ValidationError("hora_inicio", SLOT_TAKEN_MESSAGE)
        return validated

    def check_shape(self, candidate: Mapping[str, Any]) -> ValidatedReservation:
        space_id = parse_identifier(_required(candidate, "espacio_id"), "espacio_id")
        if not self.store.space_exists(space_id):
            raise ValidationError("espacio_id", "El espacio seleccionado no existe.")

        day = parse_date(_required(candidate, "fecha"))
        start = parse_time(_required(candidate, "hora_inicio"), "hora_inicio")
        end = parse_time(_required(candidate, "hora_fin"), "hora_fin")
        if end <= start:
            raise ValidationError("hora_fin", "La hora de fin debe ser posterior a la hora de inicio.")

        return ValidatedReservation(
            space_id=space_id,
            day=day,
            start=start,
            end=end,
            full_day=is_full_day(start, end),
        )
