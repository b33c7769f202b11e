from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime
from typing import Any, Callable, Mapping
import math

from .access import require_role
from .errors import NotFoundError, StorageError, ValidationError
from .images import ImageBlobStore
from .models import Principal, Role, Space
from .reservations import ReservationStore
from .validator import REQUIRED_MESSAGE, parse_date
from .yaml_store import SPACES, BookingYamlRepository

DEFAULT_PER_PAGE = 15
MAX_PER_PAGE = 100
MAX_NAME_LENGTH = 255


@dataclass(frozen=True)
class SpaceFilters:
    name_pattern: str | None = None
    min_capacity: int | None = None
    unavailable_on_date: date | None = None

    @staticmethod
    def from_query(args: Mapping[str, Any]) -> "SpaceFilters":
        name_pattern = str(args.get("nombre") or "").strip() or None
        capacity_text = str(args.get("capacidad") or "").strip()
        date_text = str(args.get("fecha") or "").strip()
        return SpaceFilters(
            name_pattern=name_pattern,
            min_capacity=_parse_positive_int(capacity_text, "capacidad", allow_zero=True) if capacity_text else None,
            unavailable_on_date=parse_date(date_text) if date_text else None,
        )


@dataclass(frozen=True)
class Page:
    items: list[Any]
    page: int
    per_page: int
    total: int

    @property
    def last_page(self) -> int:
        return max(1, math.ceil(self.total / self.per_page))

    def to_dict(self, serialize: Callable[[Any], dict[str, Any]]) -> dict[str, Any]:
        return {
            "data": [serialize(item) for item in self.items],
            "current_page": self.page,
            "per_page": self.per_page,
            "total": self.total,
            "last_page": self.last_page,
        }


def parse_pagination(args: Mapping[str, Any]) -> tuple[int, int]:
    page_text = str(args.get("page") or "").strip()
    per_page_text = str(args.get("per_page") or "").strip()
    page = _parse_positive_int(page_text, "page") if page_text else 1
    per_page = _parse_positive_int(per_page_text, "per_page") if per_page_text else DEFAULT_PER_PAGE
    if per_page > MAX_PER_PAGE:
        raise ValidationError("per_page", f"El campo per_page no puede ser mayor que {MAX_PER_PAGE}.")
    return page, per_page


def _parse_positive_int(value: Any, field: str, allow_zero: bool = False) -> int:
    if isinstance(value, bool):
        raise ValidationError(field, f"El campo {field} debe ser un número entero.")
    try:
        parsed = int(str(value).strip())
    except ValueError:
        raise ValidationError(field, f"El campo {field} debe ser un número entero.") from None
    if parsed < 0 or (parsed == 0 and not allow_zero):
        raise ValidationError(field, f"El campo {field} debe ser un número entero positivo.")
    return parsed


def _parse_capacity(payload: Mapping[str, Any]) -> int:
    value = payload.get("capacidad")
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("capacidad", REQUIRED_MESSAGE.format(field="capacidad"))
    return _parse_positive_int(value, "capacidad")


def _parse_text(payload: Mapping[str, Any], field: str, max_length: int | None = None) -> str:
    value = payload.get(field)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, REQUIRED_MESSAGE.format(field=field))
    if max_length is not None and len(value) > max_length:
        raise ValidationError(field, f"El campo {field} no puede superar {max_length} caracteres.")
    return value.strip()


class SpaceCatalog:
    """Reservable spaces: filtered listing for everyone, mutation for admins."""

    def __init__(
        self,
        repository: BookingYamlRepository,
        images: ImageBlobStore,
        reservations: ReservationStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.images = images
        self.reservations = reservations
        self.clock: Callable[[], datetime] = clock or repository.clock

    def _all(self) -> list[Space]:
        spaces = [Space.from_dict(row) for row in self.repository.read_rows(SPACES)]
        return sorted(spaces, key=lambda space: space.space_id)

    def get(self, space_id: int) -> Space:
        row = self.repository.find_row(SPACES, "id", space_id)
        if row is None:
            raise NotFoundError("Espacio no encontrado.")
        return Space.from_dict(row)

    def list(self, filters: SpaceFilters | None = None, page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> Page:
        filters = filters or SpaceFilters()
        spaces = self._all()

        if filters.name_pattern:
            pattern = filters.name_pattern.casefold()
            spaces = [space for space in spaces if pattern in space.name.casefold()]
        if filters.min_capacity is not None:
            spaces = [space for space in spaces if space.capacity >= filters.min_capacity]
        if filters.unavailable_on_date is not None:
            # Only full-day bookings hide a space; partial bookings are settled at booking time.
            blocked = self.reservations.spaces_fully_booked_on(filters.unavailable_on_date)
            spaces = [space for space in spaces if space.space_id not in blocked]

        offset = (page - 1) * per_page
        return Page(items=spaces[offset : offset + per_page], page=page, per_page=per_page, total=len(spaces))

    def detail(self, space: Space) -> dict[str, Any]:
        """Serialize ``space`` with its image inlined as a base64 data URI."""
        payload = space.to_dict()
        payload["imagen"] = self.images.to_data_uri(space.image) if space.image and self.images.exists(space.image) else None
        return payload

    def create(self, payload: Mapping[str, Any], principal: Principal) -> Space:
        require_role(principal, Role.ADMIN)
        name = _parse_text(payload, "nombre", MAX_NAME_LENGTH)
        description = _parse_text(payload, "descripcion")
        capacity = _parse_capacity(payload)

        now = self.clock()
        image = self._store_image(payload.get("imagen"))
        try:
            space = Space(
                space_id=self.repository.next_id(SPACES),
                name=name,
                description=description,
                capacity=capacity,
                image=image,
                created_at=now,
                updated_at=now,
            )
            self.repository.insert_row(SPACES, space.to_dict())
        except StorageError:
            self._discard_image(image)
            raise

        self.repository.log_event(
            "SPACE_CREATED",
            {"space_id": space.space_id, "name": space.name, "image": image, "by": principal.user_id},
            now,
        )
        return space

    def update(self, space_id: int, payload: Mapping[str, Any], principal: Principal) -> Space:
        require_role(principal, Role.ADMIN)

        changes: dict[str, Any] = {}
        if "nombre" in payload:
            changes["name"] = _parse_text(payload, "nombre", MAX_NAME_LENGTH)
        if "descripcion" in payload:
            changes["description"] = _parse_text(payload, "descripcion")
        if "capacidad" in payload:
            changes["capacity"] = _parse_capacity(payload)

        with self.repository.transaction():
            current = self.get(space_id)
            new_image = None
            if "imagen" in payload:
                new_image = self._store_image(payload.get("imagen"))
                changes["image"] = new_image

            now = self.clock()
            updated = replace(current, updated_at=now, **changes)
            try:
                stored = self.repository.replace_row(SPACES, updated.to_dict())
            except StorageError:
                self._discard_image(new_image)
                raise
            if not stored:
                self._discard_image(new_image)
                raise NotFoundError("Espacio no encontrado.")

        if "image" in changes and current.image and current.image != updated.image:
            self._discard_image(current.image)

        self.repository.log_event(
            "SPACE_UPDATED",
            {"space_id": space_id, "fields": sorted(changes), "by": principal.user_id},
            now,
        )
        return updated

    def delete(self, space_id: int, principal: Principal) -> Space:
        require_role(principal, Role.ADMIN)
        with self.repository.transaction():
            current = self.get(space_id)
            self.repository.delete_rows(SPACES, lambda row: row.get("id") == space_id)
            removed_reservations = self.reservations.delete_for_space(space_id)

        self._discard_image(current.image)
        self.repository.log_event(
            "SPACE_DELETED",
            {"space_id": space_id, "reservations_removed": removed_reservations, "by": principal.user_id},
        )
        return current

    def _store_image(self, encoded: Any) -> str | None:
        if encoded is None or (isinstance(encoded, str) and not encoded.strip()):
            return None
        if not isinstance(encoded, str):
            raise ValidationError("imagen", "La imagen debe enviarse como texto base64.")
        name = self.images.save_base64(encoded)
        self.repository.log_event("IMAGE_STORED", {"image": name})
        return name

    def _discard_image(self, name: str | None) -> None:
        if name and self.images.delete(name):
            self.repository.log_event("IMAGE_DELETED", {"image": name})
