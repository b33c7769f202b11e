from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Mapping
import hashlib
import re
import secrets

from werkzeug.security import check_password_hash, generate_password_hash

from .access import require_role, require_self_or_admin
from .errors import ConflictError, ForbiddenError, NotFoundError, UnauthenticatedError, ValidationError
from .models import AccessToken, Principal, Role, User
from .reservations import ReservationStore
from .validator import REQUIRED_MESSAGE
from .yaml_store import TOKENS, USERS, BookingYamlRepository

MIN_PASSWORD_LENGTH = 8
MAX_FIELD_LENGTH = 255
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _normalize_email(value: str) -> str:
    return value.strip().lower()


def _parse_name(payload: Mapping[str, Any]) -> str:
    value = payload.get("name")
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("name", REQUIRED_MESSAGE.format(field="name"))
    if len(value) > MAX_FIELD_LENGTH:
        raise ValidationError("name", f"El campo name no puede superar {MAX_FIELD_LENGTH} caracteres.")
    return value.strip()


def _parse_email(payload: Mapping[str, Any]) -> str:
    value = payload.get("email")
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("email", REQUIRED_MESSAGE.format(field="email"))
    email = _normalize_email(value)
    if len(email) > MAX_FIELD_LENGTH or not _EMAIL_RE.match(email):
        raise ValidationError("email", "El campo email debe ser una dirección de correo válida.")
    return email


def _parse_password(payload: Mapping[str, Any]) -> str:
    value = payload.get("password")
    if not isinstance(value, str) or not value:
        raise ValidationError("password", REQUIRED_MESSAGE.format(field="password"))
    if len(value) < MIN_PASSWORD_LENGTH:
        raise ValidationError("password", f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres.")
    return value


def _parse_role(value: Any) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise ValidationError("role", "El campo role debe ser 'user' o 'admin'.") from None


class UserDirectory:
    """User accounts, password checks and bearer tokens.

    Tokens are opaque random strings handed out once at login; only their
    SHA-256 digest is stored.
    """

    def __init__(
        self,
        repository: BookingYamlRepository,
        reservations: ReservationStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.reservations = reservations
        self.clock: Callable[[], datetime] = clock or repository.clock

    def _all(self) -> list[User]:
        users = [User.from_dict(row) for row in self.repository.read_rows(USERS)]
        return sorted(users, key=lambda user: user.user_id)

    def get(self, user_id: int) -> User:
        row = self.repository.find_row(USERS, "id", user_id)
        if row is None:
            raise NotFoundError("Usuario no encontrado.")
        return User.from_dict(row)

    def find_by_email(self, email: str) -> User | None:
        normalized = _normalize_email(email)
        return next((user for user in self._all() if user.email == normalized), None)

    def list_users(self, principal: Principal) -> list[User]:
        require_role(principal, Role.ADMIN)
        return self._all()

    def create(self, payload: Mapping[str, Any], principal: Principal | None = None) -> User:
        requested_role = payload.get("role") or Role.USER.value
        if principal is None and requested_role != Role.USER.value:
            raise ForbiddenError("No autorizado para crear usuarios con rol admin.")
        if principal is not None and not principal.is_admin and requested_role == Role.ADMIN.value:
            raise ForbiddenError("No autorizado para crear usuarios con rol admin.")

        with self.repository.transaction():
            email_value = payload.get("email")
            if isinstance(email_value, str) and self.find_by_email(email_value) is not None:
                raise ConflictError("El correo ya está en uso.")

            name = _parse_name(payload)
            email = _parse_email(payload)
            password = _parse_password(payload)
            role = _parse_role(requested_role)

            now = self.clock()
            user = User(
                user_id=self.repository.next_id(USERS),
                name=name,
                email=email,
                password_hash=generate_password_hash(password),
                role=role,
                created_at=now,
                updated_at=now,
            )
            self.repository.insert_row(USERS, user.to_record())

        self.repository.log_event(
            "USER_CREATED",
            {"user_id": user.user_id, "email": user.email, "role": user.role.value},
            now,
        )
        return user

    def update(self, user_id: int, payload: Mapping[str, Any], principal: Principal) -> User:
        require_self_or_admin(principal, user_id)
        with self.repository.transaction():
            current = self.get(user_id)
            changes: dict[str, Any] = {}

            if payload.get("name") is not None:
                changes["name"] = _parse_name(payload)
            if payload.get("email") is not None:
                email = _parse_email(payload)
                owner = self.find_by_email(email)
                if owner is not None and owner.user_id != user_id:
                    raise ConflictError("El correo ya está en uso.")
                changes["email"] = email
            if payload.get("password"):
                changes["password_hash"] = generate_password_hash(_parse_password(payload))
            if payload.get("role") is not None:
                role = _parse_role(payload.get("role"))
                if role is not current.role and not principal.is_admin:
                    raise ForbiddenError("No autorizado")
                changes["role"] = role

            now = self.clock()
            updated = replace(current, updated_at=now, **changes)
            self.repository.replace_row(USERS, updated.to_record())

        self.repository.log_event(
            "USER_UPDATED",
            {"user_id": user_id, "fields": sorted(key for key in changes if key != "password_hash"), "by": principal.user_id},
            now,
        )
        return updated

    def delete(self, user_id: int, principal: Principal) -> User:
        require_self_or_admin(principal, user_id)
        with self.repository.transaction():
            current = self.get(user_id)
            self.repository.delete_rows(USERS, lambda row: row.get("id") == user_id)
            self.repository.delete_rows(TOKENS, lambda row: row.get("user_id") == user_id)
            removed_reservations = self.reservations.delete_for_user(user_id)

        self.repository.log_event(
            "USER_DELETED",
            {"user_id": user_id, "reservations_removed": removed_reservations, "by": principal.user_id},
        )
        return current

    def login(self, payload: Mapping[str, Any]) -> str:
        email = _parse_email(payload)
        password = payload.get("password")
        if not isinstance(password, str) or not password:
            raise ValidationError("password", REQUIRED_MESSAGE.format(field="password"))

        user = self.find_by_email(email)
        if user is None or not check_password_hash(user.password_hash, password):
            self.repository.log_event("LOGIN_FAILED", {"email": email})
            raise UnauthenticatedError("Credenciales incorrectas")

        token = secrets.token_urlsafe(40)
        now = self.clock()
        self.repository.insert_row(TOKENS, AccessToken(token_hash=hash_token(token), user_id=user.user_id, created_at=now).to_dict())
        self.repository.log_event("LOGIN_SUCCEEDED", {"user_id": user.user_id}, now)
        return token

    def resolve_token(self, token: str) -> Principal:
        row = self.repository.find_row(TOKENS, "token_hash", hash_token(token))
        if row is None:
            raise UnauthenticatedError("No autenticado")
        try:
            user = self.get(AccessToken.from_dict(row).user_id)
        except NotFoundError:
            raise UnauthenticatedError("No autenticado") from None
        return user.principal()

    def logout(self, principal: Principal) -> int:
        removed = self.repository.delete_rows(TOKENS, lambda row: row.get("user_id") == principal.user_id)
        self.repository.log_event("TOKENS_REVOKED", {"user_id": principal.user_id, "count": len(removed)})
        return len(removed)
