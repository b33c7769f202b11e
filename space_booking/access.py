from __future__ import annotations

from .errors import ForbiddenError, UnauthenticatedError
from .models import Principal, Role


def extract_bearer_token(header: str | None) -> str:
    if not header:
        raise UnauthenticatedError("No autenticado")
    scheme, _, token = header.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise UnauthenticatedError("No autenticado")
    return token.strip()


def require_role(principal: Principal, role: Role) -> None:
    if principal.role is not role:
        raise ForbiddenError("No autorizado")


def require_self_or_admin(principal: Principal, user_id: int) -> None:
    if principal.is_admin or principal.user_id == user_id:
        return
    raise ForbiddenError("No autorizado")
