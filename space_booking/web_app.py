from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Callable
import os

from flask import Flask, jsonify, request

from .access import extract_bearer_token
from .accounts import UserDirectory
from .catalog import SpaceCatalog, SpaceFilters, parse_pagination
from .errors import BookingError, NotFoundError, StorageError, ValidationError
from .images import ImageBlobStore
from .models import Principal, Reservation
from .reservations import ReservationStore
from .validator import parse_identifier
from .yaml_store import BookingYamlRepository


def create_app(
    data_dir: str | Path = "data",
    now_provider: Callable[[], datetime] | None = None,
) -> Flask:
    app = Flask(__name__)
    clock: Callable[[], datetime] = now_provider or datetime.now
    repository = BookingYamlRepository(data_dir, clock=clock)
    reservations = ReservationStore(repository, clock)
    catalog = SpaceCatalog(repository, ImageBlobStore(data_dir), reservations, clock)
    users = UserDirectory(repository, reservations, clock)

    def _authenticate() -> Principal:
        return users.resolve_token(extract_bearer_token(request.headers.get("Authorization")))

    def _optional_principal() -> Principal | None:
        if not request.headers.get("Authorization"):
            return None
        return _authenticate()

    def _payload() -> dict[str, Any]:
        payload = request.get_json(silent=True)
        return payload if isinstance(payload, dict) else {}

    def _serialize_reservation(record: Reservation, with_space: bool = False) -> dict[str, Any]:
        payload = record.to_dict()
        if with_space:
            try:
                payload["espacio"] = catalog.get(record.space_id).to_dict()
            except NotFoundError:
                payload["espacio"] = None
        return payload

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type,Authorization"
        return response

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError) -> Any:
        return jsonify({"errors": error.errors}), error.status_code

    @app.errorhandler(StorageError)
    def handle_storage_error(error: StorageError) -> Any:
        app.logger.error("storage failure on %s %s", request.method, request.path, exc_info=error)
        return jsonify({"message": "Error interno del servidor.", "error": error.message}), error.status_code

    @app.errorhandler(BookingError)
    def handle_booking_error(error: BookingError) -> Any:
        return jsonify({"message": error.message}), error.status_code

    @app.post("/api/login")
    def login() -> Any:
        token = users.login(_payload())
        return jsonify({"token": token})

    @app.post("/api/logout")
    def logout() -> Any:
        users.logout(_authenticate())
        return jsonify({"message": "Sesión cerrada correctamente"})

    @app.get("/api/login/validate-token")
    def validate_token() -> Any:
        principal = _authenticate()
        return jsonify({"valid": True, "user": users.get(principal.user_id).to_dict()})

    @app.get("/api/login/user")
    def current_user() -> Any:
        principal = _authenticate()
        return jsonify({"user": users.get(principal.user_id).to_dict()})

    @app.get("/api/users")
    def list_users() -> Any:
        principal = _authenticate()
        return jsonify([user.to_dict() for user in users.list_users(principal)])

    @app.post("/api/users")
    def create_user() -> Any:
        created = users.create(_payload(), _optional_principal())
        return jsonify(created.to_dict()), 201

    @app.get("/api/users/<int:user_id>")
    def show_user(user_id: int) -> Any:
        _authenticate()
        return jsonify(users.get(user_id).to_dict())

    @app.put("/api/users/<int:user_id>")
    def update_user(user_id: int) -> Any:
        updated = users.update(user_id, _payload(), _authenticate())
        return jsonify(updated.to_dict())

    @app.delete("/api/users/<int:user_id>")
    def delete_user(user_id: int) -> Any:
        users.delete(user_id, _authenticate())
        return "", 204

    @app.get("/api/espacios")
    def list_spaces() -> Any:
        _authenticate()
        filters = SpaceFilters.from_query(request.args)
        page, per_page = parse_pagination(request.args)
        result = catalog.list(filters, page=page, per_page=per_page)
        return jsonify(result.to_dict(lambda space: space.to_dict()))

    @app.post("/api/espacios")
    def create_space() -> Any:
        created = catalog.create(_payload(), _authenticate())
        return jsonify(catalog.detail(created)), 201

    @app.get("/api/espacios/<int:space_id>")
    def show_space(space_id: int) -> Any:
        _authenticate()
        return jsonify(catalog.detail(catalog.get(space_id)))

    @app.put("/api/espacios/<int:space_id>")
    def update_space(space_id: int) -> Any:
        updated = catalog.update(space_id, _payload(), _authenticate())
        return jsonify(catalog.detail(updated))

    @app.delete("/api/espacios/<int:space_id>")
    def delete_space(space_id: int) -> Any:
        catalog.delete(space_id, _authenticate())
        return jsonify({"message": "Espacio eliminado correctamente."})

    @app.get("/api/reservas")
    def list_reservations() -> Any:
        principal = _authenticate()
        space_filter = request.args.get("espacio_id", "").strip()
        if space_filter:
            space_id = parse_identifier(space_filter, "espacio_id")
            return jsonify([_serialize_reservation(record) for record in reservations.list_for_space(space_id)])

        owned = reservations.list_for_user(principal.user_id)
        return jsonify([_serialize_reservation(record, with_space=True) for record in owned])

    @app.get("/api/reservas/<int:reservation_id>")
    def show_reservation(reservation_id: int) -> Any:
        _authenticate()
        return jsonify(_serialize_reservation(reservations.get(reservation_id)))

    @app.post("/api/reservas")
    def create_reservation() -> Any:
        created = reservations.create(_payload(), _authenticate())
        return jsonify(_serialize_reservation(created)), 201

    @app.put("/api/reservas/<int:reservation_id>")
    def update_reservation(reservation_id: int) -> Any:
        principal = _authenticate()
        updated = reservations.update(reservation_id, _payload(), principal)
        return jsonify(_serialize_reservation(updated))

    @app.delete("/api/reservas/<int:reservation_id>")
    def delete_reservation(reservation_id: int) -> Any:
        reservations.delete(reservation_id, _authenticate())
        return jsonify({"message": "Reserva eliminada correctamente."})

    return app


if __name__ == "__main__":
    app = create_app(os.environ.get("SPACE_BOOKING_DATA_DIR", "data"))
    app.run(
        host=os.environ.get("SPACE_BOOKING_HOST", "127.0.0.1"),
        port=int(os.environ.get("SPACE_BOOKING_PORT", "5000")),
        debug=False,
    )
