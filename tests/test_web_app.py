import base64
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from space_booking import BookingYamlRepository, seed_demo_data
from space_booking.seed import DEMO_PASSWORD
from space_booking.web_app import create_app

NOW = datetime(2024, 10, 1, 9, 0)
PNG_BASE64 = base64.b64encode(b"\x89PNG\r\n\x1a\n" + b"\x00" * 16).decode("ascii")


class WebAppTestCase(unittest.TestCase):
    def setUp(self) -> None:
        temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(temp_dir.cleanup)
        self.data_dir = Path(temp_dir.name) / "data"
        seed_demo_data(BookingYamlRepository(self.data_dir), now=NOW)

        self.app = create_app(self.data_dir, now_provider=lambda: NOW)
        self.client = self.app.test_client()
        self.admin_headers = self.login("admin@example.com")
        self.user_headers = self.login("user@example.com")

    def login(self, email: str, password: str = DEMO_PASSWORD) -> dict[str, str]:
        response = self.client.post("/api/login", json={"email": email, "password": password})
        self.assertEqual(response.status_code, 200)
        return {"Authorization": f"Bearer {response.get_json()['token']}"}

    def register(self, email: str) -> dict[str, str]:
        response = self.client.post("/api/users", json={"name": "Luis", "email": email, "password": "secret123"})
        self.assertEqual(response.status_code, 201)
        return self.login(email, "secret123")

    def book(self, headers: dict[str, str], **overrides):
        payload = {"nombre": "Reunión", "espacio_id": 1, "fecha": "2024-11-20", "hora_inicio": "15:00", "hora_fin": "17:00"}
        payload.update(overrides)
        return self.client.post("/api/reservas", json=payload, headers=headers)


class TestAuthenticationRoutes(WebAppTestCase):
    def test_requests_without_token_are_rejected(self) -> None:
        for method, path in [("get", "/api/espacios"), ("get", "/api/reservas"), ("post", "/api/reservas"), ("get", "/api/users")]:
            with self.subTest(path=path, method=method):
                response = getattr(self.client, method)(path)
                self.assertEqual(response.status_code, 401)
                self.assertEqual(response.get_json(), {"message": "No autenticado"})

    def test_bad_credentials_return_401(self) -> None:
        response = self.client.post("/api/login", json={"email": "user@example.com", "password": "incorrecta"})

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.get_json()["message"], "Credenciales incorrectas")

    def test_login_validation_errors_return_422(self) -> None:
        response = self.client.post("/api/login", json={"password": "x"})

        self.assertEqual(response.status_code, 422)
        self.assertIn("email", response.get_json()["errors"])

    def test_validate_token_and_current_user(self) -> None:
        valid = self.client.get("/api/login/validate-token", headers=self.user_headers)
        current = self.client.get("/api/login/user", headers=self.user_headers)

        self.assertEqual(valid.status_code, 200)
        self.assertTrue(valid.get_json()["valid"])
        self.assertEqual(current.get_json()["user"]["email"], "user@example.com")
        self.assertNotIn("password", current.get_json()["user"])

    def test_logout_invalidates_token(self) -> None:
        response = self.client.post("/api/logout", headers=self.user_headers)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/api/login/user", headers=self.user_headers).status_code, 401)

    def test_cors_headers_are_present(self) -> None:
        response = self.client.get("/api/espacios", headers=self.user_headers)

        self.assertEqual(response.headers["Access-Control-Allow-Origin"], "*")
        self.assertIn("Authorization", response.headers["Access-Control-Allow-Headers"])


class TestUserRoutes(WebAppTestCase):
    def test_user_listing_is_admin_only(self) -> None:
        self.assertEqual(self.client.get("/api/users", headers=self.user_headers).status_code, 403)

        response = self.client.get("/api/users", headers=self.admin_headers)
        self.assertEqual([user["email"] for user in response.get_json()], ["admin@example.com", "user@example.com"])

    def test_duplicate_registration_conflicts(self) -> None:
        response = self.client.post("/api/users", json={"name": "Otro", "email": "user@example.com", "password": "secret123"})

        self.assertEqual(response.status_code, 409)

    def test_user_cannot_edit_another_user(self) -> None:
        response = self.client.put("/api/users/1", json={"name": "Hack"}, headers=self.user_headers)

        self.assertEqual(response.status_code, 403)

    def test_user_deletes_own_account(self) -> None:
        headers = self.register("luis@example.com")
        me = self.client.get("/api/login/user", headers=headers).get_json()["user"]

        response = self.client.delete(f"/api/users/{me['id']}", headers=headers)

        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get(f"/api/users/{me['id']}", headers=self.admin_headers).status_code, 404)


class TestSpaceRoutes(WebAppTestCase):
    def test_list_is_paginated_and_filterable(self) -> None:
        response = self.client.get("/api/espacios?nombre=audi&capacidad=200", headers=self.user_headers)

        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertEqual([space["nombre"] for space in payload["data"]], ["Auditorio"])
        self.assertEqual((payload["current_page"], payload["per_page"], payload["total"], payload["last_page"]), (1, 15, 1, 1))

    def test_invalid_filters_return_422(self) -> None:
        for query in ["capacidad=abc", "fecha=ayer", "per_page=500"]:
            with self.subTest(query=query):
                response = self.client.get(f"/api/espacios?{query}", headers=self.user_headers)
                self.assertEqual(response.status_code, 422)

    def test_date_filter_hides_fully_booked_space(self) -> None:
        self.book(self.user_headers, hora_inicio="00:00", hora_fin="23:59")

        response = self.client.get("/api/espacios?fecha=2024-11-20", headers=self.user_headers)

        self.assertEqual([space["id"] for space in response.get_json()["data"]], [2])

    def test_admin_manages_spaces_with_images(self) -> None:
        created = self.client.post(
            "/api/espacios",
            json={"nombre": "Sala Azul", "descripcion": "Con proyector", "capacidad": 12, "imagen": PNG_BASE64},
            headers=self.admin_headers,
        )
        self.assertEqual(created.status_code, 201)
        space = created.get_json()
        self.assertEqual(space["imagen"], f"data:image/png;base64,{PNG_BASE64}")

        updated = self.client.put(f"/api/espacios/{space['id']}", json={"capacidad": 20}, headers=self.admin_headers)
        self.assertEqual(updated.get_json()["capacidad"], 20)

        deleted = self.client.delete(f"/api/espacios/{space['id']}", headers=self.admin_headers)
        self.assertEqual(deleted.get_json(), {"message": "Espacio eliminado correctamente."})
        self.assertEqual(self.client.get(f"/api/espacios/{space['id']}", headers=self.admin_headers).status_code, 404)

    def test_regular_user_cannot_create_space(self) -> None:
        response = self.client.post(
            "/api/espacios",
            json={"nombre": "Sala", "descripcion": "x", "capacidad": 3},
            headers=self.user_headers,
        )

        self.assertEqual(response.status_code, 403)

    def test_space_validation_errors_return_422(self) -> None:
        response = self.client.post("/api/espacios", json={"nombre": "Sala"}, headers=self.admin_headers)

        self.assertEqual(response.status_code, 422)
        self.assertIn("descripcion", response.get_json()["errors"])


class TestReservationRoutes(WebAppTestCase):
    def test_overlapping_and_touching_requests_are_rejected(self) -> None:
        self.assertEqual(self.book(self.user_headers).status_code, 201)
        other_headers = self.register("luis@example.com")

        for start, end in [("16:00", "18:00"), ("17:00", "18:00")]:
            with self.subTest(start=start, end=end):
                response = self.book(other_headers, hora_inicio=start, hora_fin=end)
                self.assertEqual(response.status_code, 422)
                self.assertEqual(list(response.get_json()["errors"]), ["hora_inicio"])

        self.assertEqual(self.book(other_headers, hora_inicio="17:01", hora_fin="18:00").status_code, 201)

    def test_past_start_is_rejected(self) -> None:
        response = self.book(self.user_headers, fecha="2024-09-30")

        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.get_json()["errors"]["hora_inicio"], ["La hora de inicio debe ser en el futuro."])

    def test_own_listing_embeds_space(self) -> None:
        self.book(self.user_headers)

        response = self.client.get("/api/reservas", headers=self.user_headers)

        records = response.get_json()
        self.assertTrue(records)
        self.assertTrue(all(record["user_id"] == 2 for record in records))
        self.assertTrue(all(record["espacio"]["id"] == record["espacio_id"] for record in records))

    def test_listing_by_space_is_ordered(self) -> None:
        self.book(self.user_headers, fecha="2024-11-21")
        self.book(self.user_headers, fecha="2024-11-20")

        response = self.client.get("/api/reservas?espacio_id=1", headers=self.user_headers)

        dates = [record["fecha"] for record in response.get_json()]
        self.assertEqual(dates, sorted(dates))
        self.assertIn("2024-11-20", dates)

    def test_update_same_slot_succeeds(self) -> None:
        created = self.book(self.user_headers, fecha="2024-10-19", hora_inicio="16:00", hora_fin="17:00").get_json()

        response = self.client.put(
            f"/api/reservas/{created['id']}",
            json={"espacio_id": 1, "fecha": "2024-10-19", "hora_inicio": "16:00", "hora_fin": "17:00"},
            headers=self.user_headers,
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["id"], created["id"])

    def test_other_user_cannot_modify_or_delete(self) -> None:
        created = self.book(self.user_headers).get_json()
        other_headers = self.register("luis@example.com")

        update = self.client.put(f"/api/reservas/{created['id']}", json={"hora_fin": "18:00"}, headers=other_headers)
        delete = self.client.delete(f"/api/reservas/{created['id']}", headers=other_headers)

        self.assertEqual(update.status_code, 403)
        self.assertEqual(delete.status_code, 403)
        stored = self.client.get(f"/api/reservas/{created['id']}", headers=self.user_headers).get_json()
        self.assertEqual(stored["hora_fin"], "17:00")

    def test_owner_deletes_reservation(self) -> None:
        created = self.book(self.user_headers).get_json()

        response = self.client.delete(f"/api/reservas/{created['id']}", headers=self.user_headers)

        self.assertEqual(response.get_json(), {"message": "Reserva eliminada correctamente."})
        self.assertEqual(self.client.get(f"/api/reservas/{created['id']}", headers=self.user_headers).status_code, 404)

    def test_unknown_space_is_a_field_error(self) -> None:
        response = self.book(self.user_headers, espacio_id=99)

        self.assertEqual(response.status_code, 422)
        self.assertIn("espacio_id", response.get_json()["errors"])


if __name__ == "__main__":
    unittest.main()
