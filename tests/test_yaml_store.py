import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from werkzeug.security import check_password_hash

from space_booking import BookingYamlRepository, seed_demo_data
from space_booking.seed import DEMO_PASSWORD, SEED_WINDOW_DAYS
from space_booking.yaml_store import RESERVATIONS, SPACES, USERS


class TestBookingYamlRepository(unittest.TestCase):
    def test_creates_empty_tables_on_first_use(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            BookingYamlRepository(data_dir)

            for name in ["users", "espacios", "reservas", "tokens", "sequences", "events"]:
                self.assertEqual((data_dir / f"{name}.yaml").read_text(encoding="utf-8"), "[]\n")

    def test_insert_replace_and_delete_rows(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.insert_row(SPACES, {"id": 1, "nombre": "Sala"})
            repo.insert_row(SPACES, {"id": 2, "nombre": "Aula"})

            self.assertTrue(repo.replace_row(SPACES, {"id": 2, "nombre": "Aula Magna"}))
            self.assertFalse(repo.replace_row(SPACES, {"id": 9, "nombre": "Nada"}))
            removed = repo.delete_rows(SPACES, lambda row: row["id"] == 1)

            self.assertEqual(removed, [{"id": 1, "nombre": "Sala"}])
            self.assertEqual(repo.read_rows(SPACES), [{"id": 2, "nombre": "Aula Magna"}])
            self.assertEqual(repo.find_row(SPACES, "nombre", "Aula Magna"), {"id": 2, "nombre": "Aula Magna"})
            self.assertIsNone(repo.find_row(SPACES, "id", 1))

    def test_unicode_is_written_verbatim(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = BookingYamlRepository(data_dir)
            repo.insert_row(SPACES, {"id": 1, "nombre": "Sala pequeña"})

            self.assertIn("Sala pequeña", (data_dir / "espacios.yaml").read_text(encoding="utf-8"))

    def test_identifiers_are_not_reused_after_delete(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            first = repo.next_id(RESERVATIONS)
            repo.insert_row(RESERVATIONS, {"id": first})
            repo.delete_rows(RESERVATIONS, lambda row: True)

            self.assertEqual(first, 1)
            self.assertEqual(repo.next_id(RESERVATIONS), 2)
            self.assertEqual(repo.next_id(SPACES), 1)

    def test_sequence_catches_up_with_existing_rows(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.write_rows(SPACES, [{"id": 7}])

            self.assertEqual(repo.next_id(SPACES), 8)

    def test_unknown_table_is_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")

            with self.assertRaises(KeyError):
                repo.read_rows("salas")

    def test_log_event_uses_clock(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data", clock=lambda: datetime(2024, 10, 1, 9, 0))
            repo.log_event("SPACE_CREATED", {"space_id": 1})

            events = repo.read_events()

            self.assertEqual(
                events,
                [{"event_time": "2024-10-01T09:00:00", "event_type": "SPACE_CREATED", "payload": {"space_id": 1}}],
            )

    def test_corrupted_yaml_is_recovered(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = BookingYamlRepository(data_dir, clock=lambda: datetime(2024, 10, 1, 9, 0))
            table_path = data_dir / "reservas.yaml"
            table_path.write_text("this: [is: invalid", encoding="utf-8")

            rows = repo.read_rows(RESERVATIONS)

            self.assertEqual(rows, [])
            self.assertIn("[]", table_path.read_text(encoding="utf-8"))
            self.assertTrue((data_dir / "reservas.corrupt.20241001090000.yaml").exists())
            self.assertEqual(repo.read_events()[-1]["event_type"], "YAML_RECOVERED")

    def test_non_mapping_rows_are_skipped(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            data_dir = Path(temp_dir) / "data"
            repo = BookingYamlRepository(data_dir)
            (data_dir / "users.yaml").write_text("- id: 1\n- just text\n", encoding="utf-8")

            rows = repo.read_rows(USERS)

            self.assertEqual(rows, [{"id": 1}])
            self.assertEqual(repo.read_events()[-1]["event_type"], "YAML_ROW_SKIPPED")


class TestSeedDemoData(unittest.TestCase):
    def test_seed_writes_users_spaces_and_reservations(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            now = datetime(2024, 10, 1, 9, 0)

            summary = seed_demo_data(repo, now=now)

            self.assertEqual(summary, {"users": 2, "spaces": 2, "reservations": 4})
            admin = repo.find_row(USERS, "email", "admin@example.com")
            self.assertEqual(admin["role"], "admin")
            self.assertTrue(check_password_hash(admin["password"], DEMO_PASSWORD))
            for row in repo.read_rows(RESERVATIONS):
                day = datetime.fromisoformat(f"{row['fecha']}T{row['hora_inicio']}")
                self.assertGreater(day, now)
                self.assertLessEqual((day.date() - now.date()).days, SEED_WINDOW_DAYS)
                self.assertEqual((row["hora_inicio"], row["hora_fin"]), ("09:00", "11:00"))

    def test_seed_never_double_books_a_space(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            seed_demo_data(repo, now=datetime(2024, 10, 1, 9, 0))

            keys = [(row["espacio_id"], row["fecha"]) for row in repo.read_rows(RESERVATIONS)]

            self.assertEqual(len(keys), len(set(keys)))

    def test_overwrite_replaces_previous_contents(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            repo = BookingYamlRepository(Path(temp_dir) / "data")
            repo.insert_row(SPACES, {"id": 1, "nombre": "Vieja", "descripcion": "x", "capacidad": 1, "created_at": "2024-01-01T00:00:00"})

            seed_demo_data(repo, now=datetime(2024, 10, 1, 9, 0), overwrite=True)

            self.assertEqual([row["nombre"] for row in repo.read_rows(SPACES)], ["Sala de Conferencias", "Auditorio"])
            self.assertEqual(repo.read_events()[-1]["event_type"], "DEMO_DATA_SEEDED")


if __name__ == "__main__":
    unittest.main()
