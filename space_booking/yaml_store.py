from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Iterator
import shutil

import yaml

from .errors import StorageError

USERS = "users"
SPACES = "espacios"
RESERVATIONS = "reservas"
TOKENS = "tokens"
TABLES = (USERS, SPACES, RESERVATIONS, TOKENS)


class BookingYamlRepository:
    """YAML-backed tables for users, spaces, reservations and access tokens.

    Each table is a file holding a top-level list of mappings. ``lock`` is
    re-entrant so a caller can hold it across a read-validate-write sequence
    while the table helpers take it again underneath.
    """

    def __init__(self, base_dir: str | Path = "data", clock: Callable[[], datetime] | None = None) -> None:
        self.base_dir = Path(base_dir)
        self.clock: Callable[[], datetime] = clock or datetime.now
        self.sequence_file = self.base_dir / "sequences.yaml"
        self.log_file = self.base_dir / "events.yaml"
        self.lock = RLock()
        self._ensure_files()

    def table_path(self, table: str) -> Path:
        if table not in TABLES:
            raise KeyError(f"unknown table: {table}")
        return self.base_dir / f"{table}.yaml"

    def _ensure_files(self) -> None:
        self.base_dir.mkdir(parents=True, exist_ok=True)
        paths = [self.table_path(table) for table in TABLES] + [self.sequence_file, self.log_file]
        for path in paths:
            if not path.exists():
                path.write_text("[]\n", encoding="utf-8")

    def reset(self) -> None:
        with self.lock:
            for table in TABLES:
                self.write_rows(table, [])
            self._write_yaml_list(self.sequence_file, [])

    @contextmanager
    def transaction(self) -> Iterator["BookingYamlRepository"]:
        with self.lock:
            yield self

    def read_rows(self, table: str) -> list[dict[str, Any]]:
        with self.lock:
            return self._read_yaml_list(self.table_path(table))

    def write_rows(self, table: str, rows: list[dict[str, Any]]) -> None:
        with self.lock:
            self._write_yaml_list(self.table_path(table), rows)

    def insert_row(self, table: str, row: dict[str, Any]) -> None:
        with self.lock:
            rows = self.read_rows(table)
            rows.append(row)
            self.write_rows(table, rows)

    def replace_row(self, table: str, row: dict[str, Any], key: str = "id") -> bool:
        with self.lock:
            rows = self.read_rows(table)
            for index, current in enumerate(rows):
                if current.get(key) == row[key]:
                    rows[index] = row
                    self.write_rows(table, rows)
                    return True
            return False

    def delete_rows(self, table: str, predicate: Callable[[dict[str, Any]], bool]) -> list[dict[str, Any]]:
        with self.lock:
            rows = self.read_rows(table)
            removed = [row for row in rows if predicate(row)]
            if removed:
                self.write_rows(table, [row for row in rows if not predicate(row)])
            return removed

    def find_row(self, table: str, key: str, value: Any) -> dict[str, Any] | None:
        for row in self.read_rows(table):
            if row.get(key) == value:
                return row
        return None

    def next_id(self, table: str) -> int:
        """Hand out the next identifier for ``table``; identifiers are never reused."""
        with self.lock:
            sequences = self._read_yaml_list(self.sequence_file)
            current = next((row for row in sequences if row.get("table") == table), None)
            existing_max = max((int(row.get("id", 0)) for row in self.read_rows(table)), default=0)
            last_id = max(int(current.get("last_id", 0)) if current else 0, existing_max)

            next_value = last_id + 1
            if current is None:
                sequences.append({"table": table, "last_id": next_value})
            else:
                current["last_id"] = next_value
            self._write_yaml_list(self.sequence_file, sequences)
            return next_value

    def log_event(self, event_type: str, payload: dict[str, Any], event_time: datetime | None = None) -> None:
        timestamp = (event_time or self.clock()).isoformat(timespec="seconds")
        with self.lock:
            events = self._read_yaml_list(self.log_file)
            events.append({"event_time": timestamp, "event_type": event_type, "payload": payload})
            self._write_yaml_list(self.log_file, events)

    def read_events(self) -> list[dict[str, Any]]:
        return self._read_yaml_list(self.log_file)

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            elif path != self.log_file:
                self.log_event(
                    "YAML_ROW_SKIPPED",
                    {
                        "file": str(path.name),
                        "index": index,
                        "reason": "row is not a mapping",
                    },
                )
        return sanitized

    def _write_yaml_list(self, path: Path, rows: list[dict[str, Any]]) -> None:
        temp_path = path.with_suffix(path.suffix + ".tmp")
        try:
            temp_path.write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            temp_path.replace(path)
        except OSError as error:
            raise StorageError(f"Failed to write YAML file: {path}") from error
        finally:
            if temp_path.exists():
                temp_path.unlink(missing_ok=True)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = self.clock().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError:
            backup_path = None

        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self.log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name) if backup_path else None,
                    "reason": str(error),
                },
            )
