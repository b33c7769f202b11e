from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path
import traceback

from space_booking import BookingYamlRepository, ReservationStore, ValidationError, seed_demo_data
from space_booking.models import Principal, Role


def main() -> int:
    print("[INFO] Space Booking Quick Check")
    print("[INFO] Seeding demo data...")

    repo = BookingYamlRepository("data")
    now = datetime.now().replace(second=0, microsecond=0)
    summary = seed_demo_data(repo, now=now, overwrite=True)
    print(f"[OK] Seeded users={summary['users']} spaces={summary['spaces']} reservations={summary['reservations']}")

    store = ReservationStore(repo)
    user = Principal(user_id=2, role=Role.USER)
    day = (now + timedelta(days=20)).date().isoformat()

    created = store.create(
        {"nombre": "Quick check", "espacio_id": 1, "fecha": day, "hora_inicio": "15:00", "hora_fin": "17:00"},
        user,
    )
    print(f"[OK] Booked space {created.space_id} on {day} 15:00~17:00 (id={created.reservation_id})")

    try:
        store.create(
            {"nombre": "Overlap", "espacio_id": 1, "fecha": day, "hora_inicio": "17:00", "hora_fin": "18:00"},
            user,
        )
    except ValidationError as error:
        print(f"[OK] Touching slot rejected: {error.errors}")
    else:
        print("[ERROR] Touching slot was accepted.")
        return 1

    print(f"[OK] Reservations for space 1: {len(store.list_for_space(1))}")
    print(f"[OK] Data directory: {Path('data').resolve()}")
    print("[DONE] Quick check completed successfully.")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except Exception:
        print("[ERROR] Quick check failed.")
        traceback.print_exc()
        raise SystemExit(1)
