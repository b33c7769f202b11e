from __future__ import annotations

from datetime import datetime, time, timedelta
import random

from werkzeug.security import generate_password_hash

from .models import Reservation, Role, Space, User
from .yaml_store import RESERVATIONS, SPACES, USERS, BookingYamlRepository

DEMO_PASSWORD = "password"
DEMO_USERS = [
    ("Admin User", "admin@example.com", Role.ADMIN),
    ("Normal User", "user@example.com", Role.USER),
]
DEMO_SPACES = [
    ("Sala de Conferencias", "Una sala espaciosa para conferencias grandes", 100),
    ("Auditorio", "Auditorio equipado con tecnología de audio y video", 300),
]
SEED_WINDOW_DAYS = 10
SEED_START = time(9, 0)
SEED_END = time(11, 0)


def seed_demo_data(
    repository: BookingYamlRepository,
    now: datetime | None = None,
    overwrite: bool = True,
) -> dict[str, int]:
    """Write demo users, spaces and one 09:00-11:00 booking per (space, user).

    Bookings of the same space land on distinct days inside the next
    ``SEED_WINDOW_DAYS`` days, so the seed never double-books a space.
    """
    effective_now = now or repository.clock()
    rng = random.Random(f"seed:{effective_now.date().isoformat()}")

    with repository.transaction():
        if overwrite:
            repository.reset()

        users: list[User] = []
        for name, email, role in DEMO_USERS:
            existing = repository.find_row(USERS, "email", email)
            if existing is not None:
                users.append(User.from_dict(existing))
                continue
            user = User(
                user_id=repository.next_id(USERS),
                name=name,
                email=email,
                password_hash=generate_password_hash(DEMO_PASSWORD),
                role=role,
                created_at=effective_now,
                updated_at=effective_now,
            )
            repository.insert_row(USERS, user.to_record())
            users.append(user)

        spaces: list[Space] = []
        for name, description, capacity in DEMO_SPACES:
            space = Space(
                space_id=repository.next_id(SPACES),
                name=name,
                description=description,
                capacity=capacity,
                created_at=effective_now,
                updated_at=effective_now,
            )
            repository.insert_row(SPACES, space.to_dict())
            spaces.append(space)

        reservation_count = 0
        for space in spaces:
            offsets = rng.sample(range(1, SEED_WINDOW_DAYS + 1), k=len(users))
            for user, offset in zip(users, offsets):
                day = (effective_now + timedelta(days=offset)).date()
                reservation = Reservation(
                    reservation_id=repository.next_id(RESERVATIONS),
                    name=f"Reserva por {user.name} en {space.name}",
                    space_id=space.space_id,
                    user_id=user.user_id,
                    day=day,
                    start=SEED_START,
                    end=SEED_END,
                    created_at=effective_now,
                    updated_at=effective_now,
                )
                repository.insert_row(RESERVATIONS, reservation.to_dict())
                reservation_count += 1

    summary = {"users": len(users), "spaces": len(spaces), "reservations": reservation_count}
    repository.log_event("DEMO_DATA_SEEDED", {**summary, "overwrite": overwrite}, effective_now)
    return summary
