from dataclasses import dataclass
from datetime import time
from typing import Iterable

FULL_DAY_START = time(0, 0)
FULL_DAY_END = time(23, 59)


@dataclass(frozen=True)
class TimeSlot:
    start: time
    end: time

    def __post_init__(self) -> None:
        if self.start >= self.end:
            raise ValueError("Time slot start must be earlier than end.")

    @property
    def is_full_day(self) -> bool:
        return is_full_day(self.start, self.end)


def is_full_day(start: time, end: time) -> bool:
    return start == FULL_DAY_START and end == FULL_DAY_END


def has_time_overlap(new_start: time, new_end: time, exist_start: time, exist_end: time) -> bool:
    """Return True when two same-day time ranges share any instant.

    Both ranges are closed: [start, end]. Touching endpoints
    (e.g. 15:00-17:00 and 17:00-18:00) count as an overlap, and so does
    one range strictly containing the other.
    """
    if new_start >= new_end:
        raise ValueError("new_start must be earlier than new_end.")
    if exist_start >= exist_end:
        raise ValueError("exist_start must be earlier than exist_end.")

    return new_start <= exist_end and exist_start <= new_end


def conflicts_with(candidate: TimeSlot, existing: TimeSlot) -> bool:
    # A full-day booking claims the whole date whatever the other range is.
    if candidate.is_full_day or existing.is_full_day:
        return True
    return has_time_overlap(candidate.start, candidate.end, existing.start, existing.end)


def can_reserve(candidate: TimeSlot, existing_slots: Iterable[TimeSlot]) -> bool:
    """Return True if the candidate conflicts with none of the existing slots."""
    for existing in existing_slots:
        if conflicts_with(candidate, existing):
            return False
    return True
