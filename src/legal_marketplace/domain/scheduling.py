"""Consultation slot arithmetic.

Pure functions: the scheduler service loads a lawyer's availability and
active bookings, and this module decides which slots exist on a day and
which of them are free.

A generated slot starting at ``s`` with length ``d`` conflicts with a booking
``[b, b + booked_duration)`` when, given the buffer ``k``::

    s < b + booked_duration + k  and  s + d > b - k

Windows are walked from their start in steps of ``d + k`` while the slot
still ends inside the window.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING, Any

from legal_marketplace.domain.exceptions import InvalidInputError

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from zoneinfo import ZoneInfo

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass(frozen=True)
class TimeSlot:
    """One bookable slot on a given day."""

    date: date
    start_time: str
    end_time: str
    starts_at: datetime
    available: bool


@dataclass(frozen=True)
class BookedInterval:
    """An existing PENDING/CONFIRMED consultation occupying a lawyer's time."""

    starts_at: datetime
    duration: int


def parse_time(value: str) -> int:
    """Parse ``HH:MM`` into minutes after midnight."""
    match = _HHMM.match(value)
    if match is None:
        raise InvalidInputError(f"Invalid time of day '{value}', expected HH:MM", code="INVALID_TIME")
    return int(match.group(1)) * 60 + int(match.group(2))


def format_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_windows(weekly_schedule: Mapping[str, Any], day: date) -> list[tuple[int, int]]:
    """Return the enabled ``(start, end)`` minute windows for ``day``'s weekday.

    ``weekly_schedule`` is keyed by weekday as a string, ``"0"`` = Monday.
    """
    entry = weekly_schedule.get(str(day.weekday()))
    if not entry or not entry.get("enabled"):
        return []
    return [(parse_time(w["start_time"]), parse_time(w["end_time"])) for w in entry.get("slots", [])]


def validate_weekly_schedule(weekly_schedule: Mapping[str, Any]) -> None:
    for key, entry in weekly_schedule.items():
        if key not in {str(d) for d in range(7)}:
            raise InvalidInputError(f"Unknown weekday key '{key}', expected 0-6")
        for window in entry.get("slots", []):
            start, end = parse_time(window["start_time"]), parse_time(window["end_time"])
            if start >= end:
                raise InvalidInputError(
                    f"Window {window['start_time']}-{window['end_time']} ends before it starts"
                )


def overlaps(
    slot_start: datetime,
    duration: int,
    booked: BookedInterval,
    buffer: int,
) -> bool:
    pad = timedelta(minutes=buffer)
    booked_end = booked.starts_at + timedelta(minutes=booked.duration)
    slot_end = slot_start + timedelta(minutes=duration)
    return slot_start < booked_end + pad and slot_end > booked.starts_at - pad


def generate_slots(
    day: date,
    windows: Iterable[tuple[int, int]],
    duration: int,
    buffer: int,
    booked: Iterable[BookedInterval],
    tz: ZoneInfo,
) -> list[TimeSlot]:
    """Walk each window and mark every generated slot free or taken."""
    booked = list(booked)
    midnight = datetime.combine(day, time(0, 0), tzinfo=tz)
    slots: list[TimeSlot] = []
    for window_start, window_end in windows:
        current = window_start
        while current + duration <= window_end:
            starts_at = midnight + timedelta(minutes=current)
            taken = any(overlaps(starts_at, duration, b, buffer) for b in booked)
            slots.append(
                TimeSlot(
                    date=day,
                    start_time=format_time(current),
                    end_time=format_time(current + duration),
                    starts_at=starts_at,
                    available=not taken,
                )
            )
            current += duration + buffer
    return slots
