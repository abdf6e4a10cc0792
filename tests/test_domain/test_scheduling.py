"""Tests for consultation slot arithmetic."""

from __future__ import annotations

from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo

import pytest

from legal_marketplace.domain.exceptions import InvalidInputError
from legal_marketplace.domain.scheduling import (
    BookedInterval,
    day_windows,
    format_time,
    generate_slots,
    overlaps,
    parse_time,
    validate_weekly_schedule,
)

MONDAY = date(2030, 1, 7)
SCHEDULE = {
    "0": {"enabled": True, "slots": [{"start_time": "09:00", "end_time": "12:00"}]},
    "1": {"enabled": False, "slots": [{"start_time": "09:00", "end_time": "12:00"}]},
}


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2030, 1, 7, hour, minute, tzinfo=UTC)


class TestTimeParsing:
    def test_round_trip(self) -> None:
        assert parse_time("09:30") == 570
        assert format_time(570) == "09:30"

    @pytest.mark.parametrize("value", ["9:30", "24:00", "12:60", "noon"])
    def test_rejects_malformed(self, value: str) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            parse_time(value)
        assert exc_info.value.code == "INVALID_TIME"


class TestWeeklySchedule:
    def test_monday_is_key_zero(self) -> None:
        assert day_windows(SCHEDULE, MONDAY) == [(540, 720)]

    def test_disabled_day_has_no_windows(self) -> None:
        assert day_windows(SCHEDULE, date(2030, 1, 8)) == []

    def test_missing_day_has_no_windows(self) -> None:
        assert day_windows(SCHEDULE, date(2030, 1, 9)) == []

    def test_validate_rejects_inverted_window(self) -> None:
        with pytest.raises(InvalidInputError):
            validate_weekly_schedule(
                {"2": {"enabled": True, "slots": [{"start_time": "12:00", "end_time": "09:00"}]}}
            )

    def test_validate_rejects_unknown_weekday(self) -> None:
        with pytest.raises(InvalidInputError):
            validate_weekly_schedule({"7": {"enabled": True, "slots": []}})


class TestOverlap:
    def test_buffer_blocks_adjacent_start(self) -> None:
        booked = BookedInterval(at(10), 30)
        # 10:40 sits inside 10:00-10:30 padded by 15 minutes.
        assert overlaps(at(10, 40), 30, booked, 15)

    def test_slot_after_buffer_is_free(self) -> None:
        booked = BookedInterval(at(10), 30)
        assert not overlaps(at(10, 45), 30, booked, 15)

    def test_slot_ending_inside_leading_buffer(self) -> None:
        booked = BookedInterval(at(10), 30)
        assert overlaps(at(9, 20), 30, booked, 15)
        assert not overlaps(at(9, 15), 30, booked, 15)


class TestGenerateSlots:
    def test_steps_by_duration_plus_buffer(self) -> None:
        slots = generate_slots(MONDAY, [(540, 720)], 30, 15, [], UTC)
        assert [s.start_time for s in slots] == ["09:00", "09:45", "10:30", "11:15"]
        assert all(s.available for s in slots)
        assert slots[0].end_time == "09:30"

    def test_last_slot_must_fit_in_window(self) -> None:
        slots = generate_slots(MONDAY, [(540, 600)], 45, 0, [], UTC)
        assert [s.start_time for s in slots] == ["09:00"]

    def test_booked_slot_marks_neighbours(self) -> None:
        booked = [BookedInterval(at(10, 30), 30)]
        slots = generate_slots(MONDAY, [(540, 720)], 30, 15, booked, UTC)
        availability = {s.start_time: s.available for s in slots}
        assert availability == {"09:00": True, "09:45": True, "10:30": False, "11:15": True}

    def test_slots_are_local_to_zone(self) -> None:
        karachi = ZoneInfo("Asia/Karachi")
        slots = generate_slots(MONDAY, [(540, 600)], 30, 0, [], karachi)
        assert slots[0].starts_at == datetime(2030, 1, 7, 4, 0, tzinfo=UTC)
