"""
Tests for the schedule builder.
"""

from datetime import time

import pendulum
import pytest

from clinicqueue.domain.models import WorkingHours
from clinicqueue.domain.schedule_builder import ScheduleBuilder


def _builder(slot_minutes: int = 30) -> ScheduleBuilder:
    working_hours = WorkingHours(
        start_time=time(9, 0),
        end_time=time(12, 0),
        exclude_weekdays=[5, 6],
        timezone="Europe/Berlin",
    )
    return ScheduleBuilder(working_hours=working_hours, slot_minutes=slot_minutes)


class TestScheduleBuilder:
    """Tests for ScheduleBuilder."""

    def test_one_day_is_cut_into_back_to_back_slots(self):
        start = pendulum.parse("2024-11-25 00:00", tz="Europe/Berlin")  # Monday
        end = pendulum.parse("2024-11-25 23:59", tz="Europe/Berlin")

        slots = _builder().build_slots("d1", start, end)

        assert len(slots) == 6
        assert slots[0].start.hour == 9
        assert slots[-1].end.hour == 12
        for earlier, later in zip(slots, slots[1:]):
            assert earlier.end == later.start
        assert all(slot.doctor_id == "d1" for slot in slots)

    def test_weekends_are_skipped(self):
        start = pendulum.parse("2024-11-23 00:00", tz="Europe/Berlin")  # Saturday
        end = pendulum.parse("2024-11-25 23:59", tz="Europe/Berlin")  # Monday

        slots = _builder().build_slots("d1", start, end)

        assert {slot.start.day for slot in slots} == {25}

    def test_window_clips_working_hours(self):
        start = pendulum.parse("2024-11-25 10:00", tz="Europe/Berlin")
        end = pendulum.parse("2024-11-25 11:00", tz="Europe/Berlin")

        slots = _builder().build_slots("d1", start, end)

        assert [slot.start.format("HH:mm") for slot in slots] == ["10:00", "10:30"]

    def test_remainder_shorter_than_a_slot_is_dropped(self):
        start = pendulum.parse("2024-11-25 00:00", tz="Europe/Berlin")
        end = pendulum.parse("2024-11-25 23:59", tz="Europe/Berlin")

        slots = _builder(slot_minutes=45).build_slots("d1", start, end)

        # 09:00 - 12:00 holds four 45 minute slots exactly
        assert len(slots) == 4
        assert slots[-1].end.format("HH:mm") == "12:00"

    def test_ids_are_stable(self):
        start = pendulum.parse("2024-11-25 00:00", tz="Europe/Berlin")
        end = pendulum.parse("2024-11-25 23:59", tz="Europe/Berlin")

        first = [slot.id for slot in _builder().build_slots("d1", start, end)]
        second = [slot.id for slot in _builder().build_slots("d1", start, end)]

        assert first == second
        assert first[0] == "d1-202411250900"
        assert len(set(first)) == len(first)

    def test_invalid_slot_length(self):
        with pytest.raises(ValueError):
            _builder(slot_minutes=0)
