"""
Derives bookable slots from a doctor's working hours.

Pure domain logic: no registry access and no I/O. The output is meant to be
fed into ``SlotRegistry.add_slots`` at schedule-setup time.
"""

from typing import List

from pendulum import DateTime

from .models import Slot, TimeRange, WorkingHours


class ScheduleBuilder:
    """
    Cuts working hours into back-to-back appointment slots.

    Algorithm:
    1. Get the working hours block of every working day in the range
    2. Clip each block to the requested range
    3. Cut each block into slots of ``slot_minutes``; a trailing remainder
       shorter than one slot is dropped
    """

    def __init__(self, working_hours: WorkingHours, slot_minutes: int = 30):
        if slot_minutes <= 0:
            raise ValueError("slot_minutes must be greater than zero")
        self.working_hours = working_hours
        self.slot_minutes = slot_minutes

    def build_slots(self, doctor_id: str, start_date: DateTime, end_date: DateTime) -> List[Slot]:
        """
        Generate the slots of one doctor between ``start_date`` and ``end_date``.

        Slot ids are derived from the doctor id and the local start time, so
        building the same window twice yields the same ids.
        """
        slots: List[Slot] = []

        for block in self._get_working_blocks(start_date, end_date):
            cursor = block.start
            while cursor.add(minutes=self.slot_minutes) <= block.end:
                slot_end = cursor.add(minutes=self.slot_minutes)
                slots.append(
                    Slot(
                        id=f"{doctor_id}-{cursor.format('YYYYMMDDHHmm')}",
                        doctor_id=doctor_id,
                        time_range=TimeRange(start=cursor, end=slot_end),
                    )
                )
                cursor = slot_end

        return slots

    def _get_working_blocks(self, start_date: DateTime, end_date: DateTime) -> List[TimeRange]:
        """
        Generate all working hour blocks within the date range.

        Returns a list of TimeRange objects, one for each working day.
        """
        blocks: List[TimeRange] = []
        tz = self.working_hours.timezone

        current = start_date.in_timezone(tz).start_of("day")

        while current <= end_date:
            working_hours = self.working_hours.get_working_hours_for_day(current)

            if working_hours:
                clipped = self._clip_range_to_bounds(working_hours, start_date, end_date)
                if clipped:
                    blocks.append(clipped)

            current = current.add(days=1)

        return blocks

    @staticmethod
    def _clip_range_to_bounds(
        time_range: TimeRange,
        min_bound: DateTime,
        max_bound: DateTime
    ) -> TimeRange | None:
        """
        Clip a time range to fit within bounds.
        Returns None if the range is completely outside bounds.
        """
        if time_range.end <= min_bound or time_range.start >= max_bound:
            return None

        return TimeRange(start=max(time_range.start, min_bound), end=min(time_range.end, max_bound))
