"""
SLA Value Objects
=================

Immutable value objects for SLA time arithmetic.

Business time counts only the minutes inside the working day
(Monday to Friday, opening to closing hour) in the configured time zone.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo


@dataclass(frozen=True)
class BusinessHours:
    """Working day definition; hours are local to `time_zone`."""

    start_hour: int = 9
    end_hour: int = 17
    time_zone: str = "UTC"

    def __post_init__(self):
        if not 0 <= self.start_hour < self.end_hour <= 24:
            raise ValueError("business hours must satisfy 0 <= start_hour < end_hour <= 24")

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.time_zone)

    def opening(self, day: date) -> datetime:
        return datetime.combine(day, time(self.start_hour), tzinfo=self.tz)

    def closing(self, day: date) -> datetime:
        return datetime.combine(day, time(0), tzinfo=self.tz) + timedelta(hours=self.end_hour)

    @staticmethod
    def is_weekend(day: date) -> bool:
        return day.weekday() >= 5

    def contains(self, moment: datetime) -> bool:
        """True if `moment` falls on a working day between opening and closing (inclusive)."""
        local = moment.astimezone(self.tz)
        if self.is_weekend(local.date()):
            return False
        return self.opening(local.date()) <= local <= self.closing(local.date())


class BusinessHoursCalculator:
    """
    Deadline arithmetic.

    Stateless apart from the working-day definition.
    """

    def __init__(self, hours: BusinessHours = BusinessHours()):
        self.hours = hours

    def add_minutes(self, start: datetime, minutes: int, business_hours_only: bool = True) -> datetime:
        """
        Add a minute budget to `start`.

        With `business_hours_only` false this is plain wall-clock addition.
        Otherwise minutes are consumed only inside working hours: weekends
        are skipped, time before opening is clamped to opening and time at or
        after closing rolls to the next day's opening. A budget that runs out
        exactly at closing time ends at closing time.

        Naive datetimes are treated as UTC. The result is in UTC.
        """
        if start.tzinfo is None:
            start = start.replace(tzinfo=timezone.utc)

        if minutes <= 0:
            return start.astimezone(timezone.utc)

        if not business_hours_only:
            return (start + timedelta(minutes=minutes)).astimezone(timezone.utc)

        cursor = start.astimezone(self.hours.tz)
        remaining = timedelta(minutes=minutes)

        while remaining > timedelta(0):
            day = cursor.date()

            if self.hours.is_weekend(day):
                cursor = self.hours.opening(day + timedelta(days=7 - day.weekday()))
                continue

            opening = self.hours.opening(day)
            closing = self.hours.closing(day)

            if cursor < opening:
                cursor = opening
                continue

            if cursor >= closing:
                cursor = self.hours.opening(day + timedelta(days=1))
                continue

            step = min(remaining, closing - cursor)
            cursor = cursor + step
            remaining -= step

        return cursor.astimezone(timezone.utc)
