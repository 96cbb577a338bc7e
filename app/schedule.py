"""
Schedule windows and the overlap rule used for worker conflicts.

A window is an inclusive calendar-date range combined with a daily
time-of-day range. Two windows conflict when both ranges intersect:

    a.date_start <= b.date_end and a.date_end >= b.date_start
    a.time_start <  b.time_end and a.time_end >  b.time_start

Time ranges are half-open, so a gig ending at 17:00 does not collide
with one starting at 17:00 on the same day.
"""

from datetime import date, datetime, time

import pytz
from pydantic import BaseModel, ConfigDict

from app.config import settings
from app.models import Gig

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"


class ScheduleWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    date_start: date
    date_end: date
    time_start: time
    time_end: time

    @classmethod
    def from_gig(cls, gig: Gig) -> "ScheduleWindow":
        return cls(
            date_start=gig.date_start,
            date_end=gig.date_end,
            time_start=gig.time_start,
            time_end=gig.time_end,
        )

    def dates_intersect(self, other: "ScheduleWindow") -> bool:
        return self.date_start <= other.date_end and self.date_end >= other.date_start

    def times_intersect(self, other: "ScheduleWindow") -> bool:
        return self.time_start < other.time_end and self.time_end > other.time_start

    def conflicts_with(self, other: "ScheduleWindow") -> bool:
        return self.dates_intersect(other) and self.times_intersect(other)

    @property
    def date_range(self) -> str:
        return format_date_range(self.date_start, self.date_end)

    @property
    def time_range(self) -> str:
        return format_time_range(self.time_start, self.time_end)


def format_date_range(start: date, end: date) -> str:
    return f"{start.strftime(DATE_FORMAT)} ~ {end.strftime(DATE_FORMAT)}"


def format_time_range(start: time, end: time) -> str:
    return f"{start.strftime(TIME_FORMAT)} ~ {end.strftime(TIME_FORMAT)}"


def local_today(now: datetime, tz_name: str | None = None) -> date:
    """Calendar day of ``now`` in the marketplace timezone."""
    tz = pytz.timezone(tz_name or settings.tz_default)
    return _aware(now).astimezone(tz).date()


def is_expired(gig: Gig, now: datetime) -> bool:
    return gig.date_end < local_today(now)


def is_listed(gig: Gig, now: datetime) -> bool:
    now = _aware(now)
    if gig.published_at is None or _aware(gig.published_at) > now:
        return False
    return gig.unlisted_at is None or _aware(gig.unlisted_at) > now


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return pytz.utc.localize(value)
    return value
