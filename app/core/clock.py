"""
Business clock.

Every decision about whether a (date, time) pair lies in the past is made
here, against a single configured IANA time zone. Calendar days and HH:MM
times are stored as naive local values of that zone, so they are combined
with the zone before comparing with "now".
"""
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from app.core.config import settings


def parse_hhmm(value: str) -> time:
    """Convert an 'HH:MM' string into a time object."""
    hour, minute = value.split(":")
    return time(hour=int(hour), minute=int(minute))


class BusinessClock:
    """Supplies the current time in the business time zone."""

    def __init__(self, tz_name: str):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def localize(self, day: date, hhmm: str) -> datetime:
        """Attach the business zone to a calendar day and an HH:MM time."""
        return datetime.combine(day, parse_hhmm(hhmm), tzinfo=self.tz)

    def is_past(self, day: date, hhmm: str, now: Optional[datetime] = None) -> bool:
        """True if the slot starts strictly before now."""
        current = now or self.now()
        return self.localize(day, hhmm) < current


class FixedClock(BusinessClock):
    """Clock frozen at a given instant. Used by tests and scripts."""

    def __init__(self, tz_name: str, frozen: datetime):
        super().__init__(tz_name)
        if frozen.tzinfo is None:
            frozen = frozen.replace(tzinfo=self.tz)
        self.frozen = frozen.astimezone(self.tz)

    def now(self) -> datetime:
        return self.frozen


business_clock = BusinessClock(settings.BUSINESS_TIMEZONE)


def get_clock() -> BusinessClock:
    """FastAPI dependency returning the configured business clock"""
    return business_clock
