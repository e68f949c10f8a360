"""
Business Clock
Wall-clock time in the business timezone (follow-ups are due by local date)
"""
from datetime import date, datetime
from typing import Optional

import pytz

from franchise_crm.core.config import get_settings


class BusinessClock:
    """
    Source of "now" and "today" for history stamps and due checks.

    Timestamps are naive local times in the configured timezone, matching
    how follow-up dates are entered by staff.
    """

    def __init__(self, timezone: str = "Asia/Kolkata", fixed_now: Optional[datetime] = None):
        self.tz = pytz.timezone(timezone)
        self._fixed_now = fixed_now

    def now(self) -> datetime:
        if self._fixed_now is not None:
            return self._fixed_now
        return datetime.now(self.tz).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()

    def localize(self, value: datetime) -> datetime:
        """Convert an aware datetime to naive local time; naive values pass through."""
        if value.tzinfo is None:
            return value
        return value.astimezone(self.tz).replace(tzinfo=None)


def business_now() -> datetime:
    """Naive local time in the configured business timezone (model defaults)."""
    return BusinessClock(get_settings().business_timezone).now()
