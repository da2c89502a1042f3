"""Clock used for ticket timestamps and the statistics day boundary."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from eventdesk.core.config import get_settings


class Clock:
    def __init__(self, tz_name: str | None = None) -> None:
        self._tz_name = tz_name

    def _zone(self):
        name = self._tz_name or get_settings().default_timezone
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            return timezone.utc

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def start_of_day(self, now: datetime | None = None) -> datetime:
        """Midnight of the current server-local day, expressed in UTC."""
        current = (now or self.now()).astimezone(self._zone())
        midnight = current.replace(hour=0, minute=0, second=0, microsecond=0)
        return midnight.astimezone(timezone.utc)


clock = Clock()
