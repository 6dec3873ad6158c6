from __future__ import annotations

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from duesync.domain.common.ports import Clock


class SystemClock(Clock):
    """Aware wall clock in one configured zone. Stored timestamps carry the offset."""

    def __init__(self, tz_name: str = "UTC") -> None:
        try:
            self._tz = ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {tz_name!r}") from e

    @property
    def tz_name(self) -> str:
        return self._tz.key

    def now(self) -> datetime:
        return datetime.now(self._tz)
