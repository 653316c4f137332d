from __future__ import annotations

import datetime as dt


class SystemClock:
    """Wall clock returning naive UTC datetimes, matching how timestamps are stored."""

    def now(self) -> dt.datetime:
        return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class FixedClock:
    """Clock pinned to a given instant. Handy for jobs replaying a past day and for tests."""

    def __init__(self, instant: dt.datetime) -> None:
        self.instant = instant

    def now(self) -> dt.datetime:
        return self.instant

    def advance(self, **kwargs) -> None:
        self.instant = self.instant + dt.timedelta(**kwargs)
