"""Injectable time source for rate lookups, discount windows and order history."""
from datetime import datetime, timezone


class Clock:
    """Wall clock returning naive UTC timestamps (the format stored in the database)."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)


class FrozenClock(Clock):
    """Clock pinned to a fixed instant; used by tests and by reprocessing jobs."""

    def __init__(self, instant: datetime):
        self.instant = instant

    def now(self) -> datetime:
        return self.instant

    def advance(self, delta) -> None:
        self.instant = self.instant + delta


system_clock = Clock()
