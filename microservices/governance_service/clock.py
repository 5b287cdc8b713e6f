"""Wall-clock time source for production wiring"""

from datetime import datetime, timezone


class SystemClock:
    """Clock backed by the system UTC time"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
