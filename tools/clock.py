"""
Clock Tool
Source of "now" for reconciliation and statistics
"""

from datetime import datetime, date, timedelta


class Clock:
    """Provides the current local time (naive datetimes)"""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> date:
        return self.now().date()

    def start_of_today(self) -> datetime:
        return datetime.combine(self.today(), datetime.min.time())


class SystemClock(Clock):
    """Wall clock of the deployment"""

    def now(self) -> datetime:
        return datetime.now().replace(microsecond=0)


class FixedClock(Clock):
    """Clock frozen at a given instant, movable in tests"""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


system_clock = SystemClock()
