"""
Clock abstraction for code that depends on the current date.
"""
from abc import ABC, abstractmethod
from datetime import date

class Clock(ABC):
    """Source of the current date."""

    @abstractmethod
    def today(self) -> date:
        pass

class SystemClock(Clock):
    """Clock backed by the host date."""

    def today(self) -> date:
        return date.today()

class FixedClock(Clock):
    """Clock frozen at a given date."""

    def __init__(self, current: date):
        self.current = current

    def today(self) -> date:
        return self.current
