from __future__ import annotations
from datetime import date, datetime, timedelta
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.utcnow()

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Horloge figée (tests, rejeu)."""

    def __init__(self, at: datetime):
        self.at = at

    def now(self) -> datetime:
        return self.at

    def today(self) -> date:
        return self.at.date()

    def advance(self, **kwargs) -> None:
        self.at = self.at + timedelta(**kwargs)
