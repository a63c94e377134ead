"""Money values and payment policies."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from errors import InvalidAmount

HOURLY = "hourly"
FIXED = "fixed"
PAYMENT_KINDS = (HOURLY, FIXED)


@dataclass(frozen=True, order=True)
class Money:
    """A whole number of pence.

    Use ``MoneyExact`` for values with fractional pence.
    """

    pence: int = 0

    def __post_init__(self):
        if not isinstance(self.pence, int) or isinstance(self.pence, bool):
            raise TypeError("Money pence must be an integer")
        if self.pence < 0:
            raise InvalidAmount(self.pence)

    def as_pence(self) -> int:
        return self.pence

    def __str__(self) -> str:
        return f"£{self.pence // 100}.{self.pence % 100:02d}"

    def __add__(self, other):
        if isinstance(other, Money):
            return Money(self.pence + other.pence)
        if isinstance(other, MoneyExact):
            return MoneyExact(self.pence + other.pence)
        return NotImplemented

    def __radd__(self, other):
        # sum() starts from 0
        if other == 0:
            return self
        return NotImplemented


@dataclass(frozen=True, order=True)
class MoneyExact:
    """A non-negative amount of pence which may be fractional."""

    pence: float = 0.0

    def __post_init__(self):
        if self.pence < 0:
            raise InvalidAmount(self.pence)

    @classmethod
    def from_money(cls, money: Money) -> MoneyExact:
        return cls(float(money.pence))

    def as_pence(self) -> float:
        return self.pence

    def __str__(self) -> str:
        return f"£{self.pence / 100:.2f}"

    def __add__(self, other):
        if isinstance(other, (Money, MoneyExact)):
            return MoneyExact(self.pence + other.pence)
        return NotImplemented

    def __radd__(self, other):
        if other == 0:
            return self
        if isinstance(other, Money):
            return MoneyExact(other.pence + self.pence)
        return NotImplemented


@dataclass(frozen=True)
class Payment:
    """How the money owed for a work slice is calculated.

    ``hourly`` pays ``amount`` per hour with no rounding, so every second
    counts. ``fixed`` pays ``amount`` regardless of how long the work takes.
    """

    kind: str
    amount: Money

    def __post_init__(self):
        if self.kind not in PAYMENT_KINDS:
            raise ValueError(f"Unknown payment kind: {self.kind!r}")

    @classmethod
    def hourly(cls, rate: Money) -> Payment:
        return cls(HOURLY, rate)

    @classmethod
    def fixed(cls, amount: Money) -> Payment:
        return cls(FIXED, amount)

    def calculate(self, duration: timedelta) -> MoneyExact:
        """Money owed for a work slice lasting ``duration``."""
        if self.kind == HOURLY:
            return MoneyExact(self.amount.pence * duration.total_seconds() / 3600.0)
        return MoneyExact.from_money(self.amount)

    def __str__(self) -> str:
        if self.kind == HOURLY:
            return f"{self.amount} / hour"
        return f"fixed at {self.amount}"
