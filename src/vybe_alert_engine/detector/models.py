"""Data models for the detector module."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class Direction(str, Enum):
    """Direction of a value movement."""

    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class TokenListDiff:
    """Symbols that appeared in or disappeared from a wallet since last cycle."""

    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


@dataclass(frozen=True)
class ValueChange:
    """Result of comparing a wallet's total value against its previous value.

    Attributes:
        previous: Total value observed last cycle (None on first observation).
        current: Total value observed now.
        crossing: Direction of a threshold crossing, if one happened.
        percent_change: Signed percent change (None when it cannot be computed).
        percent_alert: True when |percent_change| met the alert threshold.
        summary_due: True when current >= the subscriber's threshold.
    """

    previous: Decimal | None
    current: Decimal
    crossing: Direction | None = None
    percent_change: Decimal | None = None
    percent_alert: bool = False
    summary_due: bool = False

    @property
    def percent_direction(self) -> Direction | None:
        if self.percent_change is None:
            return None
        return Direction.UP if self.percent_change > 0 else Direction.DOWN


@dataclass(frozen=True)
class TokenValueChange:
    """A significant per-token USD value move."""

    symbol: str
    mint_address: str
    old_value: Decimal
    new_value: Decimal
    percent_change: Decimal

    @property
    def direction(self) -> Direction:
        return Direction.UP if self.percent_change > 0 else Direction.DOWN


@dataclass(frozen=True)
class TokenValueDiff:
    """Flagged token moves plus the refreshed per-token value snapshot."""

    changes: tuple[TokenValueChange, ...] = ()
    balances: dict[str, str] = field(default_factory=dict)
