"""Data models for derived wallet analytics."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from vybe_alert_engine.ingestor.models import PnLSummary


class CategoryType(str, Enum):
    """Coarse wallet classification derived from counterparties."""

    CEX = "CEX"
    DEX = "DEX"
    PROTOCOL = "PROTOCOL"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class WalletCategory:
    """Classification of a wallet from its recent outgoing transfers."""

    type: CategoryType
    confidence: float
    protocols: tuple[str, ...] = ()
    last_updated: int = 0

    @classmethod
    def unknown(cls, last_updated: int = 0) -> WalletCategory:
        return cls(type=CategoryType.UNKNOWN, confidence=0.0, last_updated=last_updated)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "confidence": self.confidence,
            "protocols": list(self.protocols),
            "lastUpdated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WalletCategory:
        try:
            category_type = CategoryType(data.get("type", CategoryType.UNKNOWN.value))
        except ValueError:
            category_type = CategoryType.UNKNOWN
        return cls(
            type=category_type,
            confidence=float(data.get("confidence") or 0.0),
            protocols=tuple(data.get("protocols") or ()),
            last_updated=int(data.get("lastUpdated") or 0),
        )


@dataclass(frozen=True)
class WalletAnalytics:
    """Derived, non-authoritative analytics attached to a tracked wallet."""

    category: WalletCategory = field(default_factory=WalletCategory.unknown)
    pnl: PnLSummary | None = None
