"""Tracking state models and their persisted JSON form."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

from vybe_alert_engine.ingestor.models import PnLSummary, to_decimal
from vybe_alert_engine.profiler.models import WalletCategory


class ConfirmationStatus(str, Enum):
    """Outcome of a command-facing tracking operation."""

    CREATED = "created"
    UPDATED = "updated"
    REMOVED = "removed"


@dataclass(frozen=True)
class Confirmation:
    """Successful result of start/stop/set/remove operations."""

    status: ConfirmationStatus
    subscriber_id: int
    entity: str
    threshold: Decimal | None = None

    @property
    def created(self) -> bool:
        return self.status == ConfirmationStatus.CREATED


@dataclass
class TrackedWallet:
    """One subscriber's tracking configuration and last-seen state for one wallet.

    Mutated in place by the wallet tracking engine on every scan cycle.
    `category` and `pnl` are recomputed each cycle and carried only for
    display.
    """

    wallet_address: str
    subscriber_id: int
    min_value_usd: Decimal
    last_checked_time: int
    last_total_value: Decimal | None = None
    last_token_list: list[str] | None = None
    last_balances: dict[str, str] = field(default_factory=dict)
    last_known_signature: str | None = None
    error_count: int = 0
    category: WalletCategory | None = None
    pnl: PnLSummary | None = None

    @property
    def key(self) -> tuple[str, int]:
        return (self.wallet_address, self.subscriber_id)

    def last_token_value(self, value_key: str) -> Decimal:
        """Previously recorded USD value under a per-token key (0 if unseen)."""
        return to_decimal(self.last_balances.get(value_key))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the persistence store."""
        return {
            "walletAddress": self.wallet_address,
            "subscriberId": self.subscriber_id,
            "minValueUsd": str(self.min_value_usd),
            "lastCheckedTime": self.last_checked_time,
            "lastTotalValue": (
                str(self.last_total_value) if self.last_total_value is not None else None
            ),
            "lastTokenList": list(self.last_token_list) if self.last_token_list is not None else None,
            "lastBalances": dict(self.last_balances),
            "lastKnownSignature": self.last_known_signature,
            "errorCount": self.error_count,
            "category": self.category.to_dict() if self.category else None,
            "pnl": self.pnl.to_dict() if self.pnl else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackedWallet:
        """Rebuild a record from its persisted form.

        `lastBalances` is accepted as a mapping, as a list of `[key, value]`
        pairs, or absent.
        """
        last_total = data.get("lastTotalValue")
        token_list = data.get("lastTokenList")
        category = data.get("category")
        pnl = data.get("pnl")
        return cls(
            wallet_address=str(data["walletAddress"]),
            subscriber_id=int(data["subscriberId"]),
            min_value_usd=to_decimal(data.get("minValueUsd")),
            last_checked_time=int(data.get("lastCheckedTime") or 0),
            last_total_value=to_decimal(last_total) if last_total is not None else None,
            last_token_list=[str(s) for s in token_list] if token_list is not None else None,
            last_balances=_balances_from_serialized(data.get("lastBalances")),
            last_known_signature=data.get("lastKnownSignature") or None,
            error_count=int(data.get("errorCount") or 0),
            category=WalletCategory.from_dict(category) if isinstance(category, dict) else None,
            pnl=PnLSummary.from_dict(pnl) if isinstance(pnl, dict) else None,
        )


def _balances_from_serialized(raw: Any) -> dict[str, str]:
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return {str(k): str(v) for k, v in raw.items()}
    if isinstance(raw, list):
        pairs: dict[str, str] = {}
        for entry in raw:
            if isinstance(entry, (list, tuple)) and len(entry) == 2:
                pairs[str(entry[0])] = str(entry[1])
        return pairs
    raise ValueError(f"Unsupported lastBalances encoding: {type(raw).__name__}")


@dataclass
class WhaleAlertSubscription:
    """One subscriber's whale threshold for a set of tokens."""

    subscriber_id: int
    min_amount: Decimal
    tokens: set[str] = field(default_factory=set)

    def watches(self, token: str) -> bool:
        return token in self.tokens

    def to_dict(self) -> dict[str, Any]:
        return {
            "subscriberId": self.subscriber_id,
            "minAmount": str(self.min_amount),
            "tokens": sorted(self.tokens),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WhaleAlertSubscription:
        return cls(
            subscriber_id=int(data["subscriberId"]),
            min_amount=to_decimal(data.get("minAmount")),
            tokens={str(t) for t in data.get("tokens") or ()},
        )


@dataclass(frozen=True)
class HistoricalValueSnapshot:
    """Last daily checkpoint of a wallet's total value."""

    value: Decimal
    timestamp: int

    def is_stale(self, now: float, max_age_seconds: int = 24 * 3600) -> bool:
        return now - self.timestamp >= max_age_seconds

    def to_dict(self) -> dict[str, Any]:
        return {"value": str(self.value), "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HistoricalValueSnapshot:
        return cls(value=to_decimal(data.get("value")), timestamp=int(data.get("timestamp") or 0))
