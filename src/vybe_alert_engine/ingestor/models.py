"""Data models for the ingestor module."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

NATIVE_SOL_MINT = "11111111111111111111111111111111"


def to_decimal(value: Any, default: Decimal = Decimal(0)) -> Decimal:
    """Parse an API number (string, int or float) into a Decimal."""
    if value is None or value == "":
        return default
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


@dataclass(frozen=True)
class TokenHolding:
    """A single token position inside a wallet balance response."""

    symbol: str
    mint_address: str
    amount: Decimal
    value_usd: Decimal
    price_usd: Decimal = Decimal(0)
    price_change_1d: Decimal = Decimal(0)
    name: str = ""

    @property
    def value_key(self) -> str:
        """Key under which this token's USD value is remembered between cycles."""
        return f"{self.mint_address}_value"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TokenHolding:
        """Create a TokenHolding from a balance response entry."""
        return cls(
            symbol=str(data.get("symbol") or ""),
            mint_address=str(data.get("mintAddress") or ""),
            amount=to_decimal(data.get("amount")),
            value_usd=to_decimal(data.get("valueUsd")),
            price_usd=to_decimal(data.get("priceUsd")),
            price_change_1d=to_decimal(data.get("priceUsd1dChange")),
            name=str(data.get("name") or ""),
        )


@dataclass(frozen=True)
class WalletBalance:
    """Token balance snapshot for one wallet."""

    owner_address: str
    total_value_usd: Decimal
    tokens: tuple[TokenHolding, ...]
    total_value_change_1d: Decimal = Decimal(0)

    @property
    def symbols(self) -> list[str]:
        """Token symbols in response order."""
        return [t.symbol for t in self.tokens]

    @property
    def is_empty(self) -> bool:
        return not self.tokens

    def top_holdings(self, limit: int = 7) -> list[TokenHolding]:
        """Return the highest-value holdings, largest first."""
        return sorted(self.tokens, key=lambda t: t.value_usd, reverse=True)[:limit]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WalletBalance:
        """Create a WalletBalance from the token-balance endpoint response."""
        tokens = tuple(
            TokenHolding.from_dict(t) for t in data.get("data") or [] if isinstance(t, dict)
        )
        return cls(
            owner_address=str(data.get("ownerAddress") or ""),
            total_value_usd=to_decimal(data.get("totalTokenValueUsd")),
            tokens=tokens,
            total_value_change_1d=to_decimal(data.get("totalTokenValueUsd1dChange")),
        )


@dataclass(frozen=True)
class Transfer:
    """A token transfer as reported by the analytics API."""

    signature: str
    sender_address: str | None
    receiver_address: str | None
    mint_address: str
    amount: Decimal
    value_usd: Decimal | None
    block_time: int
    program_name: str | None = None

    @property
    def is_native_sol(self) -> bool:
        return self.mint_address == NATIVE_SOL_MINT

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Transfer:
        """Create a Transfer from a transfers endpoint entry.

        `calculatedAmount` is the decimal-adjusted amount; the raw `amount`
        field is only used when it is missing.
        """
        amount_raw = data.get("calculatedAmount")
        if amount_raw in (None, ""):
            amount_raw = data.get("amount")
        value_raw = data.get("valueUsd")

        program_name = None
        calling = data.get("callingMetadata")
        if isinstance(calling, list) and calling and isinstance(calling[0], dict):
            program_name = calling[0].get("programName") or None

        return cls(
            signature=str(data.get("signature") or ""),
            sender_address=data.get("senderAddress") or None,
            receiver_address=data.get("receiverAddress") or None,
            mint_address=str(data.get("mintAddress") or ""),
            amount=to_decimal(amount_raw),
            value_usd=to_decimal(value_raw) if value_raw not in (None, "") else None,
            block_time=int(data.get("blockTime") or 0),
            program_name=program_name,
        )


@dataclass(frozen=True)
class TransferPage:
    """A page of transfers."""

    transfers: tuple[Transfer, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TransferPage:
        raw = data.get("transfers") or []
        return cls(
            transfers=tuple(
                Transfer.from_dict(t) for t in raw if isinstance(t, dict) and t.get("signature")
            )
        )


@dataclass(frozen=True)
class TopHolder:
    """A top holder entry; used here mainly to resolve a token's symbol."""

    owner_address: str
    token_mint: str
    token_symbol: str
    value_usd: Decimal
    rank: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TopHolder:
        return cls(
            owner_address=str(data.get("ownerAddress") or ""),
            token_mint=str(data.get("tokenMint") or ""),
            token_symbol=str(data.get("tokenSymbol") or ""),
            value_usd=to_decimal(data.get("valueUsd")),
            rank=int(data.get("rank") or 0),
        )


@dataclass(frozen=True)
class TokenPerformance:
    """Best or worst performing token in a PnL summary."""

    token_symbol: str
    pnl_usd: Decimal

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> TokenPerformance | None:
        if not data:
            return None
        return cls(
            token_symbol=str(data.get("tokenSymbol") or ""),
            pnl_usd=to_decimal(data.get("pnlUsd")),
        )


@dataclass(frozen=True)
class PnLSummary:
    """Wallet PnL over the requested resolution."""

    realized_pnl_usd: Decimal
    unrealized_pnl_usd: Decimal
    win_rate: float
    trade_count: int
    average_trade_usd: Decimal
    best_token: TokenPerformance | None = None
    worst_token: TokenPerformance | None = None

    @property
    def total_pnl_usd(self) -> Decimal:
        return self.realized_pnl_usd + self.unrealized_pnl_usd

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PnLSummary:
        """Create a PnLSummary from the pnl endpoint response (or its cached form)."""
        summary = data.get("summary", data)
        return cls(
            realized_pnl_usd=to_decimal(summary.get("realizedPnlUsd")),
            unrealized_pnl_usd=to_decimal(summary.get("unrealizedPnlUsd")),
            win_rate=float(summary.get("winRate") or 0.0),
            trade_count=int(summary.get("tradesCount") or 0),
            average_trade_usd=to_decimal(summary.get("averageTradeUsd")),
            best_token=TokenPerformance.from_dict(summary.get("bestPerformingToken")),
            worst_token=TokenPerformance.from_dict(summary.get("worstPerformingToken")),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the same shape from_dict accepts."""

        def perf(p: TokenPerformance | None) -> dict[str, str] | None:
            if p is None:
                return None
            return {"tokenSymbol": p.token_symbol, "pnlUsd": str(p.pnl_usd)}

        return {
            "realizedPnlUsd": str(self.realized_pnl_usd),
            "unrealizedPnlUsd": str(self.unrealized_pnl_usd),
            "winRate": self.win_rate,
            "tradesCount": self.trade_count,
            "averageTradeUsd": str(self.average_trade_usd),
            "bestPerformingToken": perf(self.best_token),
            "worstPerformingToken": perf(self.worst_token),
        }
