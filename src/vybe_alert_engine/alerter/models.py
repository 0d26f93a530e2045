"""Alert payloads built by the tracking engines and their rendered form."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import ClassVar, Union

from vybe_alert_engine.detector.models import Direction, TokenValueChange
from vybe_alert_engine.ingestor.models import PnLSummary, TokenHolding, Transfer
from vybe_alert_engine.profiler.models import WalletCategory


@dataclass(frozen=True)
class TransferNotification:
    """A new transfer was seen for a tracked wallet."""

    kind: ClassVar[str] = "transfer"

    wallet_address: str
    transfer: Transfer
    token_symbol: str | None = None


@dataclass(frozen=True)
class TokenListChanged:
    """Tokens appeared in or disappeared from a tracked wallet.

    `added` carries the balance entries of newly held tokens so the message
    can show their value and 24h price change; `removed` is symbols only.
    """

    kind: ClassVar[str] = "token_list_changed"

    wallet_address: str
    added: tuple[TokenHolding, ...]
    removed: tuple[str, ...]
    total_value_usd: Decimal
    added_symbols: tuple[str, ...] = ()


@dataclass(frozen=True)
class ThresholdCrossed:
    """Total wallet value crossed the subscriber's threshold."""

    kind: ClassVar[str] = "threshold_crossed"

    wallet_address: str
    direction: Direction
    threshold: Decimal
    current_value: Decimal


@dataclass(frozen=True)
class PercentChangeAlert:
    """Total wallet value moved by a significant percentage since last cycle."""

    kind: ClassVar[str] = "percent_change"

    wallet_address: str
    direction: Direction
    percent: Decimal
    previous_value: Decimal
    current_value: Decimal


@dataclass(frozen=True)
class ChartSlice:
    """One slice of the holdings chart."""

    label: str
    value_usd: Decimal


@dataclass(frozen=True)
class PeriodicSummary:
    """Full wallet update: value, 24h change, holdings chart data and analytics.

    Attributes:
        wallet_address: Tracked wallet.
        current_value: Current total USD value.
        value_24h_ago: Reference value for the 24h change, if known.
        chart_data: Largest holdings, largest first.
        pnl: 30 day PnL summary, if available.
        category: Wallet classification, if available.
        is_baseline: True for the first summary sent when tracking starts.
    """

    kind: ClassVar[str] = "periodic_summary"

    wallet_address: str
    current_value: Decimal
    value_24h_ago: Decimal | None = None
    chart_data: tuple[ChartSlice, ...] = ()
    pnl: PnLSummary | None = None
    category: WalletCategory | None = None
    is_baseline: bool = False

    @property
    def change_24h_percent(self) -> Decimal | None:
        if self.value_24h_ago is None or self.value_24h_ago == 0:
            return None
        return (self.current_value - self.value_24h_ago) / self.value_24h_ago * Decimal(100)


@dataclass(frozen=True)
class TokenValueChangeAlert:
    """Consolidated list of significant per-token value moves."""

    kind: ClassVar[str] = "token_value_change"

    wallet_address: str
    changes: tuple[TokenValueChange, ...]


@dataclass(frozen=True)
class WhaleAlert:
    """A transfer on a watched token met the subscriber's threshold."""

    kind: ClassVar[str] = "whale"

    token_mint: str
    token_symbol: str
    amount: Decimal
    min_amount: Decimal
    sender_address: str | None
    receiver_address: str | None
    signature: str
    block_time: int
    value_usd: Decimal | None = None
    program_name: str | None = None


AlertPayload = Union[
    TransferNotification,
    TokenListChanged,
    ThresholdCrossed,
    PercentChangeAlert,
    PeriodicSummary,
    TokenValueChangeAlert,
    WhaleAlert,
]


@dataclass
class FormattedAlert:
    """Rendered alert ready for a transport.

    Attributes:
        title: Short title line.
        telegram_markdown: Telegram Markdown body.
        plain_text: Plain text fallback.
        links: Related explorer links.
    """

    title: str
    telegram_markdown: str
    plain_text: str
    links: dict[str, str] = field(default_factory=dict)
