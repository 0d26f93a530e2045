"""Alert message formatter.

This module renders the alert payloads built by the tracking engines into
Telegram Markdown and plain text.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from decimal import Decimal

from vybe_alert_engine.alerter.models import (
    AlertPayload,
    FormattedAlert,
    PercentChangeAlert,
    PeriodicSummary,
    ThresholdCrossed,
    TokenListChanged,
    TokenValueChangeAlert,
    TransferNotification,
    WhaleAlert,
)
from vybe_alert_engine.detector.models import Direction
from vybe_alert_engine.ingestor.models import NATIVE_SOL_MINT, PnLSummary

# Explorer URLs
SOLSCAN_TX_URL = "https://solscan.io/tx/{signature}"
SOLSCAN_ACCOUNT_URL = "https://solscan.io/account/{address}"

_TIME_UNITS = (
    ("year", 31_536_000),
    ("month", 2_592_000),
    ("day", 86_400),
    ("hour", 3_600),
    ("minute", 60),
    ("second", 1),
)


def truncate_address(address: str, chars: int = 4) -> str:
    """Truncate a Solana address to 5Q54...e4j1 format."""
    if len(address) <= chars * 2 + 3:
        return address
    return f"{address[:chars]}...{address[-chars:]}"


def format_usd(amount: Decimal | float | int) -> str:
    """Format a USD amount compactly ($1.23K, $4.56M, $7.89B)."""
    value = Decimal(str(amount))
    if value >= 1_000_000_000:
        return f"${value / 1_000_000_000:.2f}B"
    if value >= 1_000_000:
        return f"${value / 1_000_000:.2f}M"
    if value >= 1_000:
        return f"${value / 1_000:.2f}K"
    return f"${value:.2f}"


def format_amount(amount: Decimal, max_decimals: int = 6) -> str:
    """Format a token amount with thousands separators and trimmed decimals."""
    text = f"{amount:,.{max_decimals}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_percent(percent: Decimal, *, signed: bool = False) -> str:
    if signed:
        return f"{'+' if percent > 0 else ''}{percent:.2f}%"
    return f"{abs(percent):.2f}%"


def time_ago(timestamp: int, now: float) -> str:
    """Human readable elapsed time since a unix timestamp."""
    elapsed = int(now - timestamp)
    for label, seconds in _TIME_UNITS:
        count = elapsed // seconds
        if count >= 1:
            return f"{count} {label}{'s' if count > 1 else ''} ago"
    return "just now"


def direction_emoji(direction: Direction) -> str:
    return "📈" if direction == Direction.UP else "📉"


def to_plain_text(markdown: str) -> str:
    """Strip Telegram Markdown emphasis and code markers."""
    return markdown.replace("*", "").replace("`", "").replace("_", "")


class AlertFormatter:
    """Formats alert payloads into Telegram Markdown and plain text."""

    def __init__(self, *, clock: Callable[[], float] = time.time) -> None:
        """Initialize the formatter.

        Args:
            clock: Source of the current unix time, used for relative times.
        """
        self._clock = clock

    def format(self, alert: AlertPayload) -> FormattedAlert:
        """Format an alert payload.

        Args:
            alert: Payload built by one of the tracking engines.

        Returns:
            FormattedAlert with all channel formats.
        """
        if isinstance(alert, TransferNotification):
            title, lines, links = self._format_transfer(alert)
        elif isinstance(alert, TokenListChanged):
            title, lines, links = self._format_token_list(alert)
        elif isinstance(alert, ThresholdCrossed):
            title, lines, links = self._format_threshold(alert)
        elif isinstance(alert, PercentChangeAlert):
            title, lines, links = self._format_percent(alert)
        elif isinstance(alert, PeriodicSummary):
            title, lines, links = self._format_summary(alert)
        elif isinstance(alert, TokenValueChangeAlert):
            title, lines, links = self._format_token_values(alert)
        elif isinstance(alert, WhaleAlert):
            title, lines, links = self._format_whale(alert)
        else:
            raise TypeError(f"Unsupported alert payload: {type(alert).__name__}")

        markdown = "\n".join(lines)
        return FormattedAlert(
            title=title,
            telegram_markdown=markdown,
            plain_text=to_plain_text(markdown),
            links=links,
        )

    def _format_transfer(
        self, alert: TransferNotification
    ) -> tuple[str, list[str], dict[str, str]]:
        tx = alert.transfer
        symbol = alert.token_symbol or "Unknown"
        url = SOLSCAN_TX_URL.format(signature=tx.signature)
        lines = [
            "💰 *Transfer Summary*",
            "",
            f"👤 *From:* `{tx.sender_address or 'Unknown'}`",
            "",
            f"📥 *To:* `{tx.receiver_address or 'Unknown'}`",
            "",
            f"💸 *Transfer Amount:* `{format_amount(tx.amount)} {symbol}`",
            "",
            f"🕒 *Block Time:* _{time_ago(tx.block_time, self._clock())}_",
            "",
            f"🔗 [🔍 View more on Solscan]({url})",
        ]
        return "Transfer Summary", lines, {"transaction": url}

    def _format_token_list(
        self, alert: TokenListChanged
    ) -> tuple[str, list[str], dict[str, str]]:
        lines = [f"🔄 Token list changed for `{alert.wallet_address}`", ""]

        if alert.added or alert.added_symbols:
            lines.append("➕ *Added:*")
            detailed = {t.symbol for t in alert.added}
            for token in alert.added:
                entry = f"   *{token.symbol}*: {format_usd(token.value_usd)}"
                if token.price_change_1d != 0:
                    emoji = "📈" if token.price_change_1d > 0 else "📉"
                    entry += f" ({emoji} {token.price_change_1d:.2f}%)"
                lines.append(entry)
            bare = [s for s in alert.added_symbols if s not in detailed]
            if bare:
                lines.append(f"   {', '.join(bare)}")
            lines.append("")

        if alert.removed:
            lines.append(f"➖ *Removed:* {', '.join(alert.removed)}")
            lines.append("")

        lines.append(f"💰 *Current Wallet Value:* {format_usd(alert.total_value_usd)}")
        return "Token List Changed", lines, self._wallet_link(alert.wallet_address)

    def _format_threshold(
        self, alert: ThresholdCrossed
    ) -> tuple[str, list[str], dict[str, str]]:
        threshold = format_usd(alert.threshold)
        if alert.direction == Direction.UP:
            title = "Threshold Crossed Upward"
            headline = (
                f"💹 Wallet `{alert.wallet_address}` value has risen above "
                f"your set threshold of {threshold}!"
            )
        else:
            title = "Threshold Crossed Downward"
            headline = (
                f"⚠️ Wallet `{alert.wallet_address}` value has dropped below "
                f"your set threshold of {threshold}!"
            )
        lines = [headline, "", f"Current value: {format_usd(alert.current_value)}"]
        return title, lines, self._wallet_link(alert.wallet_address)

    def _format_percent(
        self, alert: PercentChangeAlert
    ) -> tuple[str, list[str], dict[str, str]]:
        verb = "increased" if alert.direction == Direction.UP else "decreased"
        emoji = direction_emoji(alert.direction)
        lines = [
            f"{emoji} Wallet `{alert.wallet_address}` value has {verb} by "
            f"{format_percent(alert.percent)}",
            "",
            f"Previous: {format_usd(alert.previous_value)}",
            f"Current: {format_usd(alert.current_value)}",
        ]
        return f"Wallet Value {verb.capitalize()}", lines, self._wallet_link(alert.wallet_address)

    def _format_summary(
        self, alert: PeriodicSummary
    ) -> tuple[str, list[str], dict[str, str]]:
        heading = "📊 *Wallet Tracking Started*" if alert.is_baseline else "📊 *Wallet Tracking Update*"
        lines = [heading, "", f"*Wallet Address:* `{alert.wallet_address}`"]

        change = alert.change_24h_percent
        if alert.value_24h_ago is not None and change is not None:
            if change > 0:
                change_text = f"📈 +{format_percent(change)}"
            elif change < 0:
                change_text = f"📉 {format_percent(change)}"
            else:
                change_text = f"➡️ {format_percent(change)}"
            lines.extend(
                [
                    f"*Wallet Value 24h ago:* {format_usd(alert.value_24h_ago)}",
                    f"*Current Wallet Value:* {format_usd(alert.current_value)}",
                    f"*24h Change:* {change_text}",
                ]
            )
        else:
            lines.extend(
                [
                    f"*Current Wallet Value:* {format_usd(alert.current_value)}",
                    "",
                    "*24h Change:* _Data will be available tomorrow_",
                ]
            )

        if alert.chart_data:
            lines.extend(["", "*Top Holdings:*"])
            for index, entry in enumerate(alert.chart_data, start=1):
                lines.append(f"{index}. *{entry.label}*: {format_usd(entry.value_usd)}")

        if alert.category is not None:
            lines.extend(
                [
                    "",
                    f"🏷 *Category:* {alert.category.type.value} ({alert.category.confidence:.0%})",
                ]
            )

        if alert.pnl is not None:
            lines.extend(["", *self._pnl_lines(alert.pnl)])

        return "Wallet Tracking Update", lines, self._wallet_link(alert.wallet_address)

    def _pnl_lines(self, pnl: PnLSummary) -> list[str]:
        best = pnl.best_token
        worst = pnl.worst_token
        return [
            f"💰 *Total PnL:* {format_usd(pnl.total_pnl_usd)}",
            f"💸 *Realized PnL:* {format_usd(pnl.realized_pnl_usd)}",
            f"📉 *Unrealized PnL:* {format_usd(pnl.unrealized_pnl_usd)}",
            f"🎯 *Win Rate:* {pnl.win_rate * 100:.2f}%",
            f"🔄 *Trades:* {pnl.trade_count}",
            f"📊 *Avg Trade Size:* {format_usd(pnl.average_trade_usd)}",
            f"🌟 *Best Performer:* {best.token_symbol if best else 'N/A'} "
            f"({format_usd(best.pnl_usd if best else 0)})",
            f"💥 *Worst Performer:* {worst.token_symbol if worst else 'N/A'} "
            f"({format_usd(worst.pnl_usd if worst else 0)})",
        ]

    def _format_token_values(
        self, alert: TokenValueChangeAlert
    ) -> tuple[str, list[str], dict[str, str]]:
        lines = [f"📊 *Significant Token Changes* in wallet `{alert.wallet_address}`", ""]
        for change in alert.changes:
            lines.append(
                f"{direction_emoji(change.direction)} *{change.symbol}*: "
                f"{format_percent(change.percent_change, signed=True)}"
            )
            lines.append(f"   {format_usd(change.old_value)} → {format_usd(change.new_value)}")
            lines.append("")
        return "Significant Token Changes", lines, self._wallet_link(alert.wallet_address)

    def _format_whale(self, alert: WhaleAlert) -> tuple[str, list[str], dict[str, str]]:
        symbol = alert.token_symbol
        if not symbol and alert.token_mint == NATIVE_SOL_MINT:
            symbol = "SOL"
        value = format_usd(alert.value_usd) if alert.value_usd is not None else "N/A"
        url = SOLSCAN_TX_URL.format(signature=alert.signature)

        lines = [
            "🐋 *WHALE ALERT!* 🐋",
            "",
            f"*A large transfer of {format_amount(alert.amount)} {symbol}* ({value}) was detected!",
            "",
            f"👤 *From:* `{alert.sender_address or 'Unknown'}`",
            f"📥 *To:* `{alert.receiver_address or 'Unknown'}`",
        ]
        if alert.program_name:
            lines.append(f"💻 *Program:* {alert.program_name}")
        lines.extend(
            [
                "",
                f"🕒 _{time_ago(alert.block_time, self._clock())}_",
                f"🔗 [View Transaction on solscan]({url})",
            ]
        )
        return "Whale Alert", lines, {"transaction": url}

    def _wallet_link(self, wallet_address: str) -> dict[str, str]:
        return {"wallet": SOLSCAN_ACCOUNT_URL.format(address=wallet_address)}
