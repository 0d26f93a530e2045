"""Diff passes that compare a wallet's current state against its last-seen state.

Every function here is pure: it takes the previous snapshot and the fresh
API data and returns what changed. The wallet tracking engine decides what
to send and writes the new state back onto the tracked record.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from decimal import Decimal

from vybe_alert_engine.detector.models import (
    Direction,
    TokenListDiff,
    TokenValueChange,
    TokenValueDiff,
    ValueChange,
)
from vybe_alert_engine.ingestor.models import TokenHolding, Transfer, to_decimal

# Default configuration
DEFAULT_VALUE_CHANGE_PERCENT = Decimal(5)
DEFAULT_TOKEN_CHANGE_PERCENT = Decimal(20)
DEFAULT_TOKEN_CHANGE_MIN_VALUE_USD = Decimal(10)
DEFAULT_TOKEN_CHANGE_LIMIT = 5

_HUNDRED = Decimal(100)


def percent_change(old: Decimal, new: Decimal) -> Decimal:
    """Signed percent change from `old` to `new`; `old` must be non-zero."""
    return (new - old) / old * _HUNDRED


def sort_newest_first(transfers: Iterable[Transfer]) -> list[Transfer]:
    """Order transfers by block time, newest first (stable for ties)."""
    return sorted(transfers, key=lambda t: t.block_time, reverse=True)


def latest_transfer(transfers: Iterable[Transfer]) -> Transfer | None:
    """The newest transfer across the sent and received pages, if any."""
    ordered = sort_newest_first(transfers)
    return ordered[0] if ordered else None


def select_missed_transfers(
    probe: Sequence[Transfer],
    *,
    latest_signature: str,
    previous_signature: str | None,
) -> list[Transfer]:
    """Pick transfers from a deeper probe that landed between two markers.

    Walks the probe newest-first, skipping the already announced latest
    transfer and any duplicate signature, and stops at the first transfer
    the subscriber had already seen.

    Args:
        probe: Transfers from the deeper sent + received fetch.
        latest_signature: Signature that was just announced.
        previous_signature: Marker stored before this cycle.

    Returns:
        Missed transfers, newest first.
    """
    if previous_signature is None:
        return []

    missed: list[Transfer] = []
    seen = {latest_signature}
    for transfer in sort_newest_first(probe):
        if transfer.signature == previous_signature:
            break
        if transfer.signature in seen:
            continue
        seen.add(transfer.signature)
        missed.append(transfer)
    return missed


def diff_token_list(previous: Sequence[str] | None, current: Sequence[str]) -> TokenListDiff:
    """Symbols added (in current order) and removed (in previous order)."""
    old = list(previous or [])
    added = tuple(s for s in current if s not in old)
    removed = tuple(s for s in old if s not in current)
    return TokenListDiff(added=added, removed=removed)


def evaluate_value_change(
    previous: Decimal | None,
    current: Decimal,
    threshold: Decimal,
    *,
    percent_threshold: Decimal = DEFAULT_VALUE_CHANGE_PERCENT,
) -> ValueChange:
    """Evaluate threshold crossing, percent swing and summary eligibility.

    Crossing is edge-exact: rising means ``previous < threshold <= current``,
    falling means ``previous >= threshold > current``. The percent swing is
    independent of crossing and is not computed when the previous value is 0.
    """
    summary_due = current >= threshold
    if previous is None:
        return ValueChange(previous=None, current=current, summary_due=summary_due)

    crossing: Direction | None = None
    if previous < threshold <= current:
        crossing = Direction.UP
    elif previous >= threshold > current:
        crossing = Direction.DOWN

    change: Decimal | None = None
    percent_alert = False
    if previous != 0:
        change = percent_change(previous, current)
        percent_alert = abs(change) >= percent_threshold

    return ValueChange(
        previous=previous,
        current=current,
        crossing=crossing,
        percent_change=change,
        percent_alert=percent_alert,
        summary_due=summary_due,
    )


def diff_token_values(
    tokens: Iterable[TokenHolding],
    last_balances: dict[str, str],
    *,
    percent_threshold: Decimal = DEFAULT_TOKEN_CHANGE_PERCENT,
    min_value_usd: Decimal = DEFAULT_TOKEN_CHANGE_MIN_VALUE_USD,
    limit: int = DEFAULT_TOKEN_CHANGE_LIMIT,
) -> TokenValueDiff:
    """Flag large per-token value moves and refresh the per-token snapshot.

    A token is flagged when it had a positive recorded value, moved by at
    least `percent_threshold` percent, and is now worth at least
    `min_value_usd`. Every held token's value is written to the returned
    snapshot whether or not it was flagged.

    Returns:
        TokenValueDiff with at most `limit` changes ordered by absolute
        percent change, largest first.
    """
    balances = dict(last_balances)
    flagged: list[TokenValueChange] = []

    for token in tokens:
        old_value = to_decimal(balances.get(token.value_key))
        new_value = token.value_usd
        if old_value > 0:
            change = percent_change(old_value, new_value)
            if abs(change) >= percent_threshold and new_value >= min_value_usd:
                flagged.append(
                    TokenValueChange(
                        symbol=token.symbol,
                        mint_address=token.mint_address,
                        old_value=old_value,
                        new_value=new_value,
                        percent_change=change,
                    )
                )
        balances[token.value_key] = str(new_value)

    flagged.sort(key=lambda c: abs(c.percent_change), reverse=True)
    return TokenValueDiff(changes=tuple(flagged[:limit]), balances=balances)
