"""Change detection layer - Backoff and wallet diff passes."""

from vybe_alert_engine.detector.backoff import backoff_window, is_backing_off
from vybe_alert_engine.detector.models import (
    Direction,
    TokenListDiff,
    TokenValueChange,
    TokenValueDiff,
    ValueChange,
)
from vybe_alert_engine.detector.wallet_changes import (
    diff_token_list,
    diff_token_values,
    evaluate_value_change,
    latest_transfer,
    select_missed_transfers,
)

__all__ = [
    "Direction",
    "TokenListDiff",
    "TokenValueChange",
    "TokenValueDiff",
    "ValueChange",
    "backoff_window",
    "diff_token_list",
    "diff_token_values",
    "evaluate_value_change",
    "is_backing_off",
    "latest_transfer",
    "select_missed_transfers",
]
