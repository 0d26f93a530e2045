"""Alerting layer - Payloads, formatting and delivery."""

from vybe_alert_engine.alerter.dispatcher import (
    AlertDispatcher,
    LoggingAlertDispatcher,
    TelegramAlertDispatcher,
)
from vybe_alert_engine.alerter.formatter import AlertFormatter
from vybe_alert_engine.alerter.models import (
    AlertPayload,
    ChartSlice,
    FormattedAlert,
    PercentChangeAlert,
    PeriodicSummary,
    ThresholdCrossed,
    TokenListChanged,
    TokenValueChangeAlert,
    TransferNotification,
    WhaleAlert,
)

__all__ = [
    "AlertDispatcher",
    "AlertFormatter",
    "AlertPayload",
    "ChartSlice",
    "FormattedAlert",
    "LoggingAlertDispatcher",
    "PercentChangeAlert",
    "PeriodicSummary",
    "TelegramAlertDispatcher",
    "ThresholdCrossed",
    "TokenListChanged",
    "TokenValueChangeAlert",
    "TransferNotification",
    "WhaleAlert",
]
