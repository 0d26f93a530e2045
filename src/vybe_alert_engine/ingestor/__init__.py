"""Data ingestion layer - Vybe analytics API access."""

from vybe_alert_engine.ingestor.models import (
    PnLSummary,
    TokenHolding,
    TopHolder,
    Transfer,
    TransferPage,
    WalletBalance,
)
from vybe_alert_engine.ingestor.vybe_client import (
    RetryError,
    VybeClient,
    VybeClientError,
    VybeClientNotFoundError,
    VybeClientTransientError,
)

__all__ = [
    "PnLSummary",
    "RetryError",
    "TokenHolding",
    "TopHolder",
    "Transfer",
    "TransferPage",
    "VybeClient",
    "VybeClientError",
    "VybeClientNotFoundError",
    "VybeClientTransientError",
    "WalletBalance",
]
