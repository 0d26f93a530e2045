"""Derived wallet analytics for tracked wallets.

Analytics are display-only: every failure degrades to an empty result and
is logged, so a broken analytics endpoint never blocks alerting.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Iterable

from vybe_alert_engine.ingestor.models import PnLSummary, Transfer
from vybe_alert_engine.ingestor.vybe_client import VybeClient, VybeClientError
from vybe_alert_engine.profiler.models import CategoryType, WalletAnalytics, WalletCategory
from vybe_alert_engine.storage.repos import TrackingRepository
from vybe_alert_engine.storage.store import PersistenceError

logger = logging.getLogger(__name__)

KNOWN_PROTOCOL_ADDRESSES = frozenset(
    {
        "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB",
        "9W959DqEETiGZocYWCQPaJ6sBmUzgfxXfqGeTEdp3aQbP",
        "So11111111111111111111111111111111111111112",
    }
)

# Default configuration
DEFAULT_PNL_CACHE_TTL = 300  # 5 minutes
DEFAULT_CATEGORY_SAMPLE_SIZE = 10
DEFAULT_PNL_RESOLUTION = "30d"


def categorize_transfers(
    transfers: Iterable[Transfer],
    *,
    cex_addresses: frozenset[str] = frozenset(),
    dex_addresses: frozenset[str] = frozenset(),
    protocol_addresses: frozenset[str] = KNOWN_PROTOCOL_ADDRESSES,
    now: int = 0,
) -> WalletCategory:
    """Classify a wallet by which known counterparties dominate its transfers.

    The winning category must strictly outnumber both others; confidence is
    its share of the sampled transfers.
    """
    sample = list(transfers)
    cex = dex = protocol = 0
    protocols: set[str] = set()

    for transfer in sample:
        parties = {transfer.sender_address, transfer.receiver_address} - {None}
        if parties & cex_addresses:
            cex += 1
        if parties & dex_addresses:
            dex += 1
        if parties & protocol_addresses:
            protocol += 1
            protocols.update(p for p in parties if p is not None)

    if not sample:
        return WalletCategory.unknown(now)

    if cex > dex and cex > protocol:
        category_type, count = CategoryType.CEX, cex
    elif dex > cex and dex > protocol:
        category_type, count = CategoryType.DEX, dex
    elif protocol > cex and protocol > dex:
        category_type, count = CategoryType.PROTOCOL, protocol
    else:
        return WalletCategory(
            type=CategoryType.UNKNOWN,
            confidence=0.0,
            protocols=tuple(sorted(protocols)),
            last_updated=now,
        )

    return WalletCategory(
        type=category_type,
        confidence=count / len(sample),
        protocols=tuple(sorted(protocols)),
        last_updated=now,
    )


class WalletAnalyzer:
    """Computes a tracked wallet's category and PnL summary."""

    def __init__(
        self,
        client: VybeClient,
        *,
        repository: TrackingRepository | None = None,
        cache_ttl_seconds: int = DEFAULT_PNL_CACHE_TTL,
        cex_addresses: Iterable[str] = (),
        dex_addresses: Iterable[str] = (),
        protocol_addresses: Iterable[str] = KNOWN_PROTOCOL_ADDRESSES,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._repository = repository
        self._cache_ttl = cache_ttl_seconds
        self._cex = frozenset(cex_addresses)
        self._dex = frozenset(dex_addresses)
        self._protocols = frozenset(protocol_addresses)
        self._clock = clock

    async def categorize(self, wallet_address: str) -> WalletCategory:
        """Classify a wallet from its last outgoing transfers."""
        now = int(self._clock())
        try:
            page = await self._client.get_recent_transfers(
                sender_address=wallet_address, limit=DEFAULT_CATEGORY_SAMPLE_SIZE
            )
        except VybeClientError as e:
            logger.warning("Failed to categorize wallet %s: %s", wallet_address, e)
            return WalletCategory.unknown(now)

        return categorize_transfers(
            page.transfers,
            cex_addresses=self._cex,
            dex_addresses=self._dex,
            protocol_addresses=self._protocols,
            now=now,
        )

    async def get_pnl(self, wallet_address: str, *, force_refresh: bool = False) -> PnLSummary | None:
        """30 day PnL summary, served from the store cache when fresh."""
        if self._repository is not None and not force_refresh:
            try:
                cached = await self._repository.get_cached_pnl(wallet_address)
            except PersistenceError as e:
                logger.warning("Failed to read cached PnL for %s: %s", wallet_address, e)
                cached = None
            if cached is not None:
                return cached

        try:
            pnl = await self._client.get_wallet_pnl(wallet_address, DEFAULT_PNL_RESOLUTION)
        except VybeClientError as e:
            logger.warning("Failed to fetch PnL for %s: %s", wallet_address, e)
            return None

        if self._repository is not None:
            try:
                await self._repository.cache_pnl(wallet_address, pnl, ttl_seconds=self._cache_ttl)
            except PersistenceError as e:
                logger.warning("Failed to cache PnL for %s: %s", wallet_address, e)
        return pnl

    async def analyze(self, wallet_address: str) -> WalletAnalytics:
        """Category and PnL for a wallet, fetched concurrently."""
        category, pnl = await asyncio.gather(
            self.categorize(wallet_address),
            self.get_pnl(wallet_address),
        )
        return WalletAnalytics(category=category, pnl=pnl)
