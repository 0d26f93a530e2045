"""Repository pattern implementations for tracking state.

This module maps the domain models onto the key layout of the
persistence store:

- ``trackedWallets:{subscriberId}``: hash of wallet address -> TrackedWallet JSON
- ``whaleAlerts:{subscriberId}``: hash of token mint -> WhaleAlertSubscription JSON
- ``historicalValues:{subscriberId}``: hash of wallet address -> snapshot JSON
- ``walletHistory:{wallet}:{YYYY-MM-DD}``: dated daily total value (TTL)
- ``walletPnl:{wallet}``: cached PnL summary (TTL)
"""

from __future__ import annotations

import json
import logging
from datetime import date
from decimal import Decimal

from vybe_alert_engine.ingestor.models import PnLSummary, to_decimal
from vybe_alert_engine.storage.store import PersistenceStore
from vybe_alert_engine.tracker.models import (
    HistoricalValueSnapshot,
    TrackedWallet,
    WhaleAlertSubscription,
)

logger = logging.getLogger(__name__)

TRACKED_WALLETS_PREFIX = "trackedWallets:"
WHALE_ALERTS_PREFIX = "whaleAlerts:"
HISTORICAL_VALUES_PREFIX = "historicalValues:"
WALLET_HISTORY_PREFIX = "walletHistory:"
WALLET_PNL_PREFIX = "walletPnl:"

DAILY_HISTORY_TTL_SECONDS = 90 * 24 * 3600


def _subscriber_ids(keys: list[str], prefix: str) -> list[int]:
    ids: set[int] = set()
    for key in keys:
        suffix = key[len(prefix) :]
        try:
            ids.add(int(suffix))
        except ValueError:
            logger.warning("Ignoring malformed key %s", key)
    return sorted(ids)


class TrackingRepository:
    """Repository for tracked wallets, whale subscriptions and value history."""

    def __init__(self, store: PersistenceStore) -> None:
        self.store = store

    # Tracked wallets

    async def save_tracked_wallet(self, record: TrackedWallet) -> None:
        await self.store.hset(
            f"{TRACKED_WALLETS_PREFIX}{record.subscriber_id}",
            record.wallet_address,
            json.dumps(record.to_dict()),
        )

    async def get_tracked_wallets(self, subscriber_id: int) -> list[TrackedWallet]:
        """Load every wallet a subscriber tracks; corrupt entries are skipped."""
        raw = await self.store.hgetall(f"{TRACKED_WALLETS_PREFIX}{subscriber_id}")
        records: list[TrackedWallet] = []
        for wallet_address, payload in raw.items():
            try:
                records.append(TrackedWallet.from_dict(json.loads(payload)))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(
                    "Skipping unreadable tracked wallet %s for subscriber %s: %s",
                    wallet_address,
                    subscriber_id,
                    e,
                )
        return records

    async def remove_tracked_wallet(self, subscriber_id: int, wallet_address: str) -> bool:
        return await self.store.hdel(f"{TRACKED_WALLETS_PREFIX}{subscriber_id}", wallet_address)

    async def get_all_subscriber_ids(self) -> list[int]:
        """Subscribers that have at least one tracked wallet."""
        keys = await self.store.keys(TRACKED_WALLETS_PREFIX)
        return _subscriber_ids(keys, TRACKED_WALLETS_PREFIX)

    # Whale alerts

    async def save_whale_alert(
        self, subscriber_id: int, token: str, subscription: WhaleAlertSubscription
    ) -> None:
        await self.store.hset(
            f"{WHALE_ALERTS_PREFIX}{subscriber_id}", token, json.dumps(subscription.to_dict())
        )

    async def get_whale_alerts(self, subscriber_id: int) -> dict[str, WhaleAlertSubscription]:
        raw = await self.store.hgetall(f"{WHALE_ALERTS_PREFIX}{subscriber_id}")
        subscriptions: dict[str, WhaleAlertSubscription] = {}
        for token, payload in raw.items():
            try:
                subscriptions[token] = WhaleAlertSubscription.from_dict(json.loads(payload))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning(
                    "Skipping unreadable whale alert %s for subscriber %s: %s",
                    token,
                    subscriber_id,
                    e,
                )
        return subscriptions

    async def remove_whale_alert(self, subscriber_id: int, token: str) -> bool:
        return await self.store.hdel(f"{WHALE_ALERTS_PREFIX}{subscriber_id}", token)

    async def get_all_whale_subscriber_ids(self) -> list[int]:
        keys = await self.store.keys(WHALE_ALERTS_PREFIX)
        return _subscriber_ids(keys, WHALE_ALERTS_PREFIX)

    # Historical values

    async def save_historical_value(
        self, subscriber_id: int, wallet_address: str, snapshot: HistoricalValueSnapshot
    ) -> None:
        await self.store.hset(
            f"{HISTORICAL_VALUES_PREFIX}{subscriber_id}",
            wallet_address,
            json.dumps(snapshot.to_dict()),
        )

    async def get_historical_values(self, subscriber_id: int) -> dict[str, HistoricalValueSnapshot]:
        raw = await self.store.hgetall(f"{HISTORICAL_VALUES_PREFIX}{subscriber_id}")
        snapshots: dict[str, HistoricalValueSnapshot] = {}
        for wallet_address, payload in raw.items():
            try:
                snapshots[wallet_address] = HistoricalValueSnapshot.from_dict(json.loads(payload))
            except (ValueError, TypeError) as e:
                logger.warning("Skipping unreadable snapshot for %s: %s", wallet_address, e)
        return snapshots

    async def remove_historical_value(self, subscriber_id: int, wallet_address: str) -> bool:
        return await self.store.hdel(f"{HISTORICAL_VALUES_PREFIX}{subscriber_id}", wallet_address)

    # Dated daily history

    async def save_daily_value(
        self,
        wallet_address: str,
        day: date,
        value: Decimal,
        *,
        ttl_seconds: int = DAILY_HISTORY_TTL_SECONDS,
    ) -> None:
        await self.store.set(
            f"{WALLET_HISTORY_PREFIX}{wallet_address}:{day.isoformat()}",
            str(value),
            ttl_seconds=ttl_seconds,
        )

    async def get_daily_value(self, wallet_address: str, day: date) -> Decimal | None:
        raw = await self.store.get(f"{WALLET_HISTORY_PREFIX}{wallet_address}:{day.isoformat()}")
        if raw is None:
            return None
        return to_decimal(raw)

    # Cached analytics

    async def get_cached_pnl(self, wallet_address: str) -> PnLSummary | None:
        raw = await self.store.get(f"{WALLET_PNL_PREFIX}{wallet_address}")
        if raw is None:
            return None
        try:
            return PnLSummary.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Failed to parse cached PnL for %s: %s", wallet_address, e)
            return None

    async def cache_pnl(self, wallet_address: str, pnl: PnLSummary, *, ttl_seconds: int) -> None:
        await self.store.set(
            f"{WALLET_PNL_PREFIX}{wallet_address}",
            json.dumps(pnl.to_dict()),
            ttl_seconds=ttl_seconds,
        )
