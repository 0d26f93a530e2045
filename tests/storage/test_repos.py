"""Tests for the tracking repository."""

from __future__ import annotations

import json
from datetime import date
from decimal import Decimal

import pytest

from conftest import FakeClock
from vybe_alert_engine.ingestor.models import PnLSummary, TokenPerformance
from vybe_alert_engine.profiler.models import CategoryType, WalletCategory
from vybe_alert_engine.storage.repos import (
    DAILY_HISTORY_TTL_SECONDS,
    TRACKED_WALLETS_PREFIX,
    TrackingRepository,
)
from vybe_alert_engine.storage.store import InMemoryStore
from vybe_alert_engine.tracker.models import (
    HistoricalValueSnapshot,
    TrackedWallet,
    WhaleAlertSubscription,
)

# ============================================================================
# Fixtures
# ============================================================================

WALLET = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"
OTHER_WALLET = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


@pytest.fixture
def sample_pnl() -> PnLSummary:
    return PnLSummary(
        realized_pnl_usd=Decimal("120.5"),
        unrealized_pnl_usd=Decimal("-20.5"),
        win_rate=0.6,
        trade_count=12,
        average_trade_usd=Decimal("75"),
        best_token=TokenPerformance(token_symbol="BONK", pnl_usd=Decimal("90")),
    )


@pytest.fixture
def sample_wallet(sample_pnl: PnLSummary) -> TrackedWallet:
    return TrackedWallet(
        wallet_address=WALLET,
        subscriber_id=42,
        min_value_usd=Decimal("900"),
        last_checked_time=1_767_355_200,
        last_total_value=Decimal("950.25"),
        last_token_list=["SOL", "USDC"],
        last_balances={
            "11111111111111111111111111111111_value": "900.25",
            f"{USDC_MINT}_value": "50",
        },
        last_known_signature="sig-1",
        error_count=2,
        category=WalletCategory(
            type=CategoryType.DEX,
            confidence=0.7,
            protocols=("JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB",),
            last_updated=1_767_355_200,
        ),
        pnl=sample_pnl,
    )


# ============================================================================
# Tracked wallets
# ============================================================================


class TestTrackedWallets:
    @pytest.mark.asyncio
    async def test_round_trip(
        self, repository: TrackingRepository, sample_wallet: TrackedWallet
    ) -> None:
        await repository.save_tracked_wallet(sample_wallet)

        (loaded,) = await repository.get_tracked_wallets(42)

        assert loaded == sample_wallet
        assert loaded.last_balances == sample_wallet.last_balances

    @pytest.mark.asyncio
    async def test_legacy_pair_list_balances(
        self, repository: TrackingRepository, store: InMemoryStore
    ) -> None:
        payload = {
            "walletAddress": WALLET,
            "subscriberId": 42,
            "minValueUsd": 900,
            "lastCheckedTime": 0,
            "lastBalances": [["SOL_value", "900.25"], [f"{USDC_MINT}_value", "50"]],
        }
        await store.hset(f"{TRACKED_WALLETS_PREFIX}42", WALLET, json.dumps(payload))

        (loaded,) = await repository.get_tracked_wallets(42)

        assert loaded.last_balances == {"SOL_value": "900.25", f"{USDC_MINT}_value": "50"}
        assert loaded.last_token_list is None
        assert loaded.last_total_value is None

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_skipped(
        self,
        repository: TrackingRepository,
        store: InMemoryStore,
        sample_wallet: TrackedWallet,
    ) -> None:
        await repository.save_tracked_wallet(sample_wallet)
        await store.hset(f"{TRACKED_WALLETS_PREFIX}42", OTHER_WALLET, "{not json")

        loaded = await repository.get_tracked_wallets(42)

        assert [r.wallet_address for r in loaded] == [WALLET]

    @pytest.mark.asyncio
    async def test_remove_and_enumerate(
        self, repository: TrackingRepository, sample_wallet: TrackedWallet
    ) -> None:
        await repository.save_tracked_wallet(sample_wallet)
        other = TrackedWallet(
            wallet_address=OTHER_WALLET,
            subscriber_id=7,
            min_value_usd=Decimal("1"),
            last_checked_time=0,
        )
        await repository.save_tracked_wallet(other)

        assert await repository.get_all_subscriber_ids() == [7, 42]
        assert await repository.remove_tracked_wallet(7, OTHER_WALLET)
        assert await repository.get_all_subscriber_ids() == [42]


# ============================================================================
# Whale alerts and history
# ============================================================================


class TestWhaleAlerts:
    @pytest.mark.asyncio
    async def test_round_trip(self, repository: TrackingRepository) -> None:
        subscription = WhaleAlertSubscription(
            subscriber_id=5, min_amount=Decimal("1000.5"), tokens={USDC_MINT}
        )

        await repository.save_whale_alert(5, USDC_MINT, subscription)

        assert await repository.get_whale_alerts(5) == {USDC_MINT: subscription}
        assert await repository.get_all_whale_subscriber_ids() == [5]
        assert await repository.remove_whale_alert(5, USDC_MINT)
        assert await repository.get_whale_alerts(5) == {}


class TestHistory:
    @pytest.mark.asyncio
    async def test_historical_snapshot_round_trip(self, repository: TrackingRepository) -> None:
        snapshot = HistoricalValueSnapshot(value=Decimal("812.4"), timestamp=1_767_355_200)

        await repository.save_historical_value(42, WALLET, snapshot)

        assert await repository.get_historical_values(42) == {WALLET: snapshot}

    @pytest.mark.asyncio
    async def test_daily_value_expires(
        self, repository: TrackingRepository, clock: FakeClock
    ) -> None:
        await repository.save_daily_value(WALLET, date(2026, 1, 2), Decimal("1500.75"))

        assert await repository.get_daily_value(WALLET, date(2026, 1, 2)) == Decimal("1500.75")
        assert await repository.get_daily_value(WALLET, date(2026, 1, 1)) is None

        clock.advance(DAILY_HISTORY_TTL_SECONDS)
        assert await repository.get_daily_value(WALLET, date(2026, 1, 2)) is None

    @pytest.mark.asyncio
    async def test_pnl_cache(
        self, repository: TrackingRepository, clock: FakeClock, sample_pnl: PnLSummary
    ) -> None:
        await repository.cache_pnl(WALLET, sample_pnl, ttl_seconds=300)

        assert await repository.get_cached_pnl(WALLET) == sample_pnl
        clock.advance(300)
        assert await repository.get_cached_pnl(WALLET) is None
