"""Tests for wallet categorization and PnL lookup."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from conftest import START_TIME, FakeClock
from vybe_alert_engine.ingestor.models import PnLSummary, Transfer, TransferPage
from vybe_alert_engine.ingestor.vybe_client import VybeClientError
from vybe_alert_engine.profiler.analyzer import WalletAnalyzer, categorize_transfers
from vybe_alert_engine.profiler.models import CategoryType
from vybe_alert_engine.storage.repos import TrackingRepository

WALLET = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"
CEX = "CexHotWallet1111111111111111111111111111111"
DEX = "DexRouter111111111111111111111111111111111"


def create_transfer(receiver: str | None, signature: str = "sig") -> Transfer:
    return Transfer(
        signature=signature,
        sender_address=WALLET,
        receiver_address=receiver,
        mint_address="mint",
        amount=Decimal("1"),
        value_usd=None,
        block_time=0,
    )


def create_pnl(realized: str = "100") -> PnLSummary:
    return PnLSummary(
        realized_pnl_usd=Decimal(realized),
        unrealized_pnl_usd=Decimal("0"),
        win_rate=0.6,
        trade_count=5,
        average_trade_usd=Decimal("20"),
    )


@pytest.fixture
def mock_client() -> AsyncMock:
    client = AsyncMock()
    client.get_recent_transfers = AsyncMock(
        return_value=TransferPage(
            transfers=(create_transfer(DEX, "a"), create_transfer(DEX, "b"), create_transfer(CEX, "c"))
        )
    )
    client.get_wallet_pnl = AsyncMock(return_value=create_pnl())
    return client


class TestCategorizeTransfers:
    def test_majority_wins(self) -> None:
        category = categorize_transfers(
            [create_transfer(CEX), create_transfer(CEX), create_transfer(DEX), create_transfer(None)],
            cex_addresses=frozenset({CEX}),
            dex_addresses=frozenset({DEX}),
            now=7,
        )

        assert category.type == CategoryType.CEX
        assert category.confidence == 0.5
        assert category.last_updated == 7

    def test_tie_is_unknown(self) -> None:
        category = categorize_transfers(
            [create_transfer(CEX), create_transfer(DEX)],
            cex_addresses=frozenset({CEX}),
            dex_addresses=frozenset({DEX}),
        )

        assert category.type == CategoryType.UNKNOWN
        assert category.confidence == 0.0

    def test_known_protocols_are_recorded(self) -> None:
        jupiter = "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB"

        category = categorize_transfers([create_transfer(jupiter)])

        assert category.type == CategoryType.PROTOCOL
        assert jupiter in category.protocols

    def test_empty_sample(self) -> None:
        assert categorize_transfers([]).type == CategoryType.UNKNOWN


class TestWalletAnalyzer:
    @pytest.mark.asyncio
    async def test_categorize_uses_outgoing_transfers(self, mock_client: AsyncMock) -> None:
        analyzer = WalletAnalyzer(
            mock_client, dex_addresses=[DEX], cex_addresses=[CEX], clock=FakeClock()
        )

        category = await analyzer.categorize(WALLET)

        mock_client.get_recent_transfers.assert_awaited_once_with(sender_address=WALLET, limit=10)
        assert category.type == CategoryType.DEX
        assert category.last_updated == int(START_TIME)

    @pytest.mark.asyncio
    async def test_categorize_degrades_on_error(self, mock_client: AsyncMock) -> None:
        mock_client.get_recent_transfers.side_effect = VybeClientError("boom")
        analyzer = WalletAnalyzer(mock_client)

        category = await analyzer.categorize(WALLET)

        assert category.type == CategoryType.UNKNOWN

    @pytest.mark.asyncio
    async def test_pnl_is_cached(
        self, mock_client: AsyncMock, repository: TrackingRepository
    ) -> None:
        analyzer = WalletAnalyzer(mock_client, repository=repository)

        first = await analyzer.get_pnl(WALLET)
        second = await analyzer.get_pnl(WALLET)

        assert first == second == create_pnl()
        mock_client.get_wallet_pnl.assert_awaited_once_with(WALLET, "30d")

    @pytest.mark.asyncio
    async def test_pnl_cache_expires(
        self, mock_client: AsyncMock, repository: TrackingRepository, clock: FakeClock
    ) -> None:
        analyzer = WalletAnalyzer(mock_client, repository=repository, cache_ttl_seconds=300)

        await analyzer.get_pnl(WALLET)
        clock.advance(301)
        await analyzer.get_pnl(WALLET)

        assert mock_client.get_wallet_pnl.await_count == 2

    @pytest.mark.asyncio
    async def test_force_refresh_skips_cache(
        self, mock_client: AsyncMock, repository: TrackingRepository
    ) -> None:
        analyzer = WalletAnalyzer(mock_client, repository=repository)
        await analyzer.get_pnl(WALLET)
        mock_client.get_wallet_pnl.return_value = create_pnl("250")

        refreshed = await analyzer.get_pnl(WALLET, force_refresh=True)

        assert refreshed is not None
        assert refreshed.realized_pnl_usd == Decimal("250")
        assert await analyzer.get_pnl(WALLET) == refreshed

    @pytest.mark.asyncio
    async def test_pnl_failure_returns_none(self, mock_client: AsyncMock) -> None:
        mock_client.get_wallet_pnl.side_effect = VybeClientError("down")
        analyzer = WalletAnalyzer(mock_client)

        assert await analyzer.get_pnl(WALLET) is None

    @pytest.mark.asyncio
    async def test_analyze_combines_results(self, mock_client: AsyncMock) -> None:
        analyzer = WalletAnalyzer(mock_client, dex_addresses=[DEX])

        analytics = await analyzer.analyze(WALLET)

        assert analytics.category.type == CategoryType.DEX
        assert analytics.pnl == create_pnl()
