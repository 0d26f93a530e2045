"""Tests for token symbol resolution."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from vybe_alert_engine.ingestor.models import NATIVE_SOL_MINT, TopHolder
from vybe_alert_engine.ingestor.vybe_client import VybeClientError
from vybe_alert_engine.tracker.symbols import SymbolResolver

USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"


def create_holder(symbol: str) -> TopHolder:
    return TopHolder(
        owner_address="holder", token_mint=USDC_MINT, token_symbol=symbol, value_usd=Decimal(1)
    )


class TestSymbolResolver:
    @pytest.mark.asyncio
    async def test_native_sol_needs_no_lookup(self) -> None:
        client = AsyncMock()
        resolver = SymbolResolver(client)

        assert await resolver.resolve(NATIVE_SOL_MINT) == "SOL"
        client.get_top_holders.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_resolves_and_caches(self) -> None:
        client = AsyncMock()
        client.get_top_holders = AsyncMock(return_value=[create_holder("USDC")])
        resolver = SymbolResolver(client)

        assert await resolver.resolve(USDC_MINT) == "USDC"
        assert await resolver.resolve(USDC_MINT) == "USDC"
        client.get_top_holders.assert_awaited_once_with(USDC_MINT, limit=1)

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self) -> None:
        client = AsyncMock()
        client.get_top_holders = AsyncMock(
            side_effect=[VybeClientError("down"), [create_holder("USDC")]]
        )
        resolver = SymbolResolver(client)

        assert await resolver.resolve(USDC_MINT) is None
        assert await resolver.resolve(USDC_MINT) == "USDC"

    @pytest.mark.asyncio
    async def test_no_holders(self) -> None:
        client = AsyncMock()
        client.get_top_holders = AsyncMock(return_value=[])
        resolver = SymbolResolver(client)

        assert await resolver.resolve(USDC_MINT) is None
