"""Tests for the Vybe analytics client."""

from __future__ import annotations

from collections.abc import Callable
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from vybe_alert_engine.ingestor.vybe_client import (
    RetryError,
    VybeClient,
    VybeClientError,
    VybeClientNotFoundError,
    VybeClientTransientError,
    with_retry,
)

WALLET = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"

BALANCE_RESPONSE = {
    "ownerAddress": WALLET,
    "totalTokenValueUsd": "950.5",
    "totalTokenValueUsd1dChange": "12.1",
    "data": [
        {
            "symbol": "SOL",
            "name": "Solana",
            "mintAddress": "11111111111111111111111111111111",
            "amount": "5.5",
            "valueUsd": "900.5",
            "priceUsd": "163.72",
            "priceUsd1dChange": "-1.5",
        },
        {
            "symbol": "USDC",
            "mintAddress": USDC_MINT,
            "amount": "50",
            "valueUsd": "50",
        },
    ],
}


def create_client(
    handler: Callable[[httpx.Request], httpx.Response], *, max_retries: int = 0
) -> VybeClient:
    return VybeClient(
        api_key="test-key",
        base_url="https://api.example.test",
        max_retries=max_retries,
        requests_per_second=1000,
        transport=httpx.MockTransport(handler),
    )


class TestRequests:
    @pytest.mark.asyncio
    async def test_token_balance(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=BALANCE_RESPONSE)

        async with create_client(handler) as client:
            balance = await client.get_token_balance(WALLET)

        assert seen[0].url.path == f"/account/token-balance/{WALLET}"
        assert seen[0].headers["x-api-key"] == "test-key"
        assert balance.total_value_usd == Decimal("950.5")
        assert balance.symbols == ["SOL", "USDC"]
        assert balance.tokens[0].price_change_1d == Decimal("-1.5")

    @pytest.mark.asyncio
    async def test_recent_transfers_params(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "transfers": [
                        {
                            "signature": "sig-1",
                            "senderAddress": WALLET,
                            "receiverAddress": None,
                            "mintAddress": USDC_MINT,
                            "calculatedAmount": "12.5",
                            "amount": "12500000",
                            "valueUsd": "12.5",
                            "blockTime": 1_767_355_000,
                        },
                        {"senderAddress": WALLET},
                    ]
                },
            )

        async with create_client(handler) as client:
            page = await client.get_recent_transfers(sender_address=WALLET, limit=2)

        params = seen[0].url.params
        assert seen[0].url.path == "/token/transfers"
        assert params["senderAddress"] == WALLET
        assert params["limit"] == "2"
        assert "receiverAddress" not in params
        assert "timeStart" not in params
        assert [t.signature for t in page.transfers] == ["sig-1"]
        assert page.transfers[0].amount == Decimal("12.5")

    @pytest.mark.asyncio
    async def test_recent_transfers_validates_limit(self) -> None:
        async with create_client(lambda r: httpx.Response(200, json={})) as client:
            with pytest.raises(ValueError):
                await client.get_recent_transfers(sender_address=WALLET, limit=11)
            with pytest.raises(ValueError):
                await client.get_recent_transfers(limit=1)

    @pytest.mark.asyncio
    async def test_token_transfers_params(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"transfers": []})

        async with create_client(handler) as client:
            await client.get_token_transfers(
                mint_address=USDC_MINT,
                min_amount=Decimal("1000"),
                time_start=100,
                time_end=200,
            )

        params = seen[0].url.params
        assert params["mintAddress"] == USDC_MINT
        assert params["minAmount"] == "1000"
        assert params["timeStart"] == "100"
        assert params["timeEnd"] == "200"
        assert params["sortByDesc"] == "amount"
        assert params["limit"] == "5"

    @pytest.mark.asyncio
    async def test_top_holders(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == f"/token/{USDC_MINT}/top-holders"
            return httpx.Response(
                200,
                json={"data": [{"ownerAddress": WALLET, "tokenMint": USDC_MINT, "tokenSymbol": "USDC"}]},
            )

        async with create_client(handler) as client:
            holders = await client.get_top_holders(USDC_MINT)

        assert [h.token_symbol for h in holders] == ["USDC"]

    @pytest.mark.asyncio
    async def test_wallet_pnl(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["resolution"] == "30d"
            return httpx.Response(
                200,
                json={
                    "summary": {
                        "realizedPnlUsd": "100",
                        "unrealizedPnlUsd": "-25",
                        "winRate": 55.5,
                        "tradesCount": 8,
                        "averageTradeUsd": "40",
                        "bestPerformingToken": {"tokenSymbol": "JUP", "pnlUsd": "80"},
                    }
                },
            )

        async with create_client(handler) as client:
            pnl = await client.get_wallet_pnl(WALLET)

        assert pnl.total_pnl_usd == Decimal("75")
        assert pnl.trade_count == 8
        assert pnl.best_token is not None
        assert pnl.best_token.token_symbol == "JUP"
        assert pnl.worst_token is None


class TestErrors:
    @pytest.mark.asyncio
    async def test_not_found(self) -> None:
        async with create_client(lambda r: httpx.Response(404)) as client:
            with pytest.raises(VybeClientNotFoundError):
                await client.get_token_balance(WALLET)

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(400, json={"message": "bad address"})

        async with create_client(handler, max_retries=3) as client:
            with pytest.raises(VybeClientError, match="bad address"):
                await client.get_token_balance(WALLET)

        assert calls == 1

    @pytest.mark.asyncio
    async def test_rate_limited_then_succeeds(self) -> None:
        responses = [httpx.Response(429), httpx.Response(200, json=BALANCE_RESPONSE)]

        with patch("asyncio.sleep", new=AsyncMock()) as sleep:
            async with create_client(lambda r: responses.pop(0), max_retries=2) as client:
                balance = await client.get_token_balance(WALLET)

        assert balance.owner_address == WALLET
        sleep.assert_any_await(1.0)

    @pytest.mark.asyncio
    async def test_retries_exhausted(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(503)

        with patch("asyncio.sleep", new=AsyncMock()):
            async with create_client(handler, max_retries=2) as client:
                with pytest.raises(RetryError) as exc_info:
                    await client.get_token_balance(WALLET)

        assert calls == 3
        assert isinstance(exc_info.value.last_exception, VybeClientTransientError)

    @pytest.mark.asyncio
    async def test_network_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with create_client(handler) as client:
            with pytest.raises(RetryError) as exc_info:
                await client.get_token_balance(WALLET)

        assert isinstance(exc_info.value.last_exception, VybeClientTransientError)

    @pytest.mark.asyncio
    async def test_non_object_json(self) -> None:
        async with create_client(lambda r: httpx.Response(200, json=[1, 2])) as client:
            with pytest.raises(VybeClientError):
                await client.get_token_balance(WALLET)


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_explicit_retry_count(self) -> None:
        attempts = 0

        @with_retry(max_retries=1, base_delay=0.0)
        async def flaky() -> str:
            nonlocal attempts
            attempts += 1
            if attempts < 2:
                raise VybeClientTransientError("try again")
            return "ok"

        assert await flaky() == "ok"
        assert attempts == 2
