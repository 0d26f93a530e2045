"""Async wrapper around the Vybe analytics REST API with rate limiting and retry logic."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

import httpx

from vybe_alert_engine.ingestor.models import PnLSummary, TopHolder, TransferPage, WalletBalance

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Constants
DEFAULT_BASE_URL = "https://api.vybenetwork.xyz"
DEFAULT_TIMEOUT_SECONDS = 8.0
MAX_REQUESTS_PER_SECOND = 5

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BASE_DELAY = 1.0
RETRY_STATUS_CODES = (429, 500, 502, 503, 504)

MAX_RECENT_TRANSFERS_LIMIT = 10
USER_AGENT = "vybe-alert-engine/0.1.0"


class RateLimiter:
    """Minimum-interval rate limiter for API requests."""

    def __init__(self, max_requests_per_second: float = MAX_REQUESTS_PER_SECOND) -> None:
        """Initialize the rate limiter.

        Args:
            max_requests_per_second: Maximum requests allowed per second.
        """
        self._min_interval = 1.0 / max_requests_per_second
        self._last_request_time: float = 0.0
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self._min_interval:
                await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()


class VybeClientError(Exception):
    """Base exception for analytics API failures."""


class VybeClientNotFoundError(VybeClientError):
    """Raised when a requested resource does not exist (e.g., 404)."""


class VybeClientTransientError(VybeClientError):
    """Raised for retryable/transient errors (e.g., 429/5xx, network issues)."""


class RetryError(VybeClientError):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, last_exception: Exception | None = None) -> None:
        super().__init__(message)
        self.last_exception = last_exception


def with_retry(
    max_retries: int | None = None,
    base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    retry_on: tuple[type[Exception], ...] = (VybeClientTransientError,),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Decorator for adding retry logic with exponential backoff to client coroutines.

    Args:
        max_retries: Maximum number of retry attempts. Defaults to the
            client's configured `_max_retries` when applied to a method.
        base_delay: Base delay in seconds (doubles with each retry).
        retry_on: Tuple of exception types to retry on.

    Returns:
        Decorated coroutine function with retry logic.
    """

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            retries = max_retries
            if retries is None:
                retries = getattr(args[0], "_max_retries", DEFAULT_MAX_RETRIES) if args else 0
            last_exception: Exception | None = None

            for attempt in range(retries + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    last_exception = e
                    if attempt == retries:
                        break

                    delay = base_delay * (2**attempt)
                    logger.warning(
                        "Attempt %d/%d failed: %s. Retrying in %.1f seconds...",
                        attempt + 1,
                        retries + 1,
                        str(e),
                        delay,
                    )
                    await asyncio.sleep(delay)

            raise RetryError(
                f"All {retries + 1} attempts failed for {func.__name__}",
                last_exception=last_exception,
            )

        return wrapper

    return decorator


class VybeClient:
    """Async client for the Vybe analytics API.

    Provides the read-only queries the tracking engines depend on, with
    built-in rate limiting and automatic retry with exponential backoff on
    transient errors.

    Example:
        ```python
        async with VybeClient(api_key="...") as client:
            balance = await client.get_token_balance("5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1")
            page = await client.get_recent_transfers(sender_address=balance.owner_address, limit=1)
        ```
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        requests_per_second: float = MAX_REQUESTS_PER_SECOND,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the analytics client.

        Args:
            api_key: Vybe API key sent as the x-api-key header.
            base_url: API endpoint URL.
            timeout_seconds: Per-request HTTP timeout.
            max_retries: Maximum retry attempts for transient failures.
            requests_per_second: Rate limit for API requests.
            transport: Optional httpx transport (used by tests).
        """
        self._base_url = base_url.rstrip("/")
        self._max_retries = max_retries
        self._rate_limiter = RateLimiter(requests_per_second)

        headers = {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if api_key:
            headers["x-api-key"] = api_key

        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=timeout_seconds,
            transport=transport,
        )

        logger.info(
            "Initialized VybeClient with base_url=%s, rate_limit=%.1f req/s",
            self._base_url,
            requests_per_second,
        )

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """Issue a rate-limited GET and map failures onto the client error taxonomy."""
        await self._rate_limiter.acquire()
        clean_params = {k: v for k, v in (params or {}).items() if v is not None}

        try:
            response = await self._http.get(path, params=clean_params)
        except httpx.TimeoutException as e:
            raise VybeClientTransientError(f"Timed out calling {path}: {e}") from e
        except httpx.TransportError as e:
            raise VybeClientTransientError(f"Network error calling {path}: {e}") from e

        logger.debug("API Response: %d %s", response.status_code, path)

        if response.status_code == 404:
            raise VybeClientNotFoundError(f"{path} returned 404")
        if response.status_code in RETRY_STATUS_CODES:
            raise VybeClientTransientError(f"{path} returned {response.status_code}")
        if response.status_code >= 400:
            message = _error_message(response)
            raise VybeClientError(f"API error ({response.status_code}) for {path}: {message}")

        try:
            payload = response.json()
        except ValueError as e:
            raise VybeClientError(f"Invalid JSON from {path}") from e
        if not isinstance(payload, dict):
            raise VybeClientError(f"Unexpected response shape from {path}")
        return payload

    @with_retry()
    async def get_token_balance(self, owner_address: str) -> WalletBalance:
        """Fetch the token balances and total USD value of a wallet.

        Args:
            owner_address: Wallet address.

        Returns:
            WalletBalance with one entry per held token.
        """
        payload = await self._get(f"/account/token-balance/{owner_address}")
        return WalletBalance.from_dict(payload)

    @with_retry()
    async def get_recent_transfers(
        self,
        *,
        sender_address: str | None = None,
        receiver_address: str | None = None,
        limit: int = 1,
        time_start: int | None = None,
    ) -> TransferPage:
        """Fetch the most recent transfers sent or received by a wallet.

        Args:
            sender_address: Filter by sender.
            receiver_address: Filter by receiver.
            limit: Number of transfers (1-10).
            time_start: Optional unix timestamp lower bound.

        Returns:
            TransferPage, newest first as returned by the API.
        """
        if limit <= 0 or limit > MAX_RECENT_TRANSFERS_LIMIT:
            raise ValueError(f"limit must be between 1 and {MAX_RECENT_TRANSFERS_LIMIT}")
        if sender_address is None and receiver_address is None:
            raise ValueError("sender_address or receiver_address is required")

        payload = await self._get(
            "/token/transfers",
            {
                "senderAddress": sender_address,
                "receiverAddress": receiver_address,
                "timeStart": time_start,
                "limit": limit,
            },
        )
        return TransferPage.from_dict(payload)

    @with_retry()
    async def get_token_transfers(
        self,
        *,
        mint_address: str,
        min_amount: Any,
        time_start: int,
        time_end: int,
        limit: int = 5,
        sort_by_desc: str = "amount",
    ) -> TransferPage:
        """Fetch transfers of a token within a time window at or above an amount.

        Args:
            mint_address: Token mint to query.
            min_amount: Lower bound on the transferred amount.
            time_start: Window start (unix seconds).
            time_end: Window end (unix seconds).
            limit: Page size.
            sort_by_desc: Server-side sort field.

        Returns:
            TransferPage as returned by the API.
        """
        payload = await self._get(
            "/token/transfers",
            {
                "mintAddress": mint_address,
                "minAmount": str(min_amount),
                "timeStart": time_start,
                "timeEnd": time_end,
                "sortByDesc": sort_by_desc,
                "limit": limit,
            },
        )
        return TransferPage.from_dict(payload)

    @with_retry()
    async def get_top_holders(self, mint_address: str, limit: int = 1) -> list[TopHolder]:
        """Fetch the top holders of a token.

        Args:
            mint_address: Token mint address.
            limit: Number of holders to return.

        Returns:
            List of TopHolder entries.
        """
        payload = await self._get(f"/token/{mint_address}/top-holders", {"limit": limit})
        data = payload.get("data") or []
        return [TopHolder.from_dict(h) for h in data if isinstance(h, dict)]

    @with_retry()
    async def get_wallet_pnl(self, owner_address: str, resolution: str = "30d") -> PnLSummary:
        """Fetch the PnL summary of a wallet.

        Args:
            owner_address: Wallet address.
            resolution: One of "1d", "7d", "30d".

        Returns:
            PnLSummary for the requested resolution.
        """
        payload = await self._get(f"/account/pnl/{owner_address}", {"resolution": resolution})
        return PnLSummary.from_dict(payload)

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._http.aclose()

    async def __aenter__(self) -> VybeClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or "Unknown error"
    if isinstance(body, dict):
        return str(body.get("message") or "Unknown error")
    return "Unknown error"
