"""Token symbol lookup shared by the tracking engines."""

from __future__ import annotations

import asyncio
import logging

from vybe_alert_engine.ingestor.models import NATIVE_SOL_MINT
from vybe_alert_engine.ingestor.vybe_client import VybeClient, VybeClientError

logger = logging.getLogger(__name__)

NATIVE_SOL_SYMBOL = "SOL"


class SymbolResolver:
    """Resolves a mint address to its ticker via the top-holders endpoint.

    Successful lookups are cached for the life of the process; failures are
    not cached so the next alert retries them.
    """

    def __init__(self, client: VybeClient, *, timeout_seconds: float = 30.0) -> None:
        self._client = client
        self._timeout = timeout_seconds
        self._cache: dict[str, str] = {NATIVE_SOL_MINT: NATIVE_SOL_SYMBOL}

    async def resolve(self, mint_address: str) -> str | None:
        """Symbol for a mint, or None when it cannot be determined."""
        cached = self._cache.get(mint_address)
        if cached is not None:
            return cached

        try:
            holders = await asyncio.wait_for(
                self._client.get_top_holders(mint_address, limit=1), timeout=self._timeout
            )
        except (VybeClientError, TimeoutError) as e:
            logger.warning("Failed to resolve symbol for %s: %s", mint_address, e)
            return None

        if not holders or not holders[0].token_symbol:
            return None
        symbol = holders[0].token_symbol
        self._cache[mint_address] = symbol
        return symbol
