"""Whale watching engine.

Subscribers set a minimum transfer amount per token. Each scan cycle queries
every watched token once, at the loosest threshold any subscriber set, and
then filters the returned transfers against each subscriber's own threshold.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal

from vybe_alert_engine.alerter.dispatcher import AlertDispatcher
from vybe_alert_engine.alerter.models import WhaleAlert
from vybe_alert_engine.config import WhaleWatchSettings
from vybe_alert_engine.detector.wallet_changes import sort_newest_first
from vybe_alert_engine.ingestor.models import Transfer
from vybe_alert_engine.ingestor.vybe_client import VybeClient, VybeClientError
from vybe_alert_engine.storage.repos import TrackingRepository
from vybe_alert_engine.storage.store import PersistenceError
from vybe_alert_engine.tracker.errors import NotFoundError
from vybe_alert_engine.tracker.models import (
    Confirmation,
    ConfirmationStatus,
    WhaleAlertSubscription,
)
from vybe_alert_engine.tracker.symbols import SymbolResolver
from vybe_alert_engine.tracker.validation import parse_threshold, validate_address

logger = logging.getLogger(__name__)


@dataclass
class WhaleScanResult:
    """Counters for one whale scan cycle."""

    tokens_checked: int = 0
    transfers_seen: int = 0
    failures: int = 0
    alerts_sent: int = 0


class WhaleTrackingEngine:
    """Watches token transfers against per-subscriber whale thresholds.

    The scan window start is a single value shared by all tokens and is
    advanced once per cycle after every token has been queried.
    """

    def __init__(
        self,
        client: VybeClient,
        repository: TrackingRepository,
        dispatcher: AlertDispatcher,
        *,
        symbols: SymbolResolver | None = None,
        settings: WhaleWatchSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._repository = repository
        self._dispatcher = dispatcher
        self._settings = settings or WhaleWatchSettings()
        self._clock = clock
        self._symbols = symbols or SymbolResolver(
            client, timeout_seconds=self._settings.call_timeout_seconds
        )

        # subscriber id -> token -> subscription
        self._subscriptions: dict[int, dict[str, WhaleAlertSubscription]] = {}
        self._last_checked_time = int(clock()) - self._settings.initial_lookback_seconds
        self._cycle_lock = asyncio.Lock()

    @property
    def last_checked_time(self) -> int:
        return self._last_checked_time

    @property
    def subscription_count(self) -> int:
        return sum(len(alerts) for alerts in self._subscriptions.values())

    async def set_alert(
        self,
        subscriber_id: int,
        token: str,
        min_amount: Decimal | int | float | str,
    ) -> Confirmation:
        """Create or update a subscriber's whale threshold for a token.

        Raises:
            InvalidAddressError: Malformed token mint address.
            InvalidThresholdError: Amount not a positive finite number.
        """
        token = validate_address(token)
        threshold = parse_threshold(min_amount)

        alerts = self._subscriptions.setdefault(subscriber_id, {})
        subscription = alerts.get(token)
        if subscription is None:
            subscription = WhaleAlertSubscription(
                subscriber_id=subscriber_id, min_amount=threshold, tokens={token}
            )
            alerts[token] = subscription
            status = ConfirmationStatus.CREATED
        else:
            subscription.min_amount = threshold
            status = ConfirmationStatus.UPDATED

        try:
            await self._repository.save_whale_alert(subscriber_id, token, subscription)
        except PersistenceError as e:
            logger.error("Failed to persist whale alert %s for %s: %s", token, subscriber_id, e)

        logger.info(
            "Whale alert %s for subscriber %s on %s (min %s)",
            status.value,
            subscriber_id,
            token,
            threshold,
        )
        return Confirmation(
            status=status, subscriber_id=subscriber_id, entity=token, threshold=threshold
        )

    async def remove_alert(self, subscriber_id: int, token: str) -> Confirmation:
        """Remove a subscriber's whale alert for a token.

        Raises:
            NotFoundError: No alert is set for this token.
        """
        alerts = self._subscriptions.get(subscriber_id, {})
        if token not in alerts:
            raise NotFoundError(subscriber_id, token)

        del alerts[token]
        if not alerts:
            self._subscriptions.pop(subscriber_id, None)

        try:
            await self._repository.remove_whale_alert(subscriber_id, token)
        except PersistenceError as e:
            logger.error("Failed to remove whale alert %s for %s: %s", token, subscriber_id, e)

        logger.info("Whale alert removed for subscriber %s on %s", subscriber_id, token)
        return Confirmation(
            status=ConfirmationStatus.REMOVED, subscriber_id=subscriber_id, entity=token
        )

    def list_alerts(self, subscriber_id: int) -> list[WhaleAlertSubscription]:
        return list(self._subscriptions.get(subscriber_id, {}).values())

    def query_floors(self) -> dict[str, Decimal]:
        """Lowest threshold per watched token across all subscriptions."""
        floors: dict[str, Decimal] = {}
        for alerts in self._subscriptions.values():
            for subscription in alerts.values():
                for token in subscription.tokens:
                    current = floors.get(token)
                    if current is None or subscription.min_amount < current:
                        floors[token] = subscription.min_amount
        return floors

    async def run_scan_cycle(self) -> WhaleScanResult:
        """Query each watched token once and alert matching subscribers."""
        async with self._cycle_lock:
            result = WhaleScanResult()
            floors = self.query_floors()
            now = int(self._clock())

            if floors:
                logger.info("Checking whale transfers for %d tokens", len(floors))

            try:
                for token, floor in floors.items():
                    try:
                        await self._check_token(token, floor, now, result)
                    except Exception as e:
                        logger.exception(
                            "Error checking whale transfers for token %s: %s", token, e
                        )
                        result.failures += 1
            finally:
                self._last_checked_time = now

            if floors:
                logger.info(
                    "Whale check complete: %d transfers, %d alerts, %d failures",
                    result.transfers_seen,
                    result.alerts_sent,
                    result.failures,
                )
            return result

    async def _check_token(
        self, token: str, floor: Decimal, now: int, result: WhaleScanResult
    ) -> None:
        try:
            page = await asyncio.wait_for(
                self._client.get_token_transfers(
                    mint_address=token,
                    min_amount=floor,
                    time_start=self._last_checked_time,
                    time_end=now,
                    limit=self._settings.page_size,
                ),
                timeout=self._settings.call_timeout_seconds,
            )
        except (VybeClientError, TimeoutError) as e:
            logger.error("Error checking whale transfers for token %s: %s", token, e)
            result.failures += 1
            return

        result.tokens_checked += 1
        transfers = sort_newest_first(page.transfers)
        result.transfers_seen += len(transfers)
        for transfer in transfers:
            sent, failed = await self._alert_subscribers(token, transfer)
            result.alerts_sent += sent
            result.failures += failed

    def _matching_threshold(self, subscriber_id: int, token: str) -> Decimal | None:
        """Lowest threshold among a subscriber's subscriptions covering `token`."""
        thresholds = [
            subscription.min_amount
            for subscription in self._subscriptions.get(subscriber_id, {}).values()
            if subscription.watches(token)
        ]
        return min(thresholds) if thresholds else None

    async def _alert_subscribers(self, token: str, transfer: Transfer) -> tuple[int, int]:
        """Deliver a transfer to every subscriber whose threshold it meets.

        Returns:
            Tuple of (alerts delivered, subscribers that failed).
        """
        sent = failed = 0
        symbol: str | None = None
        for subscriber_id in list(self._subscriptions):
            min_amount = self._matching_threshold(subscriber_id, token)
            if min_amount is None or transfer.amount < min_amount:
                continue
            try:
                if symbol is None:
                    symbol = await self._symbols.resolve(token) or ""
                alert = WhaleAlert(
                    token_mint=token,
                    token_symbol=symbol,
                    amount=transfer.amount,
                    min_amount=min_amount,
                    sender_address=transfer.sender_address,
                    receiver_address=transfer.receiver_address,
                    signature=transfer.signature,
                    block_time=transfer.block_time,
                    value_usd=transfer.value_usd,
                    program_name=transfer.program_name,
                )
                if await self._dispatcher.send(subscriber_id, alert):
                    sent += 1
            except Exception as e:
                logger.exception(
                    "Failed to deliver whale alert %s to %s: %s",
                    transfer.signature,
                    subscriber_id,
                    e,
                )
                failed += 1
        return sent, failed

    async def load_state(self) -> int:
        """Rehydrate whale subscriptions from the store.

        Returns:
            Number of subscriptions loaded.
        """
        self._subscriptions.clear()
        try:
            subscriber_ids = await self._repository.get_all_whale_subscriber_ids()
        except PersistenceError as e:
            logger.error("Failed to load whale alerts, starting empty: %s", e)
            return 0

        for subscriber_id in subscriber_ids:
            try:
                alerts = await self._repository.get_whale_alerts(subscriber_id)
            except PersistenceError as e:
                logger.error("Failed to load whale alerts for %s: %s", subscriber_id, e)
                continue
            for token, subscription in alerts.items():
                subscription.subscriber_id = subscriber_id
                subscription.tokens.add(token)
                self._subscriptions.setdefault(subscriber_id, {})[token] = subscription

        logger.info("Loaded %d whale alerts from store", self.subscription_count)
        return self.subscription_count

    async def save_all(self) -> int:
        """Flush every whale subscription; write failures are logged."""
        saved = 0
        for subscriber_id, alerts in self._subscriptions.items():
            for token, subscription in alerts.items():
                try:
                    await self._repository.save_whale_alert(subscriber_id, token, subscription)
                    saved += 1
                except PersistenceError as e:
                    logger.error(
                        "Failed to save whale alert %s for %s: %s", token, subscriber_id, e
                    )
        return saved
