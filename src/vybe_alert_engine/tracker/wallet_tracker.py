"""Wallet tracking engine.

Owns every (wallet, subscriber) tracking record, runs the periodic scan
cycle that diffs fresh balances against each subscriber's last-seen state,
and hands the resulting alert payloads to the dispatcher.

Within a cycle, balances are fetched concurrently (one fetch per distinct
wallet) and gathered before any state is touched; the diff-and-update work
then runs sequentially, and cycles never overlap.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from decimal import Decimal
from typing import TypeVar

from vybe_alert_engine.alerter.dispatcher import AlertDispatcher
from vybe_alert_engine.alerter.models import (
    AlertPayload,
    ChartSlice,
    PercentChangeAlert,
    PeriodicSummary,
    ThresholdCrossed,
    TokenListChanged,
    TokenValueChangeAlert,
    TransferNotification,
)
from vybe_alert_engine.config import WalletTrackerSettings
from vybe_alert_engine.detector.backoff import backoff_window, is_backing_off
from vybe_alert_engine.detector.models import Direction
from vybe_alert_engine.detector.wallet_changes import (
    diff_token_list,
    diff_token_values,
    evaluate_value_change,
    latest_transfer,
    select_missed_transfers,
)
from vybe_alert_engine.ingestor.models import Transfer, WalletBalance
from vybe_alert_engine.ingestor.vybe_client import VybeClient, VybeClientError
from vybe_alert_engine.profiler.analyzer import WalletAnalyzer
from vybe_alert_engine.profiler.models import WalletAnalytics
from vybe_alert_engine.storage.repos import TrackingRepository
from vybe_alert_engine.storage.store import PersistenceError
from vybe_alert_engine.tracker.errors import (
    NoTokensFoundError,
    NotFoundError,
    SubscriberLimitExceededError,
)
from vybe_alert_engine.tracker.models import (
    Confirmation,
    ConfirmationStatus,
    HistoricalValueSnapshot,
    TrackedWallet,
)
from vybe_alert_engine.tracker.registry import TrackingRegistry
from vybe_alert_engine.tracker.symbols import SymbolResolver
from vybe_alert_engine.tracker.validation import parse_threshold, validate_address

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSFER_LOOKBACK_SECONDS = 5 * 3600
PROBE_TRANSFER_LIMIT = 2
CHART_HOLDINGS_LIMIT = 7
HISTORICAL_REFRESH_SECONDS = 24 * 3600


@dataclass
class ScanCycleResult:
    """Counters for one wallet scan cycle."""

    wallets_checked: int = 0
    subscriptions_checked: int = 0
    skipped_backoff: int = 0
    failures: int = 0
    alerts_sent: int = 0
    duration_seconds: float = 0.0


class WalletTrackingEngine:
    """Tracks wallets on behalf of subscribers and alerts on changes.

    Example:
        ```python
        engine = WalletTrackingEngine(client, repository, dispatcher)
        await engine.load_state()
        await engine.start_tracking(chat_id, wallet, Decimal("900"))
        await engine.run_scan_cycle()
        ```
    """

    def __init__(
        self,
        client: VybeClient,
        repository: TrackingRepository,
        dispatcher: AlertDispatcher,
        *,
        analyzer: WalletAnalyzer | None = None,
        symbols: SymbolResolver | None = None,
        settings: WalletTrackerSettings | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the engine.

        Args:
            client: Analytics API client.
            repository: Persistence for tracking state.
            dispatcher: Delivers alert payloads to subscribers.
            analyzer: Optional derived analytics (category, PnL).
            symbols: Token symbol lookup for transfer notifications.
            settings: Engine settings; environment defaults when omitted.
            clock: Source of the current unix time.
        """
        self._client = client
        self._repository = repository
        self._dispatcher = dispatcher
        self._analyzer = analyzer
        self._settings = settings or WalletTrackerSettings()
        self._clock = clock
        self._symbols = symbols or SymbolResolver(
            client, timeout_seconds=self._settings.call_timeout_seconds
        )

        self._registry = TrackingRegistry()
        self._last_error_at: dict[str, float] = {}
        self._historical: dict[str, HistoricalValueSnapshot] = {}
        self._cycle_lock = asyncio.Lock()

        self._value_change_percent = Decimal(str(self._settings.value_change_percent))
        self._token_change_percent = Decimal(str(self._settings.token_change_percent))
        self._token_min_value = Decimal(str(self._settings.token_change_min_value_usd))

    @property
    def tracked_count(self) -> int:
        return len(self._registry)

    def get_record(self, wallet_address: str, subscriber_id: int) -> TrackedWallet | None:
        """Live tracking record for a (wallet, subscriber) pair."""
        return self._registry.get(wallet_address, subscriber_id)

    def historical_value(self, wallet_address: str) -> HistoricalValueSnapshot | None:
        return self._historical.get(wallet_address)

    # Command operations

    async def start_tracking(
        self,
        subscriber_id: int,
        wallet_address: str,
        min_value_usd: Decimal | int | float | str,
    ) -> Confirmation:
        """Start (or update) tracking of a wallet for a subscriber.

        Args:
            subscriber_id: Chat or user id.
            wallet_address: Solana wallet address.
            min_value_usd: Alert floor for the wallet's total USD value.

        Returns:
            Confirmation with status CREATED, or UPDATED when the pair was
            already tracked (its threshold is replaced in place).

        Raises:
            InvalidAddressError: Malformed wallet address.
            InvalidThresholdError: Threshold not a positive finite number.
            SubscriberLimitExceededError: Subscriber is at the wallet limit.
            NoTokensFoundError: The wallet holds no tokens.
            VybeClientError: The initial balance fetch failed.
            TimeoutError: The initial balance fetch timed out.
        """
        wallet_address = validate_address(wallet_address)
        threshold = parse_threshold(min_value_usd)

        updated = await self._update_existing(subscriber_id, wallet_address, threshold)
        if updated is not None:
            return updated
        self._check_limit(subscriber_id)

        balance = await self._call(self._client.get_token_balance(wallet_address))
        if balance.is_empty:
            raise NoTokensFoundError(wallet_address)

        # The registry may have changed while the balance was in flight.
        updated = await self._update_existing(subscriber_id, wallet_address, threshold)
        if updated is not None:
            return updated
        self._check_limit(subscriber_id)

        now = int(self._clock())
        record = TrackedWallet(
            wallet_address=wallet_address,
            subscriber_id=subscriber_id,
            min_value_usd=threshold,
            last_checked_time=now,
            last_token_list=balance.symbols,
            last_balances={t.value_key: str(t.value_usd) for t in balance.tokens},
        )
        record.last_known_signature = await self._fetch_latest_signature(wallet_address)
        self._registry.upsert(record)
        self._refresh_historical(wallet_address, balance.total_value_usd, now)
        await self._persist(record)

        analytics = await self._analyze(wallet_address)
        record.category = analytics.category
        record.pnl = analytics.pnl

        logger.info(
            "Subscriber %s started tracking wallet %s (min $%s)",
            subscriber_id,
            wallet_address,
            threshold,
        )
        summary = await self._build_summary(record, balance, baseline=True)
        await self._dispatch(subscriber_id, summary)

        return Confirmation(
            status=ConfirmationStatus.CREATED,
            subscriber_id=subscriber_id,
            entity=wallet_address,
            threshold=threshold,
        )

    async def stop_tracking(self, subscriber_id: int, wallet_address: str) -> Confirmation:
        """Stop tracking a wallet for a subscriber.

        Raises:
            NotFoundError: The subscriber does not track this wallet.
        """
        record = self._registry.remove(wallet_address, subscriber_id)
        if record is None:
            raise NotFoundError(subscriber_id, wallet_address)

        if not self._registry.subscribers_of(wallet_address):
            self._last_error_at.pop(wallet_address, None)
            self._historical.pop(wallet_address, None)

        try:
            await self._repository.remove_tracked_wallet(subscriber_id, wallet_address)
            await self._repository.remove_historical_value(subscriber_id, wallet_address)
        except PersistenceError as e:
            logger.error("Failed to remove wallet %s for %s from store: %s", wallet_address, subscriber_id, e)

        logger.info("Subscriber %s stopped tracking wallet %s", subscriber_id, wallet_address)
        return Confirmation(
            status=ConfirmationStatus.REMOVED,
            subscriber_id=subscriber_id,
            entity=wallet_address,
        )

    async def list_tracked(self, subscriber_id: int) -> list[TrackedWallet]:
        """Wallets tracked by a subscriber, highest last known value first.

        Reads from the persistence store and falls back to the in-memory
        table when the store fails or has nothing for the subscriber.
        """
        records: list[TrackedWallet] = []
        try:
            records = await self._repository.get_tracked_wallets(subscriber_id)
        except PersistenceError as e:
            logger.error("Error loading tracked wallets for %s from store: %s", subscriber_id, e)

        if not records:
            records = self._registry.for_subscriber(subscriber_id)

        return sorted(records, key=lambda r: r.last_total_value or Decimal(0), reverse=True)

    # Scan cycle

    async def run_scan_cycle(self) -> ScanCycleResult:
        """Check every tracked wallet once and dispatch triggered alerts.

        Never raises for per-wallet or per-subscriber failures; they are
        logged and recorded for backoff.
        """
        async with self._cycle_lock:
            return await self._run_scan_cycle()

    async def _run_scan_cycle(self) -> ScanCycleResult:
        started = time.monotonic()
        result = ScanCycleResult()
        now = self._clock()

        eligible: dict[str, list[TrackedWallet]] = {}
        for wallet_address in self._registry.wallets():
            ready = []
            for record in self._registry.subscribers_of(wallet_address):
                if is_backing_off(
                    self._last_error_at.get(wallet_address),
                    record.error_count,
                    now,
                    self._settings.max_backoff_seconds,
                ):
                    logger.debug(
                        "Skipping wallet %s for %s due to backoff (%.0fs)",
                        wallet_address,
                        record.subscriber_id,
                        backoff_window(record.error_count, self._settings.max_backoff_seconds),
                    )
                    result.skipped_backoff += 1
                    continue
                ready.append(record)
            if ready:
                eligible[wallet_address] = ready

        if not eligible:
            return result

        logger.info(
            "Starting wallet check cycle: %d wallets, %d subscriptions",
            len(eligible),
            sum(len(r) for r in eligible.values()),
        )

        balances = await self._fetch_balances(list(eligible))

        for wallet_address, records in eligible.items():
            outcome = balances[wallet_address]
            if isinstance(outcome, BaseException):
                logger.error("Error fetching balance for wallet %s: %s", wallet_address, outcome)
                self._last_error_at[wallet_address] = self._clock()
                for record in records:
                    record.error_count += 1
                result.failures += 1
                continue

            result.wallets_checked += 1
            analytics = await self._analyze(wallet_address)

            for record in records:
                if self._registry.get(wallet_address, record.subscriber_id) is not record:
                    continue
                result.subscriptions_checked += 1
                try:
                    result.alerts_sent += await self._check_subscriber(record, outcome, analytics)
                    record.error_count = 0
                except Exception as e:
                    logger.error(
                        "Error checking wallet %s for subscriber %s: %s",
                        wallet_address,
                        record.subscriber_id,
                        e,
                    )
                    record.error_count += 1
                    self._last_error_at[wallet_address] = self._clock()
                    result.failures += 1

        await self.save_all()

        result.duration_seconds = time.monotonic() - started
        logger.info(
            "Completed wallet check cycle in %.2fs: %d wallets, %d alerts, %d failures",
            result.duration_seconds,
            result.wallets_checked,
            result.alerts_sent,
            result.failures,
        )
        return result

    async def _fetch_balances(
        self, wallet_addresses: list[str]
    ) -> dict[str, WalletBalance | BaseException]:
        semaphore = asyncio.Semaphore(self._settings.fetch_concurrency)

        async def fetch(wallet_address: str) -> WalletBalance:
            async with semaphore:
                return await self._call(self._client.get_token_balance(wallet_address))

        outcomes = await asyncio.gather(
            *(fetch(w) for w in wallet_addresses),
            return_exceptions=True,
        )
        return dict(zip(wallet_addresses, outcomes, strict=True))

    async def _check_subscriber(
        self,
        record: TrackedWallet,
        balance: WalletBalance,
        analytics: WalletAnalytics,
    ) -> int:
        """Run the four diff passes for one subscriber; returns alerts sent."""
        now = int(self._clock())
        self._refresh_historical(record.wallet_address, balance.total_value_usd, now)
        record.category = analytics.category
        record.pnl = analytics.pnl

        sent = await self._check_transfers(record)
        sent += await self._check_token_list(record, balance)
        sent += await self._check_value(record, balance)
        sent += await self._check_token_values(record, balance)

        record.last_checked_time = now
        return sent

    async def _check_transfers(self, record: TrackedWallet) -> int:
        wallet_address = record.wallet_address
        try:
            latest = latest_transfer(await self._fetch_transfers(wallet_address, limit=1))
        except (VybeClientError, TimeoutError) as e:
            logger.error("Error checking transfers for wallet %s: %s", wallet_address, e)
            return 0

        if latest is None or latest.signature == record.last_known_signature:
            return 0

        previous = record.last_known_signature
        record.last_known_signature = latest.signature
        sent = await self._send_transfer(record, latest)

        if previous is None:
            return sent

        try:
            probe = await self._fetch_transfers(wallet_address, limit=PROBE_TRANSFER_LIMIT)
        except (VybeClientError, TimeoutError) as e:
            logger.warning("Could not probe earlier transfers for wallet %s: %s", wallet_address, e)
            return sent

        for transfer in select_missed_transfers(
            probe, latest_signature=latest.signature, previous_signature=previous
        ):
            sent += await self._send_transfer(record, transfer)
        return sent

    async def _fetch_transfers(self, wallet_address: str, *, limit: int) -> list[Transfer]:
        time_start = int(self._clock()) - TRANSFER_LOOKBACK_SECONDS
        sent_page, received_page = await asyncio.gather(
            self._call(
                self._client.get_recent_transfers(
                    sender_address=wallet_address, limit=limit, time_start=time_start
                )
            ),
            self._call(
                self._client.get_recent_transfers(
                    receiver_address=wallet_address, limit=limit, time_start=time_start
                )
            ),
        )
        return [*sent_page.transfers, *received_page.transfers]

    async def _send_transfer(self, record: TrackedWallet, transfer: Transfer) -> int:
        symbol = await self._symbols.resolve(transfer.mint_address)
        alert = TransferNotification(
            wallet_address=record.wallet_address,
            transfer=transfer,
            token_symbol=symbol,
        )
        return await self._dispatch(record.subscriber_id, alert)

    async def _check_token_list(self, record: TrackedWallet, balance: WalletBalance) -> int:
        current = balance.symbols
        diff = diff_token_list(record.last_token_list, current)
        sent = 0
        if diff.changed:
            holdings = {t.symbol: t for t in reversed(balance.tokens)}
            alert = TokenListChanged(
                wallet_address=record.wallet_address,
                added=tuple(holdings[s] for s in diff.added if s in holdings),
                removed=diff.removed,
                total_value_usd=balance.total_value_usd,
                added_symbols=diff.added,
            )
            sent = await self._dispatch(record.subscriber_id, alert)
        record.last_token_list = current
        return sent

    async def _check_value(self, record: TrackedWallet, balance: WalletBalance) -> int:
        change = evaluate_value_change(
            record.last_total_value,
            balance.total_value_usd,
            record.min_value_usd,
            percent_threshold=self._value_change_percent,
        )
        sent = 0

        if change.crossing is not None:
            sent += await self._dispatch(
                record.subscriber_id,
                ThresholdCrossed(
                    wallet_address=record.wallet_address,
                    direction=change.crossing,
                    threshold=record.min_value_usd,
                    current_value=change.current,
                ),
            )

        if change.percent_alert and change.percent_change is not None and change.previous is not None:
            sent += await self._dispatch(
                record.subscriber_id,
                PercentChangeAlert(
                    wallet_address=record.wallet_address,
                    direction=Direction.UP if change.percent_change > 0 else Direction.DOWN,
                    percent=abs(change.percent_change),
                    previous_value=change.previous,
                    current_value=change.current,
                ),
            )

        if change.summary_due:
            summary = await self._build_summary(record, balance, baseline=False)
            sent += await self._dispatch(record.subscriber_id, summary)
            logger.info("Summary sent for wallet %s to %s", record.wallet_address, record.subscriber_id)

        record.last_total_value = change.current
        return sent

    async def _check_token_values(self, record: TrackedWallet, balance: WalletBalance) -> int:
        diff = diff_token_values(
            balance.tokens,
            record.last_balances,
            percent_threshold=self._token_change_percent,
            min_value_usd=self._token_min_value,
        )
        record.last_balances = diff.balances
        if not diff.changes:
            return 0
        return await self._dispatch(
            record.subscriber_id,
            TokenValueChangeAlert(wallet_address=record.wallet_address, changes=diff.changes),
        )

    async def _build_summary(
        self, record: TrackedWallet, balance: WalletBalance, *, baseline: bool
    ) -> PeriodicSummary:
        return PeriodicSummary(
            wallet_address=record.wallet_address,
            current_value=balance.total_value_usd,
            value_24h_ago=await self._value_24h_ago(record.wallet_address),
            chart_data=tuple(
                ChartSlice(label=t.symbol, value_usd=t.value_usd)
                for t in balance.top_holdings(CHART_HOLDINGS_LIMIT)
            ),
            pnl=record.pnl,
            category=record.category,
            is_baseline=baseline,
        )

    async def _value_24h_ago(self, wallet_address: str) -> Decimal | None:
        """Yesterday's dated value, else the in-memory historical snapshot."""
        try:
            value = await self._repository.get_daily_value(wallet_address, self._today() - timedelta(days=1))
        except PersistenceError as e:
            logger.warning("Failed to read daily history for %s: %s", wallet_address, e)
            value = None
        if value is not None:
            return value
        snapshot = self._historical.get(wallet_address)
        return snapshot.value if snapshot else None

    def _refresh_historical(self, wallet_address: str, value: Decimal, now: int) -> None:
        snapshot = self._historical.get(wallet_address)
        if snapshot is None or snapshot.is_stale(now, HISTORICAL_REFRESH_SECONDS):
            self._historical[wallet_address] = HistoricalValueSnapshot(value=value, timestamp=now)

    # Persistence

    async def load_state(self) -> int:
        """Rehydrate tracking state from the store.

        A failure to enumerate subscribers leaves the engine empty; a failure
        for one subscriber skips only that subscriber.

        Returns:
            Number of tracking records loaded.
        """
        self._registry.clear()
        self._historical.clear()
        self._last_error_at.clear()

        try:
            subscriber_ids = await self._repository.get_all_subscriber_ids()
        except PersistenceError as e:
            logger.error("Failed to load tracked wallets, starting empty: %s", e)
            return 0

        logger.info("Found %d subscribers with tracked wallets", len(subscriber_ids))
        for subscriber_id in subscriber_ids:
            try:
                records = await self._repository.get_tracked_wallets(subscriber_id)
                snapshots = await self._repository.get_historical_values(subscriber_id)
            except PersistenceError as e:
                logger.error("Failed to load state for subscriber %s: %s", subscriber_id, e)
                continue

            for record in records:
                record.subscriber_id = subscriber_id
                if record.last_token_list is None:
                    record.last_token_list = []
                if record.last_known_signature is None:
                    record.last_known_signature = await self._fetch_latest_signature(
                        record.wallet_address
                    )
                self._registry.upsert(record)

            for wallet_address, snapshot in snapshots.items():
                current = self._historical.get(wallet_address)
                if current is None or snapshot.timestamp > current.timestamp:
                    self._historical[wallet_address] = snapshot

        logger.info("Loaded %d tracked wallets from store", len(self._registry))
        return len(self._registry)

    async def save_all(self) -> int:
        """Flush every tracking record and its historical snapshot.

        Write failures are logged; in-memory state is left untouched.

        Returns:
            Number of records written successfully.
        """
        saved = 0
        for record in self._registry:
            try:
                await self._repository.save_tracked_wallet(record)
                snapshot = self._historical.get(record.wallet_address)
                if snapshot is not None:
                    await self._repository.save_historical_value(
                        record.subscriber_id, record.wallet_address, snapshot
                    )
                saved += 1
            except PersistenceError as e:
                logger.error(
                    "Failed to save wallet %s for %s: %s",
                    record.wallet_address,
                    record.subscriber_id,
                    e,
                )
        logger.debug("Saved %d/%d tracked wallets", saved, len(self._registry))
        return saved

    async def take_daily_snapshot(self) -> int:
        """Record each tracked wallet's value under today's date.

        Returns:
            Number of wallets snapshotted.
        """
        async with self._cycle_lock:
            logger.info("Taking daily wallet value snapshot")
            today = self._today()
            now = int(self._clock())
            taken = 0
            for wallet_address in self._registry.wallets():
                try:
                    balance = await self._call(self._client.get_token_balance(wallet_address))
                except (VybeClientError, TimeoutError) as e:
                    logger.error("Error taking snapshot for wallet %s: %s", wallet_address, e)
                    continue

                self._historical[wallet_address] = HistoricalValueSnapshot(
                    value=balance.total_value_usd, timestamp=now
                )
                try:
                    await self._repository.save_daily_value(
                        wallet_address, today, balance.total_value_usd
                    )
                except PersistenceError as e:
                    logger.error("Failed to store daily value for %s: %s", wallet_address, e)
                taken += 1
            logger.info("Daily wallet snapshot completed for %d wallets", taken)
            return taken

    async def _persist(self, record: TrackedWallet) -> None:
        try:
            await self._repository.save_tracked_wallet(record)
        except PersistenceError as e:
            logger.error(
                "Failed to persist wallet %s for %s: %s",
                record.wallet_address,
                record.subscriber_id,
                e,
            )

    # Helpers

    async def _update_existing(
        self, subscriber_id: int, wallet_address: str, threshold: Decimal
    ) -> Confirmation | None:
        existing = self._registry.get(wallet_address, subscriber_id)
        if existing is None:
            return None
        existing.min_value_usd = threshold
        existing.last_checked_time = int(self._clock())
        await self._persist(existing)
        logger.info(
            "Subscriber %s updated threshold for wallet %s to $%s",
            subscriber_id,
            wallet_address,
            threshold,
        )
        return Confirmation(
            status=ConfirmationStatus.UPDATED,
            subscriber_id=subscriber_id,
            entity=wallet_address,
            threshold=threshold,
        )

    def _check_limit(self, subscriber_id: int) -> None:
        limit = self._settings.max_wallets_per_subscriber
        if self._registry.count_for_subscriber(subscriber_id) >= limit:
            raise SubscriberLimitExceededError(subscriber_id, limit)

    async def _fetch_latest_signature(self, wallet_address: str) -> str | None:
        """Most recent outgoing transfer signature, or None if unavailable."""
        try:
            page = await self._call(
                self._client.get_recent_transfers(sender_address=wallet_address, limit=1)
            )
        except (VybeClientError, TimeoutError) as e:
            logger.warning("Could not fetch recent transfers for wallet %s: %s", wallet_address, e)
            return None
        latest = latest_transfer(page.transfers)
        return latest.signature if latest else None

    async def _analyze(self, wallet_address: str) -> WalletAnalytics:
        if self._analyzer is None:
            return WalletAnalytics()
        try:
            return await self._call(self._analyzer.analyze(wallet_address))
        except TimeoutError:
            logger.warning("Timed out analyzing wallet %s", wallet_address)
            return WalletAnalytics()
        except Exception as e:
            logger.exception("Failed to analyze wallet %s: %s", wallet_address, e)
            return WalletAnalytics()

    async def _dispatch(self, subscriber_id: int, alert: AlertPayload) -> int:
        delivered = await self._dispatcher.send(subscriber_id, alert)
        return 1 if delivered else 0

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await asyncio.wait_for(awaitable, timeout=self._settings.call_timeout_seconds)

    def _today(self) -> date:
        return datetime.fromtimestamp(self._clock(), tz=UTC).date()
