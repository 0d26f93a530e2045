"""Main pipeline orchestrator for the Vybe alert engine.

This module provides the Pipeline class that wires the analytics client,
persistence store, alert dispatcher and both tracking engines together and
drives their scan cycles on independent timers.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from vybe_alert_engine.alerter.dispatcher import (
    AlertDispatcher,
    LoggingAlertDispatcher,
    TelegramAlertDispatcher,
)
from vybe_alert_engine.alerter.formatter import AlertFormatter
from vybe_alert_engine.config import Settings, get_settings
from vybe_alert_engine.ingestor.vybe_client import VybeClient
from vybe_alert_engine.profiler.analyzer import WalletAnalyzer
from vybe_alert_engine.storage.repos import TrackingRepository
from vybe_alert_engine.storage.store import InMemoryStore, PersistenceStore, RedisStore
from vybe_alert_engine.tracker.symbols import SymbolResolver
from vybe_alert_engine.tracker.wallet_tracker import WalletTrackingEngine
from vybe_alert_engine.tracker.whale_watcher import WhaleTrackingEngine

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Pipeline lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class PipelineStats:
    """Statistics for the pipeline."""

    started_at: datetime | None = None
    wallet_cycles: int = 0
    whale_cycles: int = 0
    snapshots_taken: int = 0
    alerts_sent: int = 0
    errors: int = 0
    last_error: str | None = None


def seconds_until_hour(now: datetime, hour_utc: int) -> float:
    """Seconds from `now` until the next occurrence of `hour_utc`:00 UTC."""
    now = now.astimezone(UTC)
    target = now.replace(hour=hour_utc, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


class Pipeline:
    """Main orchestrator for the wallet and whale tracking engines.

    The wallet scan, whale scan and daily snapshot each run in their own
    background task. Cycles of one engine never overlap; the two engines own
    disjoint state and run independently.

    Example:
        ```python
        from vybe_alert_engine.config import get_settings
        from vybe_alert_engine.pipeline import Pipeline

        settings = get_settings()
        pipeline = Pipeline(settings)

        await pipeline.start()
        # Pipeline runs until stop() is called
        await pipeline.stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        dry_run: bool | None = None,
        store: PersistenceStore | None = None,
        client: VybeClient | None = None,
        dispatcher: AlertDispatcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            dry_run: If True, log alerts instead of sending them. Overrides settings.dry_run.
            store: Persistence backend; built from settings when omitted.
            client: Analytics client; built from settings when omitted.
            dispatcher: Alert dispatcher; built from settings when omitted.
            clock: Source of the current unix time for the engines.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run
        self._clock = clock

        self._state = PipelineState.STOPPED
        self._stats = PipelineStats()

        # Injected components are owned by the caller and not closed here.
        self._store = store
        self._client = client
        self._dispatcher = dispatcher
        self._owned: list[Any] = []

        self._wallet_engine: WalletTrackingEngine | None = None
        self._whale_engine: WhaleTrackingEngine | None = None

        # Synchronization
        self._stop_event: asyncio.Event | None = None
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def stats(self) -> PipelineStats:
        """Current pipeline statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if pipeline is running."""
        return self._state == PipelineState.RUNNING

    @property
    def wallet_engine(self) -> WalletTrackingEngine:
        if self._wallet_engine is None:
            raise RuntimeError("Pipeline has not been started")
        return self._wallet_engine

    @property
    def whale_engine(self) -> WhaleTrackingEngine:
        if self._whale_engine is None:
            raise RuntimeError("Pipeline has not been started")
        return self._whale_engine

    async def start(self) -> None:
        """Start the pipeline.

        Builds all components, rehydrates engine state from the store and
        starts the scan loops.

        Raises:
            RuntimeError: If pipeline is already running.
            Exception: If any component fails to initialize.
        """
        if self._state != PipelineState.STOPPED:
            raise RuntimeError(f"Cannot start pipeline in state {self._state}")

        self._state = PipelineState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting pipeline...")

        try:
            self._initialize_components()
            await self.wallet_engine.load_state()
            await self.whale_engine.load_state()
            self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = PipelineState.RUNNING
            logger.info("Pipeline started successfully")
        except Exception as e:
            self._state = PipelineState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start pipeline: %s", e)
            await self._cleanup()
            self._state = PipelineState.STOPPED
            raise

    async def stop(self) -> None:
        """Stop the pipeline gracefully.

        Stops the scan loops first so no cycle starts mid-drain, flushes all
        in-memory tracking state to the store, then releases resources.
        """
        if self._state == PipelineState.STOPPED:
            return

        self._state = PipelineState.STOPPING
        logger.info("Stopping pipeline...")

        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_services()
        await self._flush()
        await self._cleanup()

        self._state = PipelineState.STOPPED
        logger.info("Pipeline stopped")

    def _initialize_components(self) -> None:
        """Initialize all pipeline components."""
        settings = self._settings

        if self._store is None:
            if settings.redis.url:
                logger.debug("Initializing Redis store...")
                self._store = RedisStore.from_url(settings.redis.url)
            else:
                logger.warning("REDIS_URL not set, tracking state will not survive restarts")
                self._store = InMemoryStore()
            self._owned.append(self._store)

        if self._client is None:
            logger.debug("Initializing Vybe client...")
            self._client = VybeClient(
                api_key=(
                    settings.vybe.api_key.get_secret_value() if settings.vybe.api_key else None
                ),
                base_url=settings.vybe.base_url,
                timeout_seconds=settings.vybe.request_timeout_seconds,
                max_retries=settings.vybe.max_retries,
                requests_per_second=settings.vybe.requests_per_second,
            )
            self._owned.append(self._client)

        if self._dispatcher is None:
            self._dispatcher = self._build_dispatcher()

        repository = TrackingRepository(self._store)
        symbols = SymbolResolver(
            self._client, timeout_seconds=settings.wallet_tracker.call_timeout_seconds
        )
        analyzer = WalletAnalyzer(self._client, repository=repository, clock=self._clock)

        self._wallet_engine = WalletTrackingEngine(
            self._client,
            repository,
            self._dispatcher,
            analyzer=analyzer,
            symbols=symbols,
            settings=settings.wallet_tracker,
            clock=self._clock,
        )
        self._whale_engine = WhaleTrackingEngine(
            self._client,
            repository,
            self._dispatcher,
            symbols=symbols,
            settings=settings.whale_watch,
            clock=self._clock,
        )

    def _build_dispatcher(self) -> AlertDispatcher:
        formatter = AlertFormatter()
        telegram = self._settings.telegram
        if self._dry_run or telegram.bot_token is None:
            logger.info("Alerts will be logged only (dry run)")
            return LoggingAlertDispatcher(formatter)

        dispatcher = TelegramAlertDispatcher(
            telegram.bot_token.get_secret_value(),
            formatter=formatter,
            api_base_url=telegram.api_base_url,
        )
        self._owned.append(dispatcher)
        logger.info("Telegram dispatcher enabled")
        return dispatcher

    def _start_background_services(self) -> None:
        """Start the scan loops."""
        wallet_settings = self._settings.wallet_tracker
        whale_settings = self._settings.whale_watch

        logger.debug("Starting wallet scan loop...")
        self._tasks.append(
            asyncio.create_task(
                self._run_periodic(
                    "wallet scan", wallet_settings.check_interval_seconds, self._wallet_cycle
                )
            )
        )
        logger.debug("Starting whale scan loop...")
        self._tasks.append(
            asyncio.create_task(
                self._run_periodic(
                    "whale scan", whale_settings.check_interval_seconds, self._whale_cycle
                )
            )
        )
        logger.debug("Starting daily snapshot loop...")
        self._tasks.append(asyncio.create_task(self._run_daily_snapshot_loop()))

    async def _wallet_cycle(self) -> None:
        result = await self.wallet_engine.run_scan_cycle()
        self._stats.wallet_cycles += 1
        self._stats.alerts_sent += result.alerts_sent

    async def _whale_cycle(self) -> None:
        result = await self.whale_engine.run_scan_cycle()
        self._stats.whale_cycles += 1
        self._stats.alerts_sent += result.alerts_sent

    async def _run_periodic(
        self, name: str, interval: float, cycle: Callable[[], Awaitable[None]]
    ) -> None:
        if not self._stop_event:
            return

        while not self._stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                    break
                except TimeoutError:
                    pass

                await cycle()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._stats.errors += 1
                self._stats.last_error = str(e)
                logger.exception("%s loop error: %s", name.capitalize(), e)

    async def _run_daily_snapshot_loop(self) -> None:
        if not self._stop_event:
            return

        hour = self._settings.wallet_tracker.daily_snapshot_hour_utc
        while not self._stop_event.is_set():
            try:
                delay = seconds_until_hour(datetime.fromtimestamp(self._clock(), tz=UTC), hour)
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=delay)
                    break
                except TimeoutError:
                    pass

                await self.wallet_engine.take_daily_snapshot()
                self._stats.snapshots_taken += 1
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._stats.errors += 1
                self._stats.last_error = str(e)
                logger.exception("Daily snapshot loop error: %s", e)

    async def _stop_background_services(self) -> None:
        """Cancel the scan loops and wait for them to finish."""
        for task in self._tasks:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._tasks.clear()

    async def _flush(self) -> None:
        """Write all in-memory tracking state to the store."""
        if self._wallet_engine:
            saved = await self._wallet_engine.save_all()
            logger.info("Flushed %d tracked wallets", saved)
        if self._whale_engine:
            saved = await self._whale_engine.save_all()
            logger.info("Flushed %d whale alerts", saved)

    async def _cleanup(self) -> None:
        """Close components the pipeline created itself."""
        for component in reversed(self._owned):
            try:
                if isinstance(component, (RedisStore, InMemoryStore)):
                    await component.close()
                else:
                    await component.aclose()
            except Exception as e:
                logger.warning("Error closing %s: %s", type(component).__name__, e)
        self._owned.clear()
        logger.debug("Resources cleaned up")

    async def run(self) -> None:
        """Start the pipeline and run until interrupted.

        Example:
            ```python
            pipeline = Pipeline()
            try:
                await pipeline.run()
            except KeyboardInterrupt:
                pass
            ```
        """
        await self.start()

        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> Pipeline:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()
