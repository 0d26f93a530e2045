"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from vybe_alert_engine.alerter.models import AlertPayload
from vybe_alert_engine.storage.repos import TrackingRepository
from vybe_alert_engine.storage.store import InMemoryStore

# 2026-01-02 12:00:00 UTC
START_TIME = 1_767_355_200.0


class FakeClock:
    """Manually advanced unix clock."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingDispatcher:
    """Dispatcher that records every alert it is given."""

    def __init__(self, *, delivered: bool = True) -> None:
        self.delivered = delivered
        self.sent: list[tuple[int, AlertPayload]] = []

    async def send(self, subscriber_id: int, alert: AlertPayload) -> bool:
        self.sent.append((subscriber_id, alert))
        return self.delivered

    def of_kind(self, kind: str) -> list[tuple[int, AlertPayload]]:
        return [(sid, alert) for sid, alert in self.sent if alert.kind == kind]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def repository(store: InMemoryStore) -> TrackingRepository:
    return TrackingRepository(store)


@pytest.fixture
def wallet_address() -> str:
    """Sample Solana wallet address for testing."""
    return "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"
