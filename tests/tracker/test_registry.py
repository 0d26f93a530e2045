"""Tests for the in-memory tracking registry."""

from __future__ import annotations

from decimal import Decimal

from vybe_alert_engine.tracker.models import TrackedWallet
from vybe_alert_engine.tracker.registry import TrackingRegistry

WALLET_A = "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1"
WALLET_B = "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM"


def create_record(wallet_address: str, subscriber_id: int, min_value: str = "100") -> TrackedWallet:
    return TrackedWallet(
        wallet_address=wallet_address,
        subscriber_id=subscriber_id,
        min_value_usd=Decimal(min_value),
        last_checked_time=0,
    )


class TestTrackingRegistry:
    def test_upsert_and_get(self) -> None:
        registry = TrackingRegistry()
        record = create_record(WALLET_A, 1)

        registry.upsert(record)

        assert registry.get(WALLET_A, 1) is record
        assert (WALLET_A, 1) in registry
        assert (WALLET_A, 2) not in registry
        assert len(registry) == 1

    def test_upsert_replaces_same_key(self) -> None:
        registry = TrackingRegistry()
        registry.upsert(create_record(WALLET_A, 1, "100"))
        registry.upsert(create_record(WALLET_A, 1, "200"))

        assert len(registry) == 1
        assert registry.get(WALLET_A, 1).min_value_usd == Decimal("200")  # type: ignore[union-attr]

    def test_subscribers_are_independent(self) -> None:
        registry = TrackingRegistry()
        registry.upsert(create_record(WALLET_A, 1, "100"))
        registry.upsert(create_record(WALLET_A, 2, "900"))
        registry.upsert(create_record(WALLET_B, 1))

        assert registry.wallets() == [WALLET_A, WALLET_B]
        assert {r.subscriber_id for r in registry.subscribers_of(WALLET_A)} == {1, 2}
        assert registry.count_for_subscriber(1) == 2
        assert registry.count_for_subscriber(2) == 1
        assert registry.subscriber_ids() == {1, 2}
        assert {r.wallet_address for r in registry.for_subscriber(1)} == {WALLET_A, WALLET_B}

    def test_remove_drops_empty_wallet(self) -> None:
        registry = TrackingRegistry()
        registry.upsert(create_record(WALLET_A, 1))

        removed = registry.remove(WALLET_A, 1)

        assert removed is not None
        assert registry.wallets() == []
        assert registry.remove(WALLET_A, 1) is None

    def test_iteration_tolerates_mutation(self) -> None:
        registry = TrackingRegistry()
        registry.upsert(create_record(WALLET_A, 1))
        registry.upsert(create_record(WALLET_B, 2))

        for record in registry:
            registry.remove(record.wallet_address, record.subscriber_id)

        assert len(registry) == 0

    def test_clear(self) -> None:
        registry = TrackingRegistry()
        registry.upsert(create_record(WALLET_A, 1))

        registry.clear()

        assert len(registry) == 0
