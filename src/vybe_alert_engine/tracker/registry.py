"""In-memory table of tracked wallets keyed by (wallet address, subscriber)."""

from __future__ import annotations

from collections.abc import Iterator

from vybe_alert_engine.tracker.models import TrackedWallet


class TrackingRegistry:
    """Two-level keyed table of tracked wallets.

    Records are indexed by wallet address, then by subscriber id, so a scan
    cycle can fetch each wallet once and fan out to its subscribers. Callers
    only get records or copies of the index, never the underlying maps.
    """

    def __init__(self) -> None:
        self._by_wallet: dict[str, dict[int, TrackedWallet]] = {}

    def __len__(self) -> int:
        return sum(len(subscribers) for subscribers in self._by_wallet.values())

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        wallet_address, subscriber_id = key
        return subscriber_id in self._by_wallet.get(wallet_address, {})

    def __iter__(self) -> Iterator[TrackedWallet]:
        for subscribers in list(self._by_wallet.values()):
            yield from list(subscribers.values())

    def get(self, wallet_address: str, subscriber_id: int) -> TrackedWallet | None:
        return self._by_wallet.get(wallet_address, {}).get(subscriber_id)

    def upsert(self, record: TrackedWallet) -> None:
        self._by_wallet.setdefault(record.wallet_address, {})[record.subscriber_id] = record

    def remove(self, wallet_address: str, subscriber_id: int) -> TrackedWallet | None:
        subscribers = self._by_wallet.get(wallet_address)
        if not subscribers:
            return None
        record = subscribers.pop(subscriber_id, None)
        if not subscribers:
            del self._by_wallet[wallet_address]
        return record

    def for_subscriber(self, subscriber_id: int) -> list[TrackedWallet]:
        return [
            subscribers[subscriber_id]
            for subscribers in self._by_wallet.values()
            if subscriber_id in subscribers
        ]

    def count_for_subscriber(self, subscriber_id: int) -> int:
        return sum(1 for subscribers in self._by_wallet.values() if subscriber_id in subscribers)

    def wallets(self) -> list[str]:
        """Distinct tracked wallet addresses."""
        return list(self._by_wallet)

    def subscribers_of(self, wallet_address: str) -> list[TrackedWallet]:
        return list(self._by_wallet.get(wallet_address, {}).values())

    def subscriber_ids(self) -> set[int]:
        return {sid for subscribers in self._by_wallet.values() for sid in subscribers}

    def clear(self) -> None:
        self._by_wallet.clear()
