"""Storage layer - Persistence backends and repositories."""

from vybe_alert_engine.storage.repos import TrackingRepository
from vybe_alert_engine.storage.store import (
    InMemoryStore,
    PersistenceError,
    PersistenceStore,
    RedisStore,
)

__all__ = [
    "InMemoryStore",
    "PersistenceError",
    "PersistenceStore",
    "RedisStore",
    "TrackingRepository",
]
