"""Storage and messaging clients for the usage tally engine."""

from .cache import CacheError, RedisCache
from .database import SqliteDatabase
from .event_store import EventStore
from .inventory_store import AccountServiceInventoryRepository
from .snapshot_store import TallySnapshotRepository
from .transport import MessageTransport, RedisStreamTransport, TransientDeliveryError

__all__ = [
    "CacheError",
    "RedisCache",
    "SqliteDatabase",
    "EventStore",
    "AccountServiceInventoryRepository",
    "TallySnapshotRepository",
    "MessageTransport",
    "RedisStreamTransport",
    "TransientDeliveryError",
]
