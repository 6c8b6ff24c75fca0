"""
Key-Value Store Module
"""
from order_analytics.config import Settings
from .base import (
    DAILY_ORDER_STATS,
    ORDER_STATS,
    ORDERS,
    STORE_DAILY_ORDERS,
    UNMAPPED,
    KeyValueStore,
    Page,
    ScanCursor,
    StringSet,
    decode_seq,
    encode_seq,
)
from .conditions import And, Between, Condition, Eq, Gt
from .memory import MemoryKeyValueStore


async def open_store(settings: Settings) -> KeyValueStore:
    """Create the configured store backend"""
    if settings.store.backend == "memory":
        return MemoryKeyValueStore(
            max_batch_size=settings.store.max_batch_size,
            scan_page_size=settings.store.scan_page_size,
        )

    from order_analytics.database import init_database
    from .sql import SQLKeyValueStore

    engine = await init_database()
    return SQLKeyValueStore(
        engine,
        max_batch_size=settings.store.max_batch_size,
        scan_page_size=settings.store.scan_page_size,
    )


__all__ = [
    "DAILY_ORDER_STATS",
    "ORDER_STATS",
    "ORDERS",
    "STORE_DAILY_ORDERS",
    "UNMAPPED",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "Page",
    "ScanCursor",
    "StringSet",
    "decode_seq",
    "encode_seq",
    "And",
    "Between",
    "Condition",
    "Eq",
    "Gt",
    "open_store",
]
