"""
Key-Value Store Capability

The pipeline talks to its storage only through ``KeyValueStore``: point
get/put, batched put with a bounded fan-out, conditional point updates with
increment-or-initialize and set-union semantics, secondary-index equality
queries and paginated range scans.

Table layout:

- ``orders``: key ``item_id``, secondary index on ``order_id``
- ``order_stats``: key ``seq``
- ``daily_order_stats``: key ``order_date``
- ``store_daily_orders``: key ``(seq, order_date)``
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

import structlog

from order_analytics.exceptions import CursorMismatchError
from order_analytics.store.conditions import Condition

logger = structlog.get_logger(__name__)

ORDERS = "orders"
ORDER_STATS = "order_stats"
DAILY_ORDER_STATS = "daily_order_stats"
STORE_DAILY_ORDERS = "store_daily_orders"

KEY_SCHEMAS: Dict[str, Tuple[str, ...]] = {
    ORDERS: ("item_id",),
    ORDER_STATS: ("seq",),
    DAILY_ORDER_STATS: ("order_date",),
    STORE_DAILY_ORDERS: ("seq", "order_date"),
}

SECONDARY_INDEXES: Dict[str, Tuple[str, ...]] = {
    ORDERS: ("order_id",),
}

UNMAPPED = "UNMAPPED"

Item = Dict[str, Any]


def encode_seq(seq: Optional[str]) -> str:
    """Serialize an optional store identity to its stored form"""
    return seq if seq else UNMAPPED


def decode_seq(value: Optional[str]) -> Optional[str]:
    """Parse a stored store identity; the sentinel becomes None"""
    if not value or value == UNMAPPED:
        return None
    return value


def key_of(table: str, item: Mapping[str, Any]) -> Tuple[Any, ...]:
    """Extract the primary key tuple of an item"""
    try:
        return tuple(item[attr] for attr in KEY_SCHEMAS[table])
    except KeyError as e:
        raise ValueError(f"Item for {table} is missing key attribute {e}") from e


@dataclass(frozen=True)
class StringSet:
    """Set-typed attribute value, grown only through union-append"""
    members: FrozenSet[str] = frozenset()

    @classmethod
    def of(cls, values: Iterable[str]) -> "StringSet":
        return cls(frozenset(values))

    def union(self, other: "StringSet") -> "StringSet":
        return StringSet(self.members | other.members)

    def __len__(self) -> int:
        return len(self.members)

    def __contains__(self, value: object) -> bool:
        return value in self.members


@dataclass(frozen=True)
class ScanCursor:
    """Opaque continuation token, valid only for the query shape that issued it"""
    shape: str
    last_key: Tuple[Any, ...]


@dataclass
class Page:
    """One page of scan results"""
    items: List[Item] = field(default_factory=list)
    cursor: Optional[ScanCursor] = None


def scan_shape(table: str, condition: Optional[Condition]) -> str:
    return f"{table}|{condition.shape() if condition is not None else '*'}"


def check_cursor(table: str, condition: Optional[Condition], cursor: Optional[ScanCursor]) -> None:
    """Reject a cursor issued for a different table or filter"""
    if cursor is not None and cursor.shape != scan_shape(table, condition):
        raise CursorMismatchError(
            f"Cursor issued for '{cursor.shape}' reused for '{scan_shape(table, condition)}'"
        )


class KeyValueStore(ABC):
    """
    Storage capability consumed by the ingestion and analytics components.

    Implementations must make ``update`` atomic per key: increments are
    applied as ``x = if_not_exists(x, 0) + delta`` and set additions as
    ``ADD attr :members`` within the store, never as a client-side
    read-modify-write.
    """

    max_batch_size: int = 25

    @abstractmethod
    async def get(self, table: str, key: Mapping[str, Any]) -> Optional[Item]:
        """Point lookup by primary key"""

    @abstractmethod
    async def put(self, table: str, item: Item) -> None:
        """Insert or replace one item"""

    @abstractmethod
    async def batch_put(self, table: str, items: List[Item]) -> List[Item]:
        """
        Write up to ``max_batch_size`` items.

        Returns:
            The unprocessed remainder, empty when every item was written
        """

    @abstractmethod
    async def update(
        self,
        table: str,
        key: Mapping[str, Any],
        *,
        set_values: Optional[Mapping[str, Any]] = None,
        increments: Optional[Mapping[str, int]] = None,
        add_to_sets: Optional[Mapping[str, StringSet]] = None,
        condition: Optional[Condition] = None,
    ) -> None:
        """
        Atomic point update, creating the item if absent.

        Raises:
            ConditionFailedError: ``condition`` did not match the stored item
                (a missing item never matches)
        """

    @abstractmethod
    async def query(
        self,
        table: str,
        index: str,
        value: Any,
        condition: Optional[Condition] = None,
    ) -> List[Item]:
        """Secondary-index equality lookup, post-filtered by ``condition``"""

    @abstractmethod
    async def scan(
        self,
        table: str,
        condition: Optional[Condition] = None,
        cursor: Optional[ScanCursor] = None,
        limit: Optional[int] = None,
    ) -> Page:
        """Scan one page of a table in key order, filtered by ``condition``"""

    async def scan_all(self, table: str, condition: Optional[Condition] = None) -> List[Item]:
        """Scan a table following cursors until the continuation is null"""
        items: List[Item] = []
        cursor: Optional[ScanCursor] = None
        pages = 0
        while True:
            page = await self.scan(table, condition, cursor=cursor)
            items.extend(page.items)
            pages += 1
            cursor = page.cursor
            if cursor is None:
                break
        logger.debug("Scan drained", table=table, pages=pages, items=len(items))
        return items

    async def close(self) -> None:
        """Release backend resources"""
