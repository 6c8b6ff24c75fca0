"""
In-memory key-value store.

Used for local development and as the test double for the pipeline. Every
mutation runs without yielding to the event loop, so updates are atomic per
key for any number of concurrent callers on the same loop.
"""

import copy
from typing import Any, Dict, List, Mapping, Optional, Tuple

import structlog

from order_analytics.exceptions import ConditionFailedError
from order_analytics.store.base import (
    KEY_SCHEMAS,
    SECONDARY_INDEXES,
    Item,
    KeyValueStore,
    Page,
    ScanCursor,
    StringSet,
    check_cursor,
    key_of,
    scan_shape,
)
from order_analytics.store.conditions import Condition

logger = structlog.get_logger(__name__)


class MemoryKeyValueStore(KeyValueStore):
    """
    Dict-backed store with the same contract as the SQL adapter.

    Args:
        max_batch_size: Max items accepted by one ``batch_put`` call
        scan_page_size: Items examined per scan page
        batch_write_capacity: If set, at most this many items of each
            ``batch_put`` call are written; the rest come back unprocessed
    """

    def __init__(
        self,
        max_batch_size: int = 25,
        scan_page_size: int = 1000,
        batch_write_capacity: Optional[int] = None,
    ):
        self.max_batch_size = max_batch_size
        self.scan_page_size = scan_page_size
        self.batch_write_capacity = batch_write_capacity
        self._tables: Dict[str, Dict[Tuple[Any, ...], Item]] = {name: {} for name in KEY_SCHEMAS}
        self.batch_put_calls = 0
        self.query_calls = 0

    def _table(self, table: str) -> Dict[Tuple[Any, ...], Item]:
        try:
            return self._tables[table]
        except KeyError:
            raise ValueError(f"Unknown table: {table}") from None

    def items(self, table: str) -> List[Item]:
        """Snapshot of every item in a table, in key order"""
        rows = self._table(table)
        return [copy.deepcopy(rows[k]) for k in sorted(rows)]

    async def get(self, table: str, key: Mapping[str, Any]) -> Optional[Item]:
        item = self._table(table).get(key_of(table, key))
        return copy.deepcopy(item) if item is not None else None

    async def put(self, table: str, item: Item) -> None:
        self._table(table)[key_of(table, item)] = copy.deepcopy(item)

    async def batch_put(self, table: str, items: List[Item]) -> List[Item]:
        if len(items) > self.max_batch_size:
            raise ValueError(
                f"Batch of {len(items)} exceeds max batch size {self.max_batch_size}"
            )
        self.batch_put_calls += 1
        rows = self._table(table)
        capacity = len(items) if self.batch_write_capacity is None else self.batch_write_capacity
        for item in items[:capacity]:
            rows[key_of(table, item)] = copy.deepcopy(item)
        return [copy.deepcopy(item) for item in items[capacity:]]

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
        rows = self._table(table)
        item_key = key_of(table, key)
        current = rows.get(item_key)

        if condition is not None and (current is None or not condition.matches(current)):
            raise ConditionFailedError(table, dict(key))

        item = dict(current) if current is not None else {
            attr: key[attr] for attr in KEY_SCHEMAS[table]
        }
        for attr, value in (set_values or {}).items():
            item[attr] = value
        for attr, delta in (increments or {}).items():
            item[attr] = (item.get(attr) or 0) + delta
        for attr, members in (add_to_sets or {}).items():
            existing = item.get(attr) or StringSet()
            item[attr] = existing.union(members)
        rows[item_key] = item

    async def query(
        self,
        table: str,
        index: str,
        value: Any,
        condition: Optional[Condition] = None,
    ) -> List[Item]:
        if index not in SECONDARY_INDEXES.get(table, ()):
            raise ValueError(f"No index {index} on {table}")
        self.query_calls += 1
        rows = self._table(table)
        return [
            copy.deepcopy(rows[k])
            for k in sorted(rows)
            if rows[k].get(index) == value and (condition is None or condition.matches(rows[k]))
        ]

    async def scan(
        self,
        table: str,
        condition: Optional[Condition] = None,
        cursor: Optional[ScanCursor] = None,
        limit: Optional[int] = None,
    ) -> Page:
        check_cursor(table, condition, cursor)
        rows = self._table(table)
        limit = limit or self.scan_page_size

        keys = sorted(rows)
        if cursor is not None:
            keys = [k for k in keys if k > cursor.last_key]

        examined = keys[:limit]
        page = Page(items=[
            copy.deepcopy(rows[k])
            for k in examined
            if condition is None or condition.matches(rows[k])
        ])
        if len(keys) > limit:
            page.cursor = ScanCursor(shape=scan_shape(table, condition), last_key=examined[-1])
        return page
