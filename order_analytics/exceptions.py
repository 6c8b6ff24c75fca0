"""
Exception hierarchy for the order analytics pipeline.
"""

from typing import Any, Dict, List


class OrderAnalyticsError(Exception):
    """Base class for all pipeline errors"""


class IngestionValidationError(OrderAnalyticsError):
    """Ingestion request rejected before any write"""


class StoreError(OrderAnalyticsError):
    """Key-value store operation failed"""


class ConditionFailedError(StoreError):
    """Conditional update did not match the stored item"""

    def __init__(self, table: str, key: Dict[str, Any]):
        super().__init__(f"Condition failed on {table} for key {key}")
        self.table = table
        self.key = key


class UnprocessedItemsError(StoreError):
    """Batched put still had unprocessed items after the retry budget"""

    def __init__(self, table: str, items: List[Dict[str, Any]], attempts: int):
        super().__init__(
            f"{len(items)} item(s) left unprocessed in {table} after {attempts} attempt(s)"
        )
        self.table = table
        self.items = items
        self.attempts = attempts


class CursorMismatchError(StoreError):
    """Scan cursor reused with a different table or filter"""
