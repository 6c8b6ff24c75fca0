"""
Order Intake & Deduplication

Classifies each submitted order against the stored orders and persists the
outcome:

- NEW: no stored order shares the dedup key ``(order_id, order_time,
  payment_amount)``; a record is created
- UPDATE: the stored order has no store identity yet and the submission
  carries one; the identity is filled in, at most once
- DUPLICATE: anything else, no effect

Lookups fan out with bounded concurrency. Elements of one batch that share a
dedup key are resolved in list order, as though each earlier element had
already been stored, unless ``serialize_duplicate_keys`` is off, in which
case every element is resolved against the pre-batch state and same-key
elements may all be stored as new.
"""

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Set

import structlog

from order_analytics.domain import (
    Classification,
    Contribution,
    DedupKey,
    IntakeOutcome,
    OrderRecord,
    OrderSubmission,
    SeqResolution,
    to_timestamp,
)
from order_analytics.exceptions import ConditionFailedError, UnprocessedItemsError
from order_analytics.store.base import ORDERS, UNMAPPED, Item, KeyValueStore
from order_analytics.store.conditions import Eq

logger = structlog.get_logger(__name__)


def classify(order: OrderSubmission, existing: Optional[OrderRecord]) -> Classification:
    """Classify a submission against the stored order sharing its dedup key"""
    if existing is None:
        return Classification.NEW
    if existing.seq is None and order.seq is not None:
        return Classification.UPDATE
    return Classification.DUPLICATE


def new_item_id(order: OrderSubmission, now: datetime) -> str:
    return f"{order.order_id}_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}"


class OrderIntake:
    """
    Deduplicating order writer.

    Example:
        intake = OrderIntake(store, max_concurrency=8)
        outcome = await intake.process(orders, now=utc_now())
        outcome.contributions  # attributed orders for the accumulator
    """

    def __init__(
        self,
        store: KeyValueStore,
        max_concurrency: int = 8,
        serialize_duplicate_keys: bool = True,
        batch_write_max_attempts: int = 5,
        batch_write_backoff_ms: int = 50,
    ):
        self.store = store
        self.max_concurrency = max_concurrency
        self.serialize_duplicate_keys = serialize_duplicate_keys
        self.batch_write_max_attempts = batch_write_max_attempts
        self.batch_write_backoff_ms = batch_write_backoff_ms

    # =========================================================================
    # LOOKUP
    # =========================================================================

    async def lookup(self, order: OrderSubmission) -> Optional[OrderRecord]:
        """Find the stored order sharing the submission's dedup key"""
        items = await self.store.query(
            ORDERS,
            "order_id",
            order.order_id,
            Eq("order_time", order.order_time) & Eq("payment_amount", order.amount),
        )
        return OrderRecord.from_item(items[0]) if items else None

    async def _lookup_all(self, orders: Sequence[OrderSubmission]) -> List[Optional[OrderRecord]]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(order: OrderSubmission) -> Optional[OrderRecord]:
            async with semaphore:
                return await self.lookup(order)

        if self.serialize_duplicate_keys:
            # One lookup per distinct key; later same-key elements reuse it
            first_index: Dict[DedupKey, int] = {}
            for index, order in enumerate(orders):
                first_index.setdefault(order.dedup_key, index)
            found = await asyncio.gather(*(bounded(orders[i]) for i in first_index.values()))
            by_key = dict(zip(first_index.keys(), found))
            return [by_key[order.dedup_key] for order in orders]

        return list(await asyncio.gather(*(bounded(order) for order in orders)))

    # =========================================================================
    # PROCESS
    # =========================================================================

    async def process(
        self,
        orders: Sequence[OrderSubmission],
        now: datetime,
        outcome: Optional[IntakeOutcome] = None,
    ) -> IntakeOutcome:
        """
        Classify and persist a batch of submissions.

        Args:
            orders: Submissions in upload order
            now: Timestamp stamped on created and updated records
            outcome: Accumulates results as writes land; pass one in to keep
                what was persisted when a later write fails

        Returns:
            IntakeOutcome with counts and the contributions of every
            persisted order whose store identity is known after this call

        Raises:
            StoreError: A write failed; ``outcome`` still holds everything
                persisted before and alongside the failure
        """
        outcome = outcome if outcome is not None else IntakeOutcome()
        timestamp = to_timestamp(now)
        snapshot = await self._lookup_all(orders)

        new_records: List[OrderRecord] = []
        resolutions: List[SeqResolution] = []
        in_batch: Dict[DedupKey, OrderRecord] = {}
        pending_ids: Set[str] = set()
        seen_keys: Set[DedupKey] = set()

        for order, stored in zip(orders, snapshot):
            key = order.dedup_key
            if not self.serialize_duplicate_keys and key in seen_keys:
                logger.warning(
                    "Duplicate dedup key within batch resolved against pre-batch state",
                    order_id=order.order_id,
                    order_time=order.order_time,
                )
            seen_keys.add(key)

            current = in_batch.get(key, stored) if self.serialize_duplicate_keys else stored
            decision = classify(order, current)

            if decision is Classification.NEW:
                record = OrderRecord.from_submission(new_item_id(order, now), order, timestamp)
                new_records.append(record)
                pending_ids.add(record.item_id)
                in_batch[key] = record

            elif decision is Classification.UPDATE:
                if current.item_id in pending_ids:
                    # Not written yet, fill the identity before the batch write
                    current.seq = order.seq
                    current.updated_at = timestamp
                    outcome.updated += 1
                else:
                    resolutions.append(
                        SeqResolution(current.item_id, order.seq, current.order_id, current.order_date)
                    )
                    in_batch[key] = replace(current, seq=order.seq)

            else:
                outcome.duplicates += 1

        await self._write_new(new_records, outcome)
        await self._apply_resolutions(resolutions, timestamp, outcome)

        logger.info(
            "Order intake completed",
            received=len(orders),
            saved=outcome.saved,
            updated=outcome.updated,
            duplicates=outcome.duplicates,
            contributions=len(outcome.contributions),
        )
        return outcome

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    async def _write_new(self, records: List[OrderRecord], outcome: IntakeOutcome) -> None:
        """Write new records chunk by chunk; each chunk counts once fully written"""
        if not records:
            return
        chunk_size = self.store.max_batch_size
        chunks = [records[i:i + chunk_size] for i in range(0, len(records), chunk_size)]
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(chunk: List[OrderRecord]) -> None:
            async with semaphore:
                await self.write_chunk([record.to_item() for record in chunk])
            outcome.saved += len(chunk)
            outcome.contributions.extend(
                Contribution(record.seq, record.order_date, record.order_id)
                for record in chunk
                if record.seq is not None
            )

        results = await asyncio.gather(*(bounded(chunk) for chunk in chunks), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        logger.debug(
            "New orders written",
            records=len(records),
            chunks=len(chunks),
            failed_chunks=len(failures),
        )
        if failures:
            raise failures[0]

    async def write_chunk(self, chunk: List[Item]) -> None:
        """
        Batch-write one chunk, re-submitting unprocessed items with backoff.

        Raises:
            UnprocessedItemsError: Items remain after the attempt budget
        """
        pending = chunk
        for attempt in range(1, self.batch_write_max_attempts + 1):
            pending = await self.store.batch_put(ORDERS, pending)
            if not pending:
                return
            logger.warning(
                "Batch write left unprocessed items",
                attempt=attempt,
                max_attempts=self.batch_write_max_attempts,
                remaining=len(pending),
            )
            if attempt < self.batch_write_max_attempts:
                await asyncio.sleep(self.batch_write_backoff_ms * (2 ** (attempt - 1)) / 1000)

        logger.error(
            "Batch write retry budget exhausted",
            attempts=self.batch_write_max_attempts,
            remaining=len(pending),
        )
        raise UnprocessedItemsError(ORDERS, pending, self.batch_write_max_attempts)

    async def _apply_resolutions(
        self,
        resolutions: List[SeqResolution],
        timestamp: str,
        outcome: IntakeOutcome,
    ) -> None:
        """Fill store identities; only resolutions this call applied contribute"""
        if not resolutions:
            return
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def resolve(resolution: SeqResolution) -> None:
            async with semaphore:
                try:
                    await self.store.update(
                        ORDERS,
                        {"item_id": resolution.item_id},
                        set_values={"seq": resolution.seq, "updated_at": timestamp},
                        condition=Eq("seq", UNMAPPED),
                    )
                except ConditionFailedError:
                    logger.info(
                        "Store identity already resolved by another call",
                        item_id=resolution.item_id,
                    )
                    outcome.duplicates += 1
                    return
            outcome.updated += 1
            outcome.contributions.append(
                Contribution(resolution.seq, resolution.order_date, resolution.order_id)
            )

        results = await asyncio.gather(*(resolve(r) for r in resolutions), return_exceptions=True)
        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            logger.error(
                "Store identity updates failed",
                failed=len(failures),
                attempted=len(resolutions),
            )
            raise failures[0]
