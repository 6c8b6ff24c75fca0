"""
Aggregate Accumulator

Turns the attributed orders of one intake call into additive deltas for the
three aggregate families and applies them with the store's atomic
increment-or-initialize and set-union updates:

- per seq (``order_stats``): order_count, customer_count, last_order_date
- per day (``daily_order_stats``): order_count, store_seqs
- per seq and day (``store_daily_orders``): order_count

Families are applied concurrently and independently; there is no atomicity
across them.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Set, Tuple

import structlog

from order_analytics.domain import Contribution, normalize_date, to_timestamp
from order_analytics.store.base import (
    DAILY_ORDER_STATS,
    ORDER_STATS,
    STORE_DAILY_ORDERS,
    KeyValueStore,
    StringSet,
)

logger = structlog.get_logger(__name__)


@dataclass
class SeqDelta:
    order_count: int = 0
    order_ids: Set[str] = field(default_factory=set)


@dataclass
class DayDelta:
    order_count: int = 0
    seqs: Set[str] = field(default_factory=set)


@dataclass
class AggregateDeltas:
    """Grouped increments for one call, keyed per family"""
    per_seq: Dict[str, SeqDelta] = field(default_factory=dict)
    per_day: Dict[str, DayDelta] = field(default_factory=dict)
    per_store_day: Dict[Tuple[str, str], int] = field(default_factory=dict)

    @classmethod
    def from_contributions(cls, contributions: Iterable[Contribution]) -> "AggregateDeltas":
        deltas = cls()
        for contribution in contributions:
            seq_delta = deltas.per_seq.setdefault(contribution.seq, SeqDelta())
            seq_delta.order_count += 1
            seq_delta.order_ids.add(contribution.order_id)

            # Orders without a usable date only count per seq
            order_date = normalize_date(contribution.order_date)
            if not order_date:
                continue

            day_delta = deltas.per_day.setdefault(order_date, DayDelta())
            day_delta.order_count += 1
            day_delta.seqs.add(contribution.seq)

            key = (contribution.seq, order_date)
            deltas.per_store_day[key] = deltas.per_store_day.get(key, 0) + 1
        return deltas


class AggregateAccumulator:
    """
    Applies contribution deltas to the aggregate tables.

    ``customer_count`` grows by the number of distinct order ids per seq in
    each call, so the same customer ordering across several uploads is
    counted once per upload.
    """

    def __init__(self, store: KeyValueStore, max_concurrency: int = 8):
        self.store = store
        self.max_concurrency = max_concurrency

    async def apply(self, contributions: List[Contribution], now: datetime) -> AggregateDeltas:
        """
        Apply one call's contributions.

        Args:
            contributions: Attributed orders from the intake
            now: Call time; its UTC date becomes ``last_order_date``

        Returns:
            The deltas that were applied
        """
        deltas = AggregateDeltas.from_contributions(contributions)
        if not deltas.per_seq:
            return deltas

        timestamp = to_timestamp(now)
        today = timestamp.split("T")[0]
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def bounded(coro):
            async with semaphore:
                await coro

        updates = []
        for seq, delta in deltas.per_seq.items():
            updates.append(self.store.update(
                ORDER_STATS,
                {"seq": seq},
                set_values={"last_order_date": today, "updated_at": timestamp},
                increments={
                    "order_count": delta.order_count,
                    "customer_count": len(delta.order_ids),
                },
            ))
        for order_date, delta in deltas.per_day.items():
            updates.append(self.store.update(
                DAILY_ORDER_STATS,
                {"order_date": order_date},
                set_values={"updated_at": timestamp},
                increments={"order_count": delta.order_count},
                add_to_sets={"store_seqs": StringSet.of(delta.seqs)},
            ))
        for (seq, order_date), count in deltas.per_store_day.items():
            updates.append(self.store.update(
                STORE_DAILY_ORDERS,
                {"seq": seq, "order_date": order_date},
                set_values={"updated_at": timestamp},
                increments={"order_count": count},
            ))

        await asyncio.gather(*(bounded(update) for update in updates))

        logger.info(
            "Aggregates updated",
            seqs=len(deltas.per_seq),
            days=len(deltas.per_day),
            store_days=len(deltas.per_store_day),
        )
        return deltas
