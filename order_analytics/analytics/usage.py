"""
Usage Aggregation Reader

Reconstructs the daily active-store series for a date range:

- ``active(d)``: distinct stores with at least one order in the trailing
  window ``[d - 6, d]``, rebuilt from ``store_daily_orders`` only
- ``order_count``, ``new_installs``, ``new_churns``: per-day values from
  ``daily_order_stats``, 0 when missing
- ``cumulative_installed``, ``cumulative_churned``: per-day values,
  forward-filled across days without one
"""

import asyncio
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Mapping, Optional, Set

import structlog

from order_analytics.domain import DailyUsage, Period, UsageReport, UsageSummary
from order_analytics.store.base import DAILY_ORDER_STATS, STORE_DAILY_ORDERS, KeyValueStore
from order_analytics.store.conditions import Between, Gt

logger = structlog.get_logger(__name__)

CUMULATIVE_FIELDS = ("cumulative_installed", "cumulative_churned")


def date_range(start: date, end: date) -> List[date]:
    """Every date from start to end, inclusive"""
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def active_counts(
    stores_by_date: Mapping[str, Set[str]],
    dates: List[date],
    window_days: int = 7,
) -> List[int]:
    """Distinct stores over the trailing window ending on each date"""
    counts = []
    for day in dates:
        active: Set[str] = set()
        for offset in range(window_days):
            active |= stores_by_date.get((day - timedelta(days=offset)).isoformat(), set())
        counts.append(len(active))
    return counts


def summarize(active: List[int], start: date, end: date) -> UsageSummary:
    """Summary over the days that had any active store"""
    with_data = [count for count in active if count > 0]
    if with_data:
        mean = Decimal(sum(with_data)) / Decimal(len(with_data))
        avg_active = float(mean.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
    else:
        avg_active = 0.0
    return UsageSummary(
        period=Period(start_date=start, end_date=end),
        total_days=len(with_data),
        avg_daily_active=avg_active,
        max_daily_active=max(active, default=0),
    )


class UsageAggregationReader:
    """
    Daily usage series over the aggregate tables.

    Example:
        reader = UsageAggregationReader(store)
        report = await reader.read(date(2024, 1, 1), date(2024, 1, 31))
    """

    def __init__(self, store: KeyValueStore, window_days: int = 7):
        self.store = store
        self.window_days = window_days

    async def _stores_by_date(self, window_start: date, end: date) -> Dict[str, Set[str]]:
        items = await self.store.scan_all(
            STORE_DAILY_ORDERS,
            Between("order_date", window_start.isoformat(), end.isoformat()) & Gt("order_count", 0),
        )
        stores: Dict[str, Set[str]] = {}
        for item in items:
            stores.setdefault(item["order_date"], set()).add(item["seq"])
        return stores

    async def _daily_stats(self, start: date, end: date) -> Dict[str, dict]:
        items = await self.store.scan_all(
            DAILY_ORDER_STATS,
            Between("order_date", start.isoformat(), end.isoformat()),
        )
        return {item["order_date"]: item for item in items}

    async def read(self, start_date: date, end_date: date) -> UsageReport:
        """
        Build the daily usage report.

        Args:
            start_date: First reported day (swapped with end_date if later)
            end_date: Last reported day, inclusive

        Returns:
            UsageReport with one entry per day and the summary
        """
        if start_date > end_date:
            start_date, end_date = end_date, start_date
        window_start = start_date - timedelta(days=self.window_days - 1)

        stores_by_date, stats = await asyncio.gather(
            self._stores_by_date(window_start, end_date),
            self._daily_stats(start_date, end_date),
        )

        dates = date_range(start_date, end_date)
        active = active_counts(stores_by_date, dates, self.window_days)

        daily_usage = []
        carried: Dict[str, int] = {name: 0 for name in CUMULATIVE_FIELDS}
        for day, active_count in zip(dates, active):
            row: Optional[dict] = stats.get(day.isoformat())
            for name in CUMULATIVE_FIELDS:
                if row is not None and row.get(name) is not None:
                    carried[name] = row[name]
            daily_usage.append(DailyUsage(
                date=day,
                active=active_count,
                order_count=(row or {}).get("order_count") or 0,
                new_installs=(row or {}).get("new_installs") or 0,
                new_churns=(row or {}).get("new_churns") or 0,
                **carried,
            ))

        summary = summarize(active, start_date, end_date)
        logger.info(
            "Daily usage computed",
            start_date=str(start_date),
            end_date=str(end_date),
            days=len(dates),
            days_with_data=summary.total_days,
        )
        return UsageReport(summary=summary, daily_usage=daily_usage)
