"""
Per-store order heatmap over ``store_daily_orders``.
"""

from datetime import date
from typing import Dict

import structlog

from order_analytics.analytics.usage import date_range
from order_analytics.domain import Period, StoreHeatmap, StoreHeatmapRow
from order_analytics.store.base import STORE_DAILY_ORDERS, KeyValueStore
from order_analytics.store.conditions import Between

logger = structlog.get_logger(__name__)


class StoreHeatmapReader:
    """Order counts per store and day, busiest stores first"""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def read(self, start_date: date, end_date: date) -> StoreHeatmap:
        if start_date > end_date:
            start_date, end_date = end_date, start_date

        items = await self.store.scan_all(
            STORE_DAILY_ORDERS,
            Between("order_date", start_date.isoformat(), end_date.isoformat()),
        )
        counts: Dict[str, Dict[str, int]] = {}
        for item in items:
            counts.setdefault(item["seq"], {})[item["order_date"]] = item.get("order_count") or 0

        dates = [day.isoformat() for day in date_range(start_date, end_date)]
        rows = []
        for seq, by_date in counts.items():
            orders = {day: by_date.get(day, 0) for day in dates}
            rows.append(StoreHeatmapRow(seq=seq, orders=orders, total=sum(orders.values())))
        rows.sort(key=lambda row: (-row.total, row.seq))

        logger.info("Store heatmap computed", stores=len(rows), days=len(dates))
        return StoreHeatmap(
            period=Period(start_date=start_date, end_date=end_date),
            dates=dates,
            stores=rows,
        )
