"""
Analytics API Endpoints

Daily active-store usage and per-store order heatmap.
"""

from datetime import date, timedelta
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends
import structlog

from order_analytics.analytics import StoreHeatmapReader, UsageAggregationReader
from order_analytics.config import Settings
from order_analytics.domain import utc_now
from order_analytics.serving.api.dependencies import (
    get_app_settings,
    get_heatmap_reader,
    get_usage_reader,
)

router = APIRouter()
logger = structlog.get_logger(__name__)


def resolve_range(
    start_date: Optional[date],
    end_date: Optional[date],
    default_days: int,
) -> Tuple[date, date]:
    """Fill missing bounds: end defaults to the UTC date, start to that date minus the default span"""
    today = utc_now().date()
    end_date = end_date or today
    start_date = start_date or today - timedelta(days=default_days)
    return start_date, end_date


@router.get("/daily-usage")
async def get_daily_usage(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    reader: UsageAggregationReader = Depends(get_usage_reader),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    """
    Daily active stores (trailing 7-day distinct stores) with order and
    installation counters.
    """
    logger.info("get_daily_usage called", start_date=str(start_date), end_date=str(end_date))

    start_date, end_date = resolve_range(start_date, end_date, settings.analytics.default_usage_days)
    report = await reader.read(start_date, end_date)

    return {"success": True, "data": report.model_dump(mode="json")}


@router.get("/store-heatmap")
async def get_store_heatmap(
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    reader: StoreHeatmapReader = Depends(get_heatmap_reader),
    settings: Settings = Depends(get_app_settings),
) -> Dict[str, Any]:
    """Orders per store and day over the range"""
    logger.info("get_store_heatmap called", start_date=str(start_date), end_date=str(end_date))

    start_date, end_date = resolve_range(start_date, end_date, settings.analytics.default_heatmap_days)
    heatmap = await reader.read(start_date, end_date)

    return {"success": True, "data": heatmap.model_dump(mode="json")}
