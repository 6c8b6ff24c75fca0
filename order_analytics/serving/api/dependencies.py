"""
FastAPI dependencies wiring the pipeline components to the application store.
"""

from fastapi import Depends, Request

from order_analytics.analytics import StoreHeatmapReader, UsageAggregationReader
from order_analytics.config import Settings, get_settings
from order_analytics.ingestion import OrderIngestionService
from order_analytics.store.base import KeyValueStore


def get_store(request: Request) -> KeyValueStore:
    """Store opened by the application lifespan"""
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_ingestion_service(
    store: KeyValueStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> OrderIngestionService:
    return OrderIngestionService(store, settings=settings)


def get_usage_reader(
    store: KeyValueStore = Depends(get_store),
    settings: Settings = Depends(get_app_settings),
) -> UsageAggregationReader:
    return UsageAggregationReader(store, window_days=settings.analytics.active_window_days)


def get_heatmap_reader(store: KeyValueStore = Depends(get_store)) -> StoreHeatmapReader:
    return StoreHeatmapReader(store)
