"""
Test Suite Configuration
"""
from datetime import datetime, timezone
from typing import Any, Dict, List

import pytest

from order_analytics.config import Settings
from order_analytics.config.settings import IntakeSettings, StoreSettings
from order_analytics.database import create_engine, create_tables
from order_analytics.ingestion import OrderIngestionService
from order_analytics.store import MemoryKeyValueStore
from order_analytics.store.sql import SQLKeyValueStore

NOW = datetime(2024, 1, 11, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed call time for ingestion"""
    return NOW


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        APP_ENV="testing",
        DEBUG=True,
        store=StoreSettings(backend="memory", batch_write_backoff_ms=0),
        intake=IntakeSettings(max_concurrency=4),
    )


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    """In-memory store with a small scan page so reads span several pages"""
    return MemoryKeyValueStore(scan_page_size=2)


@pytest.fixture(params=["memory", "sql"])
async def store(request, tmp_path):
    """Each store backend in turn"""
    if request.param == "memory":
        yield MemoryKeyValueStore(scan_page_size=2)
        return

    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'store.db'}")
    await create_tables(engine)
    yield SQLKeyValueStore(engine, scan_page_size=2)
    await engine.dispose()


@pytest.fixture
def service(store, test_settings) -> OrderIngestionService:
    """Ingestion service over the parametrized store"""
    return OrderIngestionService(store, settings=test_settings)


def _order(order_id: str, **overrides: Any) -> Dict[str, Any]:
    order = {
        "order_id": order_id,
        "order_time": "2024-01-10 12:00:00",
        "payment_amount": 15000,
        "store_name_csv": "Gangnam Branch",
        "payment_status": "PAID",
        "coupon_discount": 0,
        "payment_time": "2024-01-10 12:00:05",
    }
    order.update(overrides)
    return order


@pytest.fixture
def make_order():
    """Factory for raw order payloads; defaults to a paid 2024-01-10 order"""
    return _order


@pytest.fixture
def sample_orders() -> List[Dict[str, Any]]:
    """Three orders for store S1 on 2024-01-10"""
    return [
        _order("A", seq="S1"),
        _order("B", seq="S1", order_time="2024-01-10 13:15:00"),
        _order("C", seq="S1", order_time="2024-01-10 18:40:00", payment_amount=8200),
    ]
