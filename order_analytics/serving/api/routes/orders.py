"""
Orders API Endpoints

Order upload: deduplication, store-identity resolution and aggregation.
"""

from typing import Any, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
import structlog

from order_analytics.domain import IngestionResult
from order_analytics.ingestion import OrderIngestionService
from order_analytics.serving.api.dependencies import get_ingestion_service

router = APIRouter()
logger = structlog.get_logger(__name__)


class UploadRequest(BaseModel):
    """Upload body; orders are validated by the ingestion service"""
    orders: Optional[List[Any]] = None


@router.post("/upload", response_model=IngestionResult)
async def upload_orders(
    body: UploadRequest,
    service: OrderIngestionService = Depends(get_ingestion_service),
) -> IngestionResult:
    """
    Ingest a batch of orders.

    Resubmitted orders are reported as duplicates; an order stored without a
    store identity gets one filled in when it is resubmitted with it.
    """
    logger.info("upload_orders called", orders=len(body.orders or []))
    return await service.ingest(body.orders)
