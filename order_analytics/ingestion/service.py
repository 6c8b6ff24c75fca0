"""
Order ingestion service: validation, intake, then aggregation.
"""

from datetime import datetime
from typing import Any, Mapping, Optional, Sequence, Union

import structlog
from pydantic import ValidationError

from order_analytics.config import Settings, get_settings
from order_analytics.domain import IngestionResult, IngestRequest, IntakeOutcome, OrderSubmission, utc_now
from order_analytics.exceptions import IngestionValidationError, StoreError
from order_analytics.ingestion.accumulator import AggregateAccumulator
from order_analytics.ingestion.intake import OrderIntake
from order_analytics.store.base import KeyValueStore

logger = structlog.get_logger(__name__)

RawOrder = Union[OrderSubmission, Mapping[str, Any]]


class OrderIngestionService:
    """
    Entry point for order uploads.

    Example:
        service = OrderIngestionService(store)
        result = await service.ingest([{"order_id": "A", "order_time": "2024-01-10 12:00:00", ...}])
    """

    def __init__(
        self,
        store: KeyValueStore,
        intake: Optional[OrderIntake] = None,
        accumulator: Optional[AggregateAccumulator] = None,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self.store = store
        self.intake = intake or OrderIntake(
            store,
            max_concurrency=settings.intake.max_concurrency,
            serialize_duplicate_keys=settings.intake.serialize_duplicate_keys,
            batch_write_max_attempts=settings.store.batch_write_max_attempts,
            batch_write_backoff_ms=settings.store.batch_write_backoff_ms,
        )
        self.accumulator = accumulator or AggregateAccumulator(
            store,
            max_concurrency=settings.intake.max_concurrency,
        )

    @staticmethod
    def validate(orders: Optional[Sequence[RawOrder]]) -> Sequence[OrderSubmission]:
        """
        Validate raw orders before anything is written.

        Raises:
            IngestionValidationError: Missing or empty list, or a malformed order
        """
        if not orders:
            raise IngestionValidationError("No orders supplied")
        if all(isinstance(order, OrderSubmission) for order in orders):
            return list(orders)
        try:
            request = IngestRequest.model_validate({"orders": [
                order.model_dump() if isinstance(order, OrderSubmission) else order
                for order in orders
            ]})
        except ValidationError as e:
            raise IngestionValidationError(f"Invalid order data: {e.error_count()} error(s)") from e
        return request.orders

    async def ingest(
        self,
        orders: Optional[Sequence[RawOrder]],
        now: Optional[datetime] = None,
    ) -> IngestionResult:
        """
        Deduplicate, persist and aggregate a batch of orders.

        Args:
            orders: Raw orders or validated submissions, in upload order
            now: Override the call time

        Returns:
            IngestionResult with saved/updated/duplicate counts and the
            number of distinct seqs whose aggregates changed
        """
        submissions = self.validate(orders)
        now = now or utc_now()

        outcome = IntakeOutcome()
        try:
            await self.intake.process(submissions, now, outcome=outcome)
        except StoreError:
            if outcome.contributions:
                # Persisted orders are deduplicated on retry and never aggregated again
                logger.warning(
                    "Intake failed part-way, aggregating persisted orders",
                    saved=outcome.saved,
                    updated=outcome.updated,
                    contributions=len(outcome.contributions),
                )
                await self.accumulator.apply(outcome.contributions, now)
            raise

        deltas = await self.accumulator.apply(outcome.contributions, now)

        result = IngestionResult(
            success=True,
            message=f"{outcome.saved} saved, {outcome.updated} updated, {outcome.duplicates} duplicates",
            saved=outcome.saved,
            updated=outcome.updated,
            duplicates=outcome.duplicates,
            stats_updated=len(deltas.per_seq),
        )
        logger.info(
            "Orders ingested",
            saved=result.saved,
            updated=result.updated,
            duplicates=result.duplicates,
            stats_updated=result.stats_updated,
        )
        return result
