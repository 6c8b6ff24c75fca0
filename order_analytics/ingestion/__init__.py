"""
Order Ingestion Module
"""
from .accumulator import AggregateAccumulator, AggregateDeltas
from .intake import OrderIntake, classify
from .service import OrderIngestionService

__all__ = [
    "AggregateAccumulator",
    "AggregateDeltas",
    "OrderIntake",
    "classify",
    "OrderIngestionService",
]
