"""
Store Order Analytics

Order ingestion with deduplication and incremental aggregation, and the
daily active-store read path built on those aggregates.
"""

__version__ = "1.0.0"
