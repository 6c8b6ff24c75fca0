"""
Analytics Module
"""
from .heatmap import StoreHeatmapReader
from .usage import UsageAggregationReader, active_counts, summarize

__all__ = [
    "StoreHeatmapReader",
    "UsageAggregationReader",
    "active_counts",
    "summarize",
]
