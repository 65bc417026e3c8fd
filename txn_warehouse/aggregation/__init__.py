"""
Summary Aggregation Module
"""
from .definitions import AGGREGATES, AggregateDefinition, GroupTotal, age_band
from .maintainer import AggregateMaintainer, RefreshResult, build_summary_rows
from .readers import export_aggregates, read_aggregate

__all__ = [
    "AGGREGATES",
    "AggregateDefinition",
    "GroupTotal",
    "age_band",
    "AggregateMaintainer",
    "RefreshResult",
    "build_summary_rows",
    "export_aggregates",
    "read_aggregate",
]
