"""
Query construction and translation.

``QueryState`` and its parts, the result types, cache-key derivation and the
server-mode parameter codec.
"""

from .state import (
    DEFAULT_PAGE_SIZE,
    FilterCriterion,
    FilterOperator,
    QueryState,
    SortDirection,
    SortSpec,
)
from .results import ColumnDescriptor, PagedResult, Row, total_pages_for
from .params import RequestDescriptor, build_cache_key, decode_query_params, encode_query_params

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "FilterCriterion",
    "FilterOperator",
    "QueryState",
    "SortDirection",
    "SortSpec",
    "ColumnDescriptor",
    "PagedResult",
    "Row",
    "total_pages_for",
    "RequestDescriptor",
    "build_cache_key",
    "decode_query_params",
    "encode_query_params",
]
