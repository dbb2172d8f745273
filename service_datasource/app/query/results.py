"""
Result types shared by the normalizer, the client engine and the gateway.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .state import QueryState

Row = Dict[str, Any]


def total_pages_for(total: int, size: int) -> int:
    return math.ceil(total / size) if size > 0 else 0


class PagedResult(BaseModel):
    """One page of rows plus the count of rows that matched before slicing."""

    model_config = ConfigDict(frozen=True)

    rows: List[Row] = Field(default_factory=list)
    total: int = Field(default=0, ge=0)
    page: int = Field(default=0, ge=0)
    size: int = Field(default=10, gt=0)
    total_pages: int = Field(default=0, ge=0)

    @classmethod
    def empty(cls, query: QueryState) -> "PagedResult":
        return cls(rows=[], total=0, page=query.page, size=query.size, total_pages=0)

    @classmethod
    def from_universe(cls, rows: Sequence[Row], query: QueryState) -> "PagedResult":
        """Slice ``[page*size, page*size+size)`` out of the full matching row set."""
        start = query.offset
        return cls(
            rows=list(rows[start:start + query.size]),
            total=len(rows),
            page=query.page,
            size=query.size,
            total_pages=total_pages_for(len(rows), query.size),
        )


class ColumnDescriptor(BaseModel):
    """Column metadata owned by the UI; only ``key`` matters to queries."""

    key: str
    sortable: bool = True
    filterable: bool = True
    value_kind: Optional[str] = None
