"""
Demo rows API.

Serves a deterministic generated dataset two ways:

- ``GET /rows``: a server-side querying source. Accepts the same GET
  parameters the gateway encodes in server mode and answers with a
  ``{"data", "total", "page", "size", "totalPages"}`` envelope.
- ``GET /rows/all``: a bulk source returning the whole dataset as a bare
  array, for client-mode tables.
"""

from datetime import date, timedelta
from typing import Any, Dict, List, Sequence

from fastapi import APIRouter, Request

from shared.logging import get_logger

from ..engine import ClientQueryEngine
from ..query import Row, decode_query_params


_FIRST_NAMES = ["John", "Jane", "Bob", "Alice", "Charlie", "Diana", "Edward", "Fiona", "George", "Hannah", "Ivan"]
_LAST_NAMES = ["Doe", "Smith", "Johnson", "Brown", "Wilson", "Taylor", "Clark", "Lewis", "Walker"]
_STATUSES = ["Active", "Inactive", "Pending", "Completed"]
_PRIORITIES = ["Low", "Medium", "High", "Critical"]
_DEPARTMENTS = ["Engineering", "Marketing", "Sales", "HR", "Finance"]


def generate_rows(count: int) -> List[Row]:
    """Deterministic employee-like rows with mixed value kinds."""
    rows: List[Row] = []
    first_day = date(2024, 1, 1)
    for index in range(count):
        first = _FIRST_NAMES[index % len(_FIRST_NAMES)]
        last = _LAST_NAMES[(index * 7) % len(_LAST_NAMES)]
        rows.append({
            "id": str(index + 1),
            "name": f"{first} {last}",
            "email": f"{first.lower()}.{last.lower()}{index + 1}@example.com",
            "age": 22 + (index * 13) % 40,
            "salary": 40000 + ((index * 7919) % 60) * 1000,
            "status": _STATUSES[index % len(_STATUSES)],
            "priority": _PRIORITIES[(index * 3) % len(_PRIORITIES)],
            "department": _DEPARTMENTS[(index * 2) % len(_DEPARTMENTS)],
            "joinDate": (first_day + timedelta(days=(index * 11) % 365)).isoformat(),
            "isActive": index % 4 != 0,
            "score": round(50 + ((index * 37) % 500) / 10, 1),
            "description": f"{_DEPARTMENTS[(index * 2) % len(_DEPARTMENTS)]} team member #{index + 1}",
        })
    return rows


def create_rows_router(rows: Sequence[Row], engine: ClientQueryEngine) -> APIRouter:
    """Router serving ``rows`` in server mode and as a bulk array."""
    router = APIRouter()
    logger = get_logger("datasource.mock_api")
    dataset = tuple(rows)

    @router.get("/rows")
    async def query_rows(request: Request) -> Dict[str, Any]:
        query = decode_query_params(request.query_params.multi_items())
        result = engine.execute(dataset, query)
        logger.debug("Mock rows queried", total=result.total, page=query.page, size=query.size)
        return {
            "data": result.rows,
            "total": result.total,
            "page": result.page,
            "size": result.size,
            "totalPages": result.total_pages,
        }

    @router.get("/rows/all")
    async def all_rows() -> List[Row]:
        return list(dataset)

    return router
