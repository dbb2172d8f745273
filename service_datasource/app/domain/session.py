"""
Table session: the UI-facing state holder for one table.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Union

from shared.logging import get_logger

from ..query import ColumnDescriptor, DEFAULT_PAGE_SIZE, QueryState, Row, SortDirection
from .gateway import QueryGateway, QueryOutcome


class TableSession:
    """Holds the current query of a table and the last page it produced.

    Every change builds a new ``QueryState`` and runs it through the gateway.
    Pending loads are not cancelled by newer ones; whichever finishes last
    sets the visible state. ``loading`` stays set while any load is pending.
    """

    def __init__(
        self,
        gateway: QueryGateway,
        endpoint: str,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        columns: Optional[Iterable[ColumnDescriptor]] = None,
    ):
        self.gateway = gateway
        self.endpoint = endpoint
        self.page_size = page_size
        self.columns: Dict[str, ColumnDescriptor] = {column.key: column for column in (columns or [])}
        self.logger = get_logger("datasource.session")

        self.query = QueryState(size=page_size)
        self.loading = False
        self.error: Optional[str] = None
        self.rows: List[Row] = []
        self.total = 0
        self.total_pages = 0
        self.last_outcome: Optional[QueryOutcome] = None
        self._pending = 0

    async def load(self, query: Optional[QueryState] = None) -> QueryOutcome:
        """Load (or replace) the current query."""
        if query is not None:
            self.query = query
        return await self._run(self.query)

    async def change_page(self, page: int, size: Optional[int] = None) -> QueryOutcome:
        self.query = self.query.with_page(page, size)
        return await self._run(self.query)

    async def change_sort(self, field: str, direction: Union[str, SortDirection] = SortDirection.ASC) -> QueryOutcome:
        column = self.columns.get(field)
        if column is not None and not column.sortable:
            self.logger.info("Ignoring sort on non-sortable column", field=field)
            return await self._run(self.query)
        self.query = self.query.with_sort(field, direction)
        return await self._run(self.query)

    async def change_filter(self, field: str, value: Any) -> QueryOutcome:
        column = self.columns.get(field)
        if column is not None and not column.filterable:
            self.logger.info("Ignoring filter on non-filterable column", field=field)
            return await self._run(self.query)
        self.query = self.query.with_filter(field, value)
        return await self._run(self.query)

    async def change_global(self, term: Optional[str]) -> QueryOutcome:
        self.query = self.query.with_global(term)
        return await self._run(self.query)

    async def reset(self) -> QueryOutcome:
        self.query = self.query.reset(self.page_size)
        return await self._run(self.query)

    async def _run(self, query: QueryState) -> QueryOutcome:
        self._pending += 1
        self.loading = True
        self.error = None
        try:
            outcome = await self.gateway.load(self.endpoint, query)
        finally:
            self._pending -= 1
            self.loading = self._pending > 0

        self.last_outcome = outcome
        self.error = outcome.error
        self.rows = list(outcome.result.rows)
        self.total = outcome.result.total
        self.total_pages = outcome.result.total_pages
        return outcome
