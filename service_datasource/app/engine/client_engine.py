"""
Client-side query engine.

Reproduces, over an in-memory row set, the filter -> sort -> paginate
contract a server applies when it receives the encoded query parameters:

1. global search (any field, case-insensitive substring)
2. per-field filters, conjunctive
3. stable multi-key sort
4. pagination, with ``total`` counted before slicing
"""

from __future__ import annotations

from functools import cmp_to_key
from typing import Any, Callable, List, Mapping, Sequence

from shared.logging import get_logger

from ..query.results import PagedResult, Row
from ..query.state import Criterion, FilterCriterion, FilterOperator, QueryState, SortDirection, SortSpec
from ..query.values import (
    ValueKind,
    classify,
    coerce_like,
    compare_values,
    parse_calendar_date,
    to_text,
)

_ORDERING: Mapping[FilterOperator, Callable[[int], bool]] = {
    FilterOperator.EQ: lambda result: result == 0,
    FilterOperator.NE: lambda result: result != 0,
    FilterOperator.GT: lambda result: result > 0,
    FilterOperator.GTE: lambda result: result >= 0,
    FilterOperator.LT: lambda result: result < 0,
    FilterOperator.LTE: lambda result: result <= 0,
}


def is_date_field(field_name: str) -> bool:
    return "date" in field_name.lower()


def _criterion_parts(criterion: Criterion):
    if isinstance(criterion, FilterCriterion):
        return criterion.operator, criterion.value
    return FilterOperator.CONTAINS, criterion


def _is_active(criterion: Criterion) -> bool:
    _, raw = _criterion_parts(criterion)
    text = to_text(raw)
    return text is not None and text.strip() != ""


class ClientQueryEngine:
    """Filter, sort and paginate a full row set in process."""

    def __init__(self):
        self.logger = get_logger("datasource.engine")

    def execute(self, rows: Sequence[Row], query: QueryState) -> PagedResult:
        """Produce the page ``query`` describes from the complete row set."""
        matched = self.filter_rows(rows, query)
        ordered = self.sort_rows(matched, query.sorts)
        result = PagedResult.from_universe(ordered, query)

        self.logger.debug(
            "Client query executed",
            universe=len(rows),
            total=result.total,
            page=query.page,
            size=query.size,
            returned=len(result.rows),
        )
        return result

    def count(self, rows: Sequence[Row], query: QueryState) -> int:
        """Number of rows matching the search and filters of ``query``."""
        return len(self.filter_rows(rows, query))

    # -- filtering -------------------------------------------------------

    def filter_rows(self, rows: Sequence[Row], query: QueryState) -> List[Row]:
        matched = list(rows)

        if query.global_search:
            term = query.global_search.lower()
            matched = [row for row in matched if self._matches_search(row, term)]

        for field_name, criterion in query.filters.items():
            if not _is_active(criterion):
                continue
            matched = [row for row in matched if self._matches_filter(row, field_name, criterion)]

        return matched

    @staticmethod
    def _matches_search(row: Row, term: str) -> bool:
        for value in row.values():
            text = to_text(value)
            if text is not None and term in text.lower():
                return True
        return False

    def _matches_filter(self, row: Row, field_name: str, criterion: Criterion) -> bool:
        value = row.get(field_name)
        if value is None:
            return False

        operator, raw = _criterion_parts(criterion)

        if is_date_field(field_name):
            return self._matches_date(value, operator, raw)

        if operator is FilterOperator.CONTAINS:
            text = to_text(value)
            if text is None:
                return False
            return to_text(raw).strip().lower() in text.lower()

        expected = coerce_like(raw.strip() if isinstance(raw, str) else raw, value)
        if expected is None:
            return False
        if classify(value) is ValueKind.STRING:
            comparison = compare_values(value.lower(), expected.lower())
        else:
            comparison = compare_values(value, expected)
        return _ORDERING[operator](comparison)

    @staticmethod
    def _matches_date(value: Any, operator: FilterOperator, raw: Any) -> bool:
        row_day = parse_calendar_date(value)
        wanted_day = parse_calendar_date(raw)
        if row_day is None or wanted_day is None:
            return False
        comparison = compare_values(row_day, wanted_day)
        if operator is FilterOperator.CONTAINS:
            return comparison == 0
        return _ORDERING[operator](comparison)

    # -- sorting ---------------------------------------------------------

    @staticmethod
    def sort_rows(rows: Sequence[Row], sorts: Sequence[SortSpec]) -> List[Row]:
        """Stable multi-key sort; earlier sorts take priority.

        ``desc`` negates the comparison of its own key only; rows equal on
        every key keep their relative order.
        """
        if not sorts:
            return list(rows)

        def compare(left: Row, right: Row) -> int:
            for sort in sorts:
                result = compare_values(left.get(sort.field), right.get(sort.field))
                if result != 0:
                    return -result if sort.direction is SortDirection.DESC else result
            return 0

        return sorted(rows, key=cmp_to_key(compare))
