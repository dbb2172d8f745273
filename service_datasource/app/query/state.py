"""
Query state value objects.

A ``QueryState`` is the canonical, immutable description of the subset of
rows a table wants: one page of a given size, an ordered list of sorts, an
optional global search term and per-field filters. Every change produces a
new instance; nothing here is ever mutated in place.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from shared.errors import InvalidQueryError


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


class FilterOperator(str, Enum):
    CONTAINS = "contains"
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


Scalar = Union[str, int, float, bool]

_SCALAR_TYPES = (str, int, float, bool)

DEFAULT_PAGE_SIZE = 10


def _require_field_name(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidQueryError(f"{what} field must be a non-empty string", {"field": value})
    return value


def _require_scalar(field_name: str, value: Any) -> Scalar:
    if not isinstance(value, _SCALAR_TYPES):
        raise InvalidQueryError(
            f'Unsupported filter value for field "{field_name}"',
            {"field": field_name, "type": type(value).__name__},
        )
    return value


def _canonical_scalar(value: Any) -> Any:
    # 30.0 and 30 filter identically, so they serialize identically
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


@dataclass(frozen=True)
class SortSpec:
    """One sort key; position in ``QueryState.sorts`` is its priority."""

    field: str
    direction: SortDirection = SortDirection.ASC

    def __post_init__(self) -> None:
        _require_field_name(self.field, "Sort")
        try:
            direction = SortDirection(self.direction)
        except ValueError:
            raise InvalidQueryError(
                f'Unknown sort direction "{self.direction}"',
                {"field": self.field, "direction": self.direction},
            )
        object.__setattr__(self, "direction", direction)

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "dir": self.direction.value}

    @classmethod
    def coerce(cls, value: Any) -> "SortSpec":
        """Build a sort from a ``SortSpec``, a ``(field, dir)`` pair or a mapping."""
        if isinstance(value, SortSpec):
            return value
        if isinstance(value, Mapping):
            direction = value.get("dir", value.get("direction", SortDirection.ASC))
            return cls(value.get("field"), direction)
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls(value[0], value[1])
        raise InvalidQueryError("Sort entries must be (field, direction) pairs", {"sort": repr(value)})


@dataclass(frozen=True)
class FilterCriterion:
    """Structured filter criterion: an operator applied to a value."""

    operator: FilterOperator
    value: Scalar

    def __post_init__(self) -> None:
        try:
            operator = FilterOperator(self.operator)
        except ValueError:
            raise InvalidQueryError(f'Unknown filter operator "{self.operator}"', {"operator": self.operator})
        object.__setattr__(self, "operator", operator)

    def to_dict(self) -> Dict[str, Any]:
        return {"operator": self.operator.value, "value": _canonical_scalar(self.value)}


Criterion = Union[Scalar, FilterCriterion]


def _coerce_criterion(field_name: str, value: Any) -> Criterion:
    if isinstance(value, FilterCriterion):
        _require_scalar(field_name, value.value)
        return value
    if isinstance(value, Mapping):
        operator = value.get("operator", value.get("op"))
        if operator is None or "value" not in value:
            raise InvalidQueryError(
                f'Structured filter for field "{field_name}" needs an operator and a value',
                {"field": field_name},
            )
        return FilterCriterion(operator, _require_scalar(field_name, value["value"]))
    return _require_scalar(field_name, value)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


@dataclass(frozen=True)
class QueryState:
    """Canonical description of a requested page.

    Raises ``InvalidQueryError`` at construction for anything that cannot
    describe a valid page (negative page, non-positive size, unknown sort
    direction or filter operator, unsupported filter value types).
    """

    page: int = 0
    size: int = DEFAULT_PAGE_SIZE
    sorts: Tuple[SortSpec, ...] = ()
    global_search: Optional[str] = None
    filters: Mapping[str, Criterion] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.page, bool) or not isinstance(self.page, int) or self.page < 0:
            raise InvalidQueryError("page must be a non-negative integer", {"page": self.page})
        if isinstance(self.size, bool) or not isinstance(self.size, int) or self.size <= 0:
            raise InvalidQueryError("size must be a positive integer", {"size": self.size})

        sorts = tuple(SortSpec.coerce(item) for item in (self.sorts or ()))
        object.__setattr__(self, "sorts", sorts)

        search = self.global_search
        if search is not None and not isinstance(search, str):
            raise InvalidQueryError("global search term must be a string", {"global": repr(search)})
        object.__setattr__(self, "global_search", None if _is_blank(search) else search)

        filters: Dict[str, Criterion] = {}
        for name, value in dict(self.filters or {}).items():
            _require_field_name(name, "Filter")
            if value is None:
                continue
            filters[name] = _coerce_criterion(name, value)
        object.__setattr__(self, "filters", MappingProxyType(filters))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, QueryState):
            return NotImplemented
        return self.canonical_json() == other.canonical_json()

    def __hash__(self) -> int:
        return hash(self.canonical_json())

    @property
    def offset(self) -> int:
        return self.page * self.size

    # -- transitions -----------------------------------------------------

    def with_page(self, page: int, size: Optional[int] = None) -> "QueryState":
        return replace(self, page=page, size=self.size if size is None else size)

    def with_sort(self, field_name: str, direction: Union[str, SortDirection] = SortDirection.ASC) -> "QueryState":
        """Re-sort by ``field_name``: any existing sort on it is dropped and the
        new one is appended with the lowest priority. Returns to page 0."""
        sorts = [sort for sort in self.sorts if sort.field != field_name]
        sorts.append(SortSpec(field_name, direction))
        return replace(self, sorts=tuple(sorts), page=0)

    def with_sorts(self, sorts: Iterable[Any]) -> "QueryState":
        return replace(self, sorts=tuple(sorts), page=0)

    def with_filter(self, field_name: str, value: Any) -> "QueryState":
        """Set or, for a blank value, remove a filter. Returns to page 0."""
        filters = dict(self.filters)
        if _is_blank(value) or (isinstance(value, FilterCriterion) and _is_blank(value.value)):
            filters.pop(field_name, None)
        else:
            filters[field_name] = value.strip() if isinstance(value, str) else value
        return replace(self, filters=filters, page=0)

    def with_global(self, term: Optional[str]) -> "QueryState":
        return replace(self, global_search=term, page=0)

    def reset(self, size: Optional[int] = None) -> "QueryState":
        """Back to the first page with no sorts, search or filters."""
        return QueryState(size=self.size if size is None else size)

    # -- serialization ---------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Canonical dictionary form; filters are ordered by field name."""
        return {
            "page": self.page,
            "size": self.size,
            "sorts": [sort.to_dict() for sort in self.sorts],
            "global": self.global_search,
            "filters": {
                name: criterion.to_dict() if isinstance(criterion, FilterCriterion) else _canonical_scalar(criterion)
                for name, criterion in sorted(self.filters.items())
            },
        }

    def canonical_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "QueryState":
        if not isinstance(payload, Mapping):
            raise InvalidQueryError("query must be an object", {"query": repr(payload)})
        sorts: List[Any] = list(payload.get("sorts") or [])
        return cls(
            page=payload.get("page", 0),
            size=payload.get("size", DEFAULT_PAGE_SIZE),
            sorts=tuple(sorts),
            global_search=payload.get("global", payload.get("global_search")),
            filters=payload.get("filters") or {},
        )
