"""
Translation between ``QueryState`` and its transport forms.

- ``build_cache_key``: stable string key for ``(endpoint, QueryState)``.
- ``encode_query_params``: server-mode GET parameters, in a fixed order.
- ``decode_query_params``: the inverse, used by servers that accept them.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urlencode

from shared.errors import InvalidQueryError

from .state import FilterCriterion, FilterOperator, QueryState, SortSpec
from .values import to_text

Param = Tuple[str, str]

_FILTER_PARAM = re.compile(r"^filter\[(?P<field>[^\[\]]+)\](?:\[(?P<part>op|value)\])?$")


@dataclass(frozen=True)
class RequestDescriptor:
    """HTTP-style GET handed to the transport collaborator."""

    url: str
    params: Tuple[Param, ...] = ()

    def query_string(self) -> str:
        return urlencode(self.params)

    def to_dict(self) -> Dict[str, Any]:
        return {"url": self.url, "params": [list(param) for param in self.params]}


def build_cache_key(endpoint: str, query: QueryState) -> str:
    """Endpoint plus the canonical serialization of the query.

    Filters are serialized sorted by field name, so two states that differ
    only in filter insertion order share a key.
    """
    return f"{endpoint}:{query.canonical_json()}"


def _param_text(value: Any) -> str:
    text = to_text(value)
    return "" if text is None else text


def encode_query_params(query: QueryState) -> List[Param]:
    """Server-mode parameters: page, size, global, sort, then one entry per filter."""
    params: List[Param] = [
        ("page", str(query.page)),
        ("size", str(query.size)),
    ]

    if query.global_search:
        params.append(("global", query.global_search))

    if query.sorts:
        params.append(("sort", ",".join(f"{sort.field}:{sort.direction.value}" for sort in query.sorts)))

    for name, criterion in query.filters.items():
        if isinstance(criterion, FilterCriterion):
            params.append((f"filter[{name}][op]", criterion.operator.value))
            params.append((f"filter[{name}][value]", _param_text(criterion.value)))
        else:
            params.append((f"filter[{name}]", _param_text(criterion)))

    return params


def _parse_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise InvalidQueryError(f"{name} must be an integer", {name: raw})


def _parse_sorts(raw: str) -> List[SortSpec]:
    sorts = []
    for chunk in raw.split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        field_name, _, direction = chunk.rpartition(":")
        if not field_name:
            # "name" without a direction
            field_name, direction = direction, "asc"
        sorts.append(SortSpec(field_name, direction.lower()))
    return sorts


def decode_query_params(params: Iterable[Param]) -> QueryState:
    """Rebuild a ``QueryState`` from server-mode parameters.

    Unknown parameters are ignored. Filter values come back as text; the
    client engine coerces them to the row value's kind when comparing.
    """
    page: Optional[int] = None
    size: Optional[int] = None
    global_search: Optional[str] = None
    sorts: List[SortSpec] = []
    scalars: Dict[str, str] = {}
    structured: Dict[str, Dict[str, str]] = {}
    order: List[str] = []

    for name, value in params:
        if name == "page":
            page = _parse_int("page", value)
        elif name == "size":
            size = _parse_int("size", value)
        elif name == "global":
            global_search = value
        elif name == "sort":
            sorts = _parse_sorts(value)
        else:
            match = _FILTER_PARAM.match(name)
            if match is None:
                continue
            field_name = match.group("field")
            if field_name not in order:
                order.append(field_name)
            part = match.group("part")
            if part is None:
                scalars[field_name] = value
            else:
                structured.setdefault(field_name, {})[part] = value

    filters: Dict[str, Any] = {}
    for field_name in order:
        if field_name in structured:
            parts = structured[field_name]
            if "value" not in parts:
                raise InvalidQueryError(f'filter[{field_name}] has an operator but no value', {"field": field_name})
            filters[field_name] = FilterCriterion(parts.get("op", FilterOperator.CONTAINS.value), parts["value"])
        else:
            filters[field_name] = scalars[field_name]

    kwargs: Dict[str, Any] = {"sorts": tuple(sorts), "global_search": global_search, "filters": filters}
    if page is not None:
        kwargs["page"] = page
    if size is not None:
        kwargs["size"] = size
    return QueryState(**kwargs)
