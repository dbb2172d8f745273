"""
Response normalization.

Remote sources answer in different shapes. Two are recognised:

- a bare JSON array: the whole universe, sliced locally;
- an envelope ``{"data": [...], "total": n, ...}``: one page, passed through.

Anything else is malformed and normalizes to an empty page with a warning.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Sequence

from shared.logging import get_logger

from ..query.results import PagedResult, Row, total_pages_for
from ..query.state import QueryState


@dataclass(frozen=True)
class NormalizedPage:
    """A normalized page and whether the payload had to be discarded."""

    result: PagedResult
    malformed: bool = False


def _is_sequence(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray))


def _is_count(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return value >= 0 and float(value).is_integer()


def _positive_int(value: Any, default: int, *, allow_zero: bool = False) -> int:
    if _is_count(value) and (allow_zero or value > 0):
        return int(value)
    return default


def _describe(payload: Any) -> str:
    if isinstance(payload, Mapping):
        return f"object with keys {sorted(str(key) for key in payload)[:10]}"
    return type(payload).__name__


class ResponseNormalizer:
    """Convert raw payloads into ``PagedResult`` values.

    ``id_fields`` lists the item fields tried, in order, as a natural row id.
    Items without one get ``row-<absolute index>``; such synthetic ids are
    only unique within the page window they were assigned in.
    """

    def __init__(self, id_fields: Sequence[str] = ("id",)):
        self.id_fields = tuple(id_fields) or ("id",)
        self.logger = get_logger("datasource.normalizer")

    def normalize(self, payload: Any, query: QueryState, client_side: bool = False) -> NormalizedPage:
        """Normalize ``payload`` produced for ``query``.

        With ``client_side`` set the envelope's ``data`` is treated as the
        complete universe and sliced like a bare array.
        """
        if _is_sequence(payload):
            return NormalizedPage(self._slice(payload, query))

        if self._is_envelope(payload):
            if client_side:
                return NormalizedPage(self._slice(payload["data"], query))
            return NormalizedPage(self._pass_through(payload, query))

        self._warn_malformed(payload, query=query.to_dict())
        return NormalizedPage(PagedResult.empty(query), malformed=True)

    def extract_rows(self, payload: Any) -> Optional[List[Row]]:
        """Full row universe of a bulk payload, or ``None`` when malformed."""
        if _is_sequence(payload):
            items = payload
        elif self._is_envelope(payload):
            items = payload["data"]
        else:
            self._warn_malformed(payload)
            return None
        return [self._with_id(item, index) for index, item in enumerate(items)]

    @staticmethod
    def _is_envelope(payload: Any) -> bool:
        return (
            isinstance(payload, Mapping)
            and _is_count(payload.get("total"))
            and _is_sequence(payload.get("data"))
        )

    def _slice(self, items: Sequence[Any], query: QueryState) -> PagedResult:
        start = query.offset
        window = items[start:start + query.size]
        return PagedResult(
            rows=[self._with_id(item, start + index) for index, item in enumerate(window)],
            total=len(items),
            page=query.page,
            size=query.size,
            total_pages=total_pages_for(len(items), query.size),
        )

    def _pass_through(self, payload: Mapping[str, Any], query: QueryState) -> PagedResult:
        total = int(payload["total"])
        page = _positive_int(payload.get("page"), query.page, allow_zero=True)
        size = _positive_int(payload.get("size"), query.size)
        total_pages = payload.get("total_pages", payload.get("totalPages"))
        start = page * size
        return PagedResult(
            rows=[self._with_id(item, start + index) for index, item in enumerate(payload["data"])],
            total=total,
            page=page,
            size=size,
            total_pages=_positive_int(total_pages, total_pages_for(total, size)),
        )

    def _with_id(self, item: Any, absolute_index: int) -> Row:
        if not isinstance(item, Mapping):
            return {"id": f"row-{absolute_index}", "value": item}

        natural = None
        for name in self.id_fields:
            candidate = item.get(name)
            if candidate is not None and candidate != "":
                natural = candidate
                break

        row: Row = {"id": str(natural) if natural is not None else f"row-{absolute_index}"}
        row.update((key, value) for key, value in item.items() if key != "id")
        return row

    def _warn_malformed(self, payload: Any, **context: Any) -> None:
        self.logger.warning("Unexpected API response format", payload=_describe(payload), **context)
