"""
Query gateway: the single entry point for table data requests.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple, TYPE_CHECKING

from shared.logging import get_logger, set_endpoint_context
from shared.errors import InvalidQueryError, MalformedResponseError, TransportError

from ..caching import TTLCache
from ..engine import ClientQueryEngine
from ..normalization import ResponseNormalizer
from ..query import PagedResult, QueryState, RequestDescriptor, Row, build_cache_key, encode_query_params

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


MALFORMED_RESPONSE_MESSAGE = "Unexpected response format"


class DataSourceMode(str, Enum):
    SERVER = "server"
    CLIENT = "client"


class Transport(Protocol):
    async def fetch(self, request: RequestDescriptor) -> Any:
        ...


@dataclass(frozen=True)
class QueryOutcome:
    """What a table gets back for one query."""

    result: PagedResult
    mode: DataSourceMode
    source: str
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result.model_dump(),
            "mode": self.mode.value,
            "source": self.source,
            "error": self.error,
        }


class QueryGateway:
    """Resolve ``(endpoint, QueryState)`` to a page of rows.

    Pipeline per call: cache check, then on a miss either

    - server mode: encode the query as GET parameters, fetch, normalize, cache;
    - client mode: fetch (or reuse) the bulk dataset, run the client engine,
      cache the derived page.

    Failures never raise out of ``load``; they come back as an empty page with
    ``error`` set, and nothing is cached for them. Concurrent identical
    misses are not collapsed; the last completed fetch owns the cache slot.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        api_base_url: str,
        cache: Optional[TTLCache[PagedResult]] = None,
        dataset_cache: Optional[TTLCache[Tuple[Row, ...]]] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        engine: Optional[ClientQueryEngine] = None,
        source_modes: Optional[Mapping[str, str]] = None,
        metrics: Optional["MetricsCollector"] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.transport = transport
        self.api_base_url = api_base_url.rstrip("/")
        self.cache = cache if cache is not None else TTLCache("query", clock=clock)
        self.dataset_cache = dataset_cache if dataset_cache is not None else TTLCache("dataset", clock=clock)
        self.normalizer = normalizer or ResponseNormalizer()
        self.engine = engine or ClientQueryEngine()
        self.metrics = metrics
        self.logger = get_logger("datasource.gateway")

        self.source_modes: Dict[str, DataSourceMode] = {}
        for endpoint, mode in (source_modes or {}).items():
            try:
                self.source_modes[endpoint] = DataSourceMode(str(mode).lower())
            except ValueError:
                raise InvalidQueryError(
                    f'Unknown data source mode "{mode}"',
                    {"endpoint": endpoint, "mode": mode},
                )

    # -- resolution ------------------------------------------------------

    def resolve_url(self, endpoint: str) -> str:
        if self._is_absolute(endpoint):
            return endpoint
        return f"{self.api_base_url}/{endpoint.lstrip('/')}"

    def resolve_mode(self, endpoint: str) -> DataSourceMode:
        """Configured mode for ``endpoint``, else inferred from its URL shape.

        Absolute URLs outside the local API surface are bulk sources and run
        in client mode; everything else is queried server side.
        """
        if endpoint in self.source_modes:
            return self.source_modes[endpoint]
        if self._is_absolute(endpoint) and not (self.api_base_url and endpoint.startswith(self.api_base_url)):
            return DataSourceMode.CLIENT
        return DataSourceMode.SERVER

    @staticmethod
    def _is_absolute(endpoint: str) -> bool:
        return endpoint.startswith(("http://", "https://"))

    def build_request(self, endpoint: str, query: QueryState) -> RequestDescriptor:
        """GET descriptor for ``query``; client mode fetches without parameters."""
        url = self.resolve_url(endpoint)
        if self.resolve_mode(endpoint) is DataSourceMode.CLIENT:
            return RequestDescriptor(url=url)
        return RequestDescriptor(url=url, params=tuple(encode_query_params(query)))

    # -- pipeline --------------------------------------------------------

    async def load(self, endpoint: str, query: QueryState) -> QueryOutcome:
        """Resolve one query. Never raises for remote failures."""
        set_endpoint_context(endpoint)
        mode = self.resolve_mode(endpoint)
        cache_key = build_cache_key(endpoint, query)
        start = time.perf_counter()

        cached = self.cache.get(cache_key)
        if cached is not None:
            self.logger.debug("Returning cached data", cache_key=cache_key)
            self._record_metrics(mode, "cache", "hit", start)
            return QueryOutcome(result=cached.model_copy(deep=True), mode=mode, source="cache")

        self.logger.debug("Cache miss", cache_key=cache_key, mode=mode.value)
        self._count("cache_misses_total", cache_type="query")

        try:
            if mode is DataSourceMode.CLIENT:
                outcome = await self._load_client(endpoint, query)
            else:
                outcome = await self._load_server(endpoint, query)
        except TransportError as exc:
            self.logger.error(
                "Data load failed",
                endpoint=endpoint,
                mode=mode.value,
                status_code=exc.status_code,
                error=exc.message,
            )
            self._record_metrics(mode, "remote", "error", start)
            return QueryOutcome(result=PagedResult.empty(query), mode=mode, source="remote", error=exc.user_message)
        except MalformedResponseError:
            self._record_metrics(mode, "remote", "malformed", start)
            return QueryOutcome(
                result=PagedResult.empty(query),
                mode=mode,
                source="remote",
                error=MALFORMED_RESPONSE_MESSAGE,
            )

        if outcome.ok:
            self.cache.set(cache_key, outcome.result.model_copy(deep=True))
            self.logger.debug("Data loaded and cached", cache_key=cache_key, total=outcome.result.total)
        self._record_metrics(mode, outcome.source, "ok" if outcome.ok else "malformed", start)
        return outcome

    async def _load_server(self, endpoint: str, query: QueryState) -> QueryOutcome:
        request = self.build_request(endpoint, query)
        self.logger.debug("Loading data", url=request.url, params=request.query_string(), mode="server")

        payload = await self.transport.fetch(request)
        normalized = self.normalizer.normalize(payload, query, client_side=False)
        error = MALFORMED_RESPONSE_MESSAGE if normalized.malformed else None
        return QueryOutcome(result=normalized.result, mode=DataSourceMode.SERVER, source="remote", error=error)

    async def _load_client(self, endpoint: str, query: QueryState) -> QueryOutcome:
        url = self.resolve_url(endpoint)
        rows = self.dataset_cache.get(url)
        source = "local"

        if rows is None:
            self._count("cache_misses_total", cache_type="dataset")
            self.logger.debug("Loading bulk dataset", url=url, mode="client")
            payload = await self.transport.fetch(RequestDescriptor(url=url))
            extracted = self.normalizer.extract_rows(payload)
            if extracted is None:
                return QueryOutcome(
                    result=PagedResult.empty(query),
                    mode=DataSourceMode.CLIENT,
                    source="remote",
                    error=MALFORMED_RESPONSE_MESSAGE,
                )
            rows = tuple(extracted)
            self.dataset_cache.set(url, rows)
            source = "remote"
        else:
            self._count("cache_hits_total", cache_type="dataset")

        result = self.engine.execute(rows, query)
        return QueryOutcome(result=result, mode=DataSourceMode.CLIENT, source=source)

    # -- lifecycle -------------------------------------------------------

    def clear_cache(self) -> None:
        self.cache.clear()
        self.dataset_cache.clear()
        self.logger.debug("Cache cleared")

    def dispose(self) -> None:
        self.cache.dispose()
        self.dataset_cache.dispose()

    def get_cache_stats(self) -> Dict[str, Any]:
        return {
            "query": self.cache.get_stats(),
            "dataset": self.dataset_cache.get_stats(),
        }

    # -- metrics ---------------------------------------------------------

    def _count(self, metric_name: str, **labels: str) -> None:
        if not self.metrics:
            return
        try:
            self.metrics.increment_counter(metric_name, **labels)
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to record metric", metric=metric_name, error=str(exc))

    def _record_metrics(self, mode: DataSourceMode, source: str, result: str, start: float) -> None:
        if result == "hit":
            self._count("cache_hits_total", cache_type="query")
        self._count("queries_total", mode=mode.value, source=source, result=result)
        if not self.metrics:
            return
        try:
            self.metrics.observe_histogram("query_duration_seconds", time.perf_counter() - start, mode=mode.value)
        except Exception as exc:  # pragma: no cover
            self.logger.debug("Failed to record query duration", error=str(exc))
