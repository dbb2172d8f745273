"""
Data source service: HTTP surface of the table query gateway.
"""

from typing import Any, Dict, Optional

import httpx
from fastapi import Query
from pydantic import BaseModel, Field

from shared.base_service import BaseService
from shared.errors import InvalidQueryError

from service_datasource.app.adapters import HttpTransport
from service_datasource.app.caching import TTLCache
from service_datasource.app.domain import QueryGateway
from service_datasource.app.engine import ClientQueryEngine
from service_datasource.app.mock_api import create_rows_router, generate_rows
from service_datasource.app.normalization import ResponseNormalizer
from service_datasource.app.query import QueryState


class QueryRequest(BaseModel):
    """Body of ``POST /api/v1/query``."""

    endpoint: str = Field(..., min_length=1)
    query: Dict[str, Any] = Field(default_factory=dict)

    def to_query_state(self) -> QueryState:
        return QueryState.from_dict(self.query)


class DataSourceService(BaseService):
    """Table data source service implementation."""

    def __init__(self, *, transport: Optional[httpx.AsyncBaseTransport] = None, **config_overrides: Any):
        super().__init__("datasource", 8000, **config_overrides)
        self.engine = ClientQueryEngine()
        self.normalizer = ResponseNormalizer(self.config.id_fields)
        self.http_transport = HttpTransport(self.config.api_timeout, transport=transport)
        self.gateway = QueryGateway(
            self.http_transport,
            api_base_url=self.config.api_base_url,
            cache=TTLCache("query"),
            dataset_cache=TTLCache("dataset"),
            normalizer=self.normalizer,
            engine=self.engine,
            source_modes=self.config.source_modes,
            metrics=self.metrics,
        )

        if self.config.enable_mock_api:
            self.mock_rows = generate_rows(self.config.mock_row_count)
            self.app.include_router(
                create_rows_router(self.mock_rows, self.engine),
                prefix=self.config.mock_api_prefix.rstrip("/"),
                tags=["mock"],
            )
            self.logger.info(
                "Mock rows API enabled",
                prefix=self.config.mock_api_prefix,
                rows=len(self.mock_rows),
            )

    def _setup_routes(self):
        """Set up service routes."""
        super()._setup_routes()

        @self.app.get("/")
        async def root():
            return {
                "service": "datasource",
                "message": "Table data source - query gateway",
                "version": "1.0.0",
            }

        @self.app.post("/api/v1/query")
        async def run_query(request: QueryRequest):
            """Resolve one table query through cache, remote source or client engine."""
            query = request.to_query_state()
            outcome = await self.gateway.load(request.endpoint, query)
            return outcome.to_dict()

        @self.app.post("/api/v1/query/describe")
        async def describe_query(request: QueryRequest):
            """Show how a query would be dispatched without executing it."""
            query = request.to_query_state()
            return {
                "mode": self.gateway.resolve_mode(request.endpoint).value,
                "request": self.gateway.build_request(request.endpoint, query).to_dict(),
                "query": query.to_dict(),
            }

        @self.app.post("/api/v1/cache/clear")
        async def clear_cache():
            self.gateway.clear_cache()
            return {"status": "cleared"}

        @self.app.get("/api/v1/cache/stats")
        async def cache_stats():
            return self.gateway.get_cache_stats()

        @self.app.get("/api/v1/sources/mode")
        async def source_mode(endpoint: str = Query(..., min_length=1)):
            if not endpoint.strip():
                raise InvalidQueryError("endpoint must not be blank")
            return {
                "endpoint": endpoint,
                "url": self.gateway.resolve_url(endpoint),
                "mode": self.gateway.resolve_mode(endpoint).value,
            }

    async def _shutdown(self) -> None:
        self.gateway.dispose()


def create_app(**overrides: Any):
    """Create FastAPI application."""
    service = DataSourceService(**overrides)
    return service.app


if __name__ == "__main__":
    service = DataSourceService()
    service.run()
