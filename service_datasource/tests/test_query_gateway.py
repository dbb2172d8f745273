"""
Unit tests for the query gateway.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.errors import InvalidQueryError, MalformedResponseError, TransportError
from shared.metrics import MetricsCollector
from service_datasource.app.domain import DataSourceMode, QueryGateway
from service_datasource.app.query import QueryState, RequestDescriptor


BASE_URL = "http://api.test/api"
BULK_URL = "https://countries.test/v3.1/all"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def envelope(rows, total=None, **extra):
    payload = {"data": rows, "total": len(rows) if total is None else total}
    payload.update(extra)
    return payload


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    mock = MagicMock()
    mock.fetch = AsyncMock(return_value=envelope([{"id": "1", "name": "Test"}]))
    return mock


@pytest.fixture
def gateway(transport, clock):
    return QueryGateway(transport, api_base_url=BASE_URL, clock=clock)


@pytest.fixture
def countries():
    return [{"cca3": f"C{index:02d}", "name": f"country {index:02d}"} for index in range(25)]


class TestResolution:
    """URL and mode resolution."""

    @pytest.mark.parametrize("endpoint", ["/rows", "rows"])
    def test_relative_endpoint_joins_base(self, gateway, endpoint):
        assert gateway.resolve_url(endpoint) == "http://api.test/api/rows"

    def test_absolute_endpoint_unchanged(self, gateway):
        assert gateway.resolve_url(BULK_URL) == BULK_URL

    def test_relative_endpoint_is_server_mode(self, gateway):
        assert gateway.resolve_mode("/rows") is DataSourceMode.SERVER

    def test_foreign_absolute_endpoint_is_client_mode(self, gateway):
        assert gateway.resolve_mode(BULK_URL) is DataSourceMode.CLIENT

    def test_absolute_endpoint_under_base_is_server_mode(self, gateway):
        assert gateway.resolve_mode("http://api.test/api/rows") is DataSourceMode.SERVER

    def test_configured_mode_wins(self, transport):
        gateway = QueryGateway(
            transport,
            api_base_url=BASE_URL,
            source_modes={"/rows/all": "client", BULK_URL: "SERVER"},
        )
        assert gateway.resolve_mode("/rows/all") is DataSourceMode.CLIENT
        assert gateway.resolve_mode(BULK_URL) is DataSourceMode.SERVER

    def test_empty_base_url_keeps_absolute_endpoints_client_side(self, transport):
        gateway = QueryGateway(transport, api_base_url="")
        assert gateway.resolve_mode(BULK_URL) is DataSourceMode.CLIENT
        assert gateway.resolve_mode("/rows") is DataSourceMode.SERVER

    def test_unknown_configured_mode_rejected(self, transport):
        with pytest.raises(InvalidQueryError):
            QueryGateway(transport, api_base_url=BASE_URL, source_modes={"/rows": "hybrid"})

    def test_server_request_carries_params(self, gateway):
        request = gateway.build_request("/rows", QueryState(page=2, filters={"status": "Active"}))
        assert request == RequestDescriptor(
            url="http://api.test/api/rows",
            params=(("page", "2"), ("size", "10"), ("filter[status]", "Active")),
        )

    def test_client_request_has_no_params(self, gateway):
        request = gateway.build_request(BULK_URL, QueryState(page=2, global_search="x"))
        assert request == RequestDescriptor(url=BULK_URL)


class TestServerMode:
    """Server-side querying sources."""

    @pytest.mark.asyncio
    async def test_miss_fetches_and_normalizes(self, gateway, transport):
        outcome = await gateway.load("/rows", QueryState())

        assert outcome.ok
        assert outcome.mode is DataSourceMode.SERVER
        assert outcome.source == "remote"
        assert outcome.result.rows == [{"id": "1", "name": "Test"}]
        assert outcome.result.total_pages == 1

        request = transport.fetch.call_args[0][0]
        assert request.url == "http://api.test/api/rows"
        assert request.params == (("page", "0"), ("size", "10"))

    @pytest.mark.asyncio
    async def test_repeat_query_served_from_cache(self, gateway, transport):
        first = await gateway.load("/rows", QueryState())
        second = await gateway.load("/rows", QueryState())

        assert transport.fetch.await_count == 1
        assert second.source == "cache"
        assert second.result == first.result

    @pytest.mark.asyncio
    async def test_editing_returned_rows_leaves_cache_untouched(self, gateway):
        first = await gateway.load("/rows", QueryState())
        first.result.rows[0]["name"] = "edited"
        first.result.rows.append({"id": "x"})

        second = await gateway.load("/rows", QueryState())
        assert second.source == "cache"
        assert second.result.rows == [{"id": "1", "name": "Test"}]

        second.result.rows.clear()
        third = await gateway.load("/rows", QueryState())
        assert third.result.rows == [{"id": "1", "name": "Test"}]

    @pytest.mark.asyncio
    async def test_equivalent_queries_share_cache_entry(self, gateway, transport):
        await gateway.load("/rows", QueryState(filters={"a": "1", "b": "2"}))
        outcome = await gateway.load("/rows", QueryState(filters={"b": "2", "a": "1"}))

        assert transport.fetch.await_count == 1
        assert outcome.source == "cache"

    @pytest.mark.asyncio
    async def test_different_queries_fetch_separately(self, gateway, transport):
        await gateway.load("/rows", QueryState())
        await gateway.load("/rows", QueryState(page=1))
        await gateway.load("/users", QueryState())

        assert transport.fetch.await_count == 3

    @pytest.mark.asyncio
    async def test_bare_array_from_server_endpoint_is_sliced(self, gateway, transport, countries):
        transport.fetch.return_value = countries

        outcome = await gateway.load("/countries", QueryState(page=2, size=10))

        assert outcome.result.total == 25
        assert [row["id"] for row in outcome.result.rows] == [f"row-{n}" for n in range(20, 25)]

    @pytest.mark.asyncio
    async def test_cache_expires_after_five_minutes(self, gateway, transport, clock):
        await gateway.load("/rows", QueryState())

        clock.advance(4 * 60 + 59)
        assert (await gateway.load("/rows", QueryState())).source == "cache"

        clock.advance(2)
        assert (await gateway.load("/rows", QueryState())).source == "remote"
        assert transport.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_clear_cache_forces_refetch(self, gateway, transport):
        await gateway.load("/rows", QueryState())
        gateway.clear_cache()
        await gateway.load("/rows", QueryState())

        assert transport.fetch.await_count == 2


class TestClientMode:
    """Bulk sources queried locally."""

    @pytest.mark.asyncio
    async def test_bulk_fetch_then_local_paging(self, gateway, transport, countries):
        transport.fetch.return_value = countries

        first = await gateway.load(BULK_URL, QueryState(page=0, size=10))
        second = await gateway.load(BULK_URL, QueryState(page=1, size=10))

        assert transport.fetch.await_count == 1
        assert transport.fetch.call_args[0][0] == RequestDescriptor(url=BULK_URL)
        assert first.mode is DataSourceMode.CLIENT
        assert first.source == "remote"
        assert second.source == "local"
        assert [row["name"] for row in second.result.rows] == [f"country {n:02d}" for n in range(10, 20)]
        assert second.result.total == 25

    @pytest.mark.asyncio
    async def test_query_runs_against_full_dataset(self, gateway, transport, countries):
        transport.fetch.return_value = countries

        outcome = await gateway.load(BULK_URL, QueryState(size=5, sorts=[("name", "desc")], global_search="country 1"))

        assert outcome.result.total == 10
        assert outcome.result.rows[0]["name"] == "country 19"

    @pytest.mark.asyncio
    async def test_synthetic_ids_are_dataset_positions(self, gateway, transport, countries):
        transport.fetch.return_value = countries

        outcome = await gateway.load(BULK_URL, QueryState(size=3, sorts=[("name", "desc")]))

        assert [row["id"] for row in outcome.result.rows] == ["row-24", "row-23", "row-22"]

    @pytest.mark.asyncio
    async def test_envelope_from_bulk_source(self, gateway, transport, countries):
        transport.fetch.return_value = envelope(countries)

        outcome = await gateway.load(BULK_URL, QueryState(page=2, size=10))

        assert outcome.ok
        assert len(outcome.result.rows) == 5

    @pytest.mark.asyncio
    async def test_dataset_expires_with_ttl(self, gateway, transport, clock, countries):
        transport.fetch.return_value = countries

        await gateway.load(BULK_URL, QueryState())
        clock.advance(301)
        outcome = await gateway.load(BULK_URL, QueryState(page=1))

        assert outcome.source == "remote"
        assert transport.fetch.await_count == 2


class TestFailures:
    """Remote failures come back as empty outcomes."""

    @pytest.mark.asyncio
    async def test_transport_error_gives_empty_page_with_message(self, gateway, transport):
        transport.fetch.side_effect = TransportError(
            "Unexpected status 500", status_code=500, user_message="Internal Server Error"
        )

        outcome = await gateway.load("/rows", QueryState(page=3, size=20))

        assert not outcome.ok
        assert outcome.error == "Internal Server Error"
        assert outcome.result.rows == []
        assert outcome.result.total == 0
        assert outcome.result.total_pages == 0
        assert (outcome.result.page, outcome.result.size) == (3, 20)

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, gateway, transport):
        transport.fetch.side_effect = [
            TransportError("down", status_code=0, user_message="Network Error - Please check your connection"),
            envelope([{"id": "1"}]),
        ]

        failed = await gateway.load("/rows", QueryState())
        recovered = await gateway.load("/rows", QueryState())

        assert failed.error == "Network Error - Please check your connection"
        assert recovered.ok
        assert recovered.source == "remote"
        assert len(gateway.cache) == 1

    @pytest.mark.asyncio
    async def test_client_mode_transport_error(self, gateway, transport):
        transport.fetch.side_effect = TransportError("gone", status_code=404, user_message="Not Found")

        outcome = await gateway.load(BULK_URL, QueryState())

        assert outcome.mode is DataSourceMode.CLIENT
        assert outcome.error == "Not Found"
        assert len(gateway.dataset_cache) == 0

    @pytest.mark.asyncio
    async def test_unrecognised_shape_is_malformed(self, gateway, transport):
        transport.fetch.return_value = {}

        outcome = await gateway.load("/rows", QueryState())

        assert outcome.error == "Unexpected response format"
        assert outcome.result.total == 0
        assert len(gateway.cache) == 0

    @pytest.mark.asyncio
    async def test_non_json_body_is_malformed(self, gateway, transport):
        transport.fetch.side_effect = MalformedResponseError()

        outcome = await gateway.load("/rows", QueryState())

        assert outcome.error == "Unexpected response format"
        assert outcome.result.rows == []

    @pytest.mark.asyncio
    async def test_client_mode_malformed_dataset_not_cached(self, gateway, transport):
        transport.fetch.return_value = {"oops": True}

        outcome = await gateway.load(BULK_URL, QueryState())

        assert outcome.error == "Unexpected response format"
        assert len(gateway.dataset_cache) == 0
        assert len(gateway.cache) == 0


class TestConcurrency:
    """Overlapping loads."""

    @pytest.mark.asyncio
    async def test_last_completed_fetch_owns_cache_slot(self, gateway, transport):
        calls = []

        async def fetch(request):
            calls.append(request)
            if len(calls) == 1:
                await asyncio.sleep(0.01)
                return envelope([{"id": "slow"}])
            return envelope([{"id": "fast"}])

        transport.fetch.side_effect = fetch

        slow, fast = await asyncio.gather(
            gateway.load("/rows", QueryState()),
            gateway.load("/rows", QueryState()),
        )

        assert len(calls) == 2
        assert slow.result.rows == [{"id": "slow"}]
        assert fast.result.rows == [{"id": "fast"}]

        cached = await gateway.load("/rows", QueryState())
        assert cached.source == "cache"
        assert cached.result.rows == [{"id": "slow"}]


class TestLifecycle:
    """Disposal, stats and metrics."""

    @pytest.mark.asyncio
    async def test_dispose_stops_caching(self, gateway, transport):
        gateway.dispose()
        await gateway.load("/rows", QueryState())
        await gateway.load("/rows", QueryState())

        assert transport.fetch.await_count == 2

    @pytest.mark.asyncio
    async def test_cache_stats(self, gateway, transport, countries):
        await gateway.load("/rows", QueryState())
        await gateway.load("/rows", QueryState())
        transport.fetch.return_value = countries
        await gateway.load(BULK_URL, QueryState())

        stats = gateway.get_cache_stats()
        assert stats["query"]["entries"] == 2
        assert stats["query"]["hits"] == 1
        assert stats["dataset"]["entries"] == 1

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, transport, clock):
        metrics = MetricsCollector("datasource")
        gateway = QueryGateway(transport, api_base_url=BASE_URL, metrics=metrics, clock=clock)

        await gateway.load("/rows", QueryState())
        await gateway.load("/rows", QueryState())

        registry = metrics.registry
        assert registry.get_sample_value(
            "queries_total", {"mode": "server", "source": "remote", "result": "ok"}
        ) == 1.0
        assert registry.get_sample_value(
            "queries_total", {"mode": "server", "source": "cache", "result": "hit"}
        ) == 1.0
        assert registry.get_sample_value("cache_hits_total", {"cache_type": "query"}) == 1.0
        assert registry.get_sample_value("cache_misses_total", {"cache_type": "query"}) == 1.0
