"""Integration tests for the fetch pipeline from datasource to batches."""

import httpx
import pytest

from databinder.core.binder import DataBinder
from databinder.core.linker import DatasourceLinkConfig, Linker, MethodConfig
from databinder.datasources.rest_api import RestApiDatasource
from databinder.fetch.client import RestApiFetcher
from databinder.fetch.config import AuthConfig, AuthType, RestApiConfig
from databinder.fetch.errors import NotFoundError
from databinder.fetch.models import (
    FetchOptions,
    PaginationOptions,
    ResponseFormat,
    RetryPolicy,
)
from databinder.observability.metrics import FetchMetrics
from databinder.observability.telemetry import FanOutTelemetry, RecordingTelemetry
from tests.helpers.http import no_sleep


PEOPLE = [{"name": f"person-{i}", "age": i} for i in range(250)]


class FakeApi:
    """Routes requests by host to canned behaviour."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.stats_failures = 1

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host == "people.example.com":
            return httpx.Response(200, json={"items": PEOPLE, "totalItems": 250})
        if host == "orders.example.com":
            return httpx.Response(404, json={"message": "no such collection"})
        if host == "stats.example.com":
            if self.stats_failures:
                self.stats_failures -= 1
                return httpx.Response(503)
            return httpx.Response(200, json=[{"k": "a"}, {"k": "b"}])
        return httpx.Response(500)


@pytest.fixture
def api() -> FakeApi:
    """Create the fake API."""
    return FakeApi()


@pytest.fixture
def recording() -> RecordingTelemetry:
    """Create a recording telemetry sink."""
    return RecordingTelemetry()


@pytest.fixture
def metrics() -> FetchMetrics:
    """Create a metrics sink."""
    return FetchMetrics()


@pytest.fixture
def binder(
    api: FakeApi, recording: RecordingTelemetry, metrics: FetchMetrics
) -> DataBinder:
    """Wire three REST datasources into a binder."""
    telemetry = FanOutTelemetry([recording, metrics])
    fetcher = RestApiFetcher(
        transport=httpx.MockTransport(api.handler),
        telemetry=telemetry,
        default_policy=RetryPolicy(max_retries=2, base_delay_ms=0),
        sleep=no_sleep,
    )

    def source(name: str, **config: object) -> RestApiDatasource:
        return RestApiDatasource(
            RestApiConfig(base_url=f"https://{name}.example.com", **config),
            datasource_id=name,
            fetcher=fetcher,
        )

    linker = Linker(
        [
            source(
                "people",
                default_endpoint="/people",
                auth=AuthConfig(type=AuthType.BEARER, token="people-token"),
            ),
            source("orders"),
            source("stats", endpoints={"summary": "v2/summary"}),
        ],
        {
            "people": DatasourceLinkConfig(
                method_config=MethodConfig(
                    method_name="default",
                    options=FetchOptions(
                        response_format=ResponseFormat.BATCH,
                        pagination=PaginationOptions(enabled=True, page_size=50),
                    ),
                ),
                property_mapping={"name": "full_name"},
            ),
            "stats": DatasourceLinkConfig(
                method_config=MethodConfig(
                    method_name="default",
                    options=FetchOptions(endpoint="summary"),
                ),
            ),
        },
    )
    return DataBinder(linker, default_batch_size=100, telemetry=telemetry)


class TestFetchPipeline:
    """End-to-end tests over a fake HTTP API."""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_iterate_all_datasources(
        self, binder: DataBinder, api: FakeApi, metrics: FetchMetrics
    ) -> None:
        """Batches arrive per datasource in order, with failures isolated."""
        batches = [batch async for batch in binder.iterate()]

        summary = [
            (b.metadata.datasource_id, len(b.data), b.metadata.error is not None)
            for b in batches
        ]
        assert summary == [
            ("people", 100, False),
            ("people", 100, False),
            ("people", 50, False),
            ("orders", 0, True),
            ("stats", 2, False),
        ]

        assert batches[0].data[0] == {"full_name": "person-0", "age": 0}
        assert batches[2].metadata.has_next_page is False
        assert "404" in (batches[3].metadata.error or "")

        people_request = api.requests[0]
        assert people_request.url.path == "/people"
        assert "page" not in people_request.url.params
        assert people_request.headers["authorization"] == "Bearer people-token"

        stats_paths = [r.url.path for r in api.requests if r.url.host.startswith("stats")]
        assert stats_paths == ["/v2/summary", "/v2/summary"]

        assert metrics.batches_total == 5
        assert metrics.batch_errors_total == 1
        assert metrics.items_total == 252
        assert metrics.retries_total == 1
        assert metrics.failures_total == {"NOT_FOUND": 1}

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_fetch_all_full_format(self, binder: DataBinder) -> None:
        """fetch_all in full format returns raw responses per datasource."""
        results = await binder.fetch_all(FetchOptions(datasource_ids=["stats"]))

        stats = results["stats"]
        assert stats.status == 200
        assert stats.data == [{"k": "a"}, {"k": "b"}]

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_fetch_all_propagates_taxonomy_errors(
        self, binder: DataBinder
    ) -> None:
        """A failing datasource raises its taxonomy error from fetch_all."""
        with pytest.raises(NotFoundError):
            await binder.fetch_all(FetchOptions(datasource_ids=["orders"]))

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_iterator_format_via_fetch_all(
        self, binder: DataBinder, recording: RecordingTelemetry
    ) -> None:
        """The iterator format streams batches for the selected ids."""
        iterator = await binder.fetch_all(
            FetchOptions(
                response_format=ResponseFormat.ITERATOR,
                datasource_ids=["people"],
                batch_size=125,
            )
        )

        sizes = [len(batch.data) async for batch in iterator]

        assert sizes == [125, 125]
        assert recording.events
