"""Generic REST datasource and a factory for REST-based specializations."""

from collections.abc import Awaitable, Callable, Mapping

import structlog

from databinder.datasources.base import DatasourceDefinition, DatasourceMethod
from databinder.fetch.client import FetchResponse, RestApiFetcher
from databinder.fetch.config import RestApiConfig
from databinder.fetch.constants import DEFAULT_ENDPOINT, DEFAULT_SEARCH_ENDPOINT
from databinder.fetch.errors import InvalidConfigError
from databinder.fetch.models import FetchOptions


logger = structlog.get_logger()

# Extra methods receive the datasource and the call options.
ExtraMethod = Callable[["RestApiDatasource", FetchOptions], Awaitable[FetchResponse]]


class RestApiDatasource:
    """REST datasource with ``default``, ``get_by_id`` and ``search`` methods.

    Extra methods receive the datasource as their first argument so they can
    call ``fetch`` with their own endpoints.
    """

    def __init__(
        self,
        config: RestApiConfig,
        datasource_id: str = "",
        extra_methods: Mapping[str, ExtraMethod] | None = None,
        fetcher: RestApiFetcher | None = None,
    ) -> None:
        """Initialize the datasource.

        Args:
            config: Datasource configuration.
            datasource_id: Identifier used by the linker.
            extra_methods: Additional named methods.
            fetcher: Fetch executor (a default one is created if omitted).

        Raises:
            InvalidConfigError: If ``config.base_url`` is missing.
        """
        if not config.base_url:
            msg = "REST API datasource requires a base_url configuration"
            raise InvalidConfigError(msg, property_name="base_url", expected_type="url")

        self.id = datasource_id
        self.config = config
        self._fetcher = fetcher or RestApiFetcher()
        self._log = logger.bind(component="datasource", datasource_id=datasource_id)

        self.methods: dict[str, DatasourceMethod] = {
            "default": self.default,
            "get_by_id": self.get_by_id,
            "search": self.search,
        }
        for name, method in (extra_methods or {}).items():
            self.methods[name] = self._bind_extra(method)

    def _bind_extra(self, method: ExtraMethod) -> DatasourceMethod:
        async def bound(options: FetchOptions | None = None) -> FetchResponse:
            return await method(self, options or FetchOptions())

        return bound

    async def fetch(
        self,
        endpoint: str,
        options: FetchOptions | None = None,
    ) -> FetchResponse:
        """Fetch an endpoint of this datasource.

        Args:
            endpoint: Logical endpoint name or path.
            options: Per-call options.

        Returns:
            Rendered response.
        """
        return await self._fetcher.fetch(self.config, endpoint, options)

    async def default(self, options: FetchOptions | None = None) -> FetchResponse:
        """Fetch the configured default endpoint."""
        options = options or FetchOptions()
        endpoint = options.endpoint or self.config.default_endpoint or DEFAULT_ENDPOINT
        return await self.fetch(endpoint, options)

    async def get_by_id(self, options: FetchOptions | None = None) -> FetchResponse:
        """Fetch one resource by id.

        The id comes from ``options.id`` (or ``extensions["id"]``) and is
        appended to the endpoint after trimming one trailing slash.

        Raises:
            InvalidConfigError: If no id is given.
        """
        options = options or FetchOptions()
        resource_id = options.id or options.extensions.get("id")
        if not resource_id:
            msg = "get_by_id requires an id option"
            raise InvalidConfigError(msg, property_name="id", expected_type="str")

        base = options.endpoint or self.config.default_endpoint or DEFAULT_ENDPOINT
        base = base.removesuffix("/")
        endpoint = f"{base}/{resource_id}"
        return await self.fetch(endpoint, options.model_copy(update={"endpoint": None}))

    async def search(self, options: FetchOptions | None = None) -> FetchResponse:
        """Fetch the search endpoint."""
        options = options or FetchOptions()
        endpoint = (
            options.endpoint or self.config.default_endpoint or DEFAULT_SEARCH_ENDPOINT
        )
        return await self.fetch(endpoint, options)


def create_rest_api_based_datasource(
    definition_id: str,
    name: str,
    description: str = "",
    base_config: RestApiConfig | None = None,
    extra_methods: Mapping[str, ExtraMethod] | None = None,
    fetcher: RestApiFetcher | None = None,
) -> DatasourceDefinition:
    """Create a definition for a specialized REST datasource.

    Instances merge ``base_config`` underneath the configuration they are
    created with, and carry the given extra methods.

    Args:
        definition_id: Identifier of the specialization.
        name: Display name.
        description: Short description.
        base_config: Defaults for every instance.
        extra_methods: Methods added to every instance.
        fetcher: Shared fetch executor.

    Returns:
        The datasource definition.
    """

    def create_instance(config: RestApiConfig, instance_id: str) -> RestApiDatasource:
        merged = base_config.merged_with(config) if base_config else config
        return RestApiDatasource(
            merged,
            datasource_id=instance_id,
            extra_methods=extra_methods,
            fetcher=fetcher,
        )

    return DatasourceDefinition(
        id=definition_id,
        name=name,
        description=description,
        create_instance=create_instance,
    )


REST_API_DEFINITION = create_rest_api_based_datasource(
    "rest-api",
    "REST API Datasource",
    "Generic REST API datasource with pagination, filtering and authentication",
)
