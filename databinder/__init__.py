"""databinder: resilient async data fetching over REST datasources."""

from databinder.core import (
    BatchIterator,
    DataBinder,
    DatasourceLinkConfig,
    Linker,
    MethodConfig,
)
from databinder.datasources import (
    REST_API_DEFINITION,
    RestApiDatasource,
    create_rest_api_based_datasource,
)
from databinder.fetch import (
    AuthConfig,
    AuthOverride,
    AuthType,
    AuthenticationError,
    Batch,
    BatchMetadata,
    FetchError,
    FetchErrorKind,
    FetchOptions,
    FetchTimeoutError,
    InvalidConfigError,
    NetworkError,
    NotFoundError,
    ResponseFormat,
    RestApiConfig,
    RestApiFetcher,
    RetryPolicy,
    fetch_data,
    with_retry,
)


__version__ = "0.1.0"

__all__ = [
    "REST_API_DEFINITION",
    "AuthConfig",
    "AuthOverride",
    "AuthType",
    "AuthenticationError",
    "Batch",
    "BatchIterator",
    "BatchMetadata",
    "DataBinder",
    "DatasourceLinkConfig",
    "FetchError",
    "FetchErrorKind",
    "FetchOptions",
    "FetchTimeoutError",
    "InvalidConfigError",
    "Linker",
    "MethodConfig",
    "NetworkError",
    "NotFoundError",
    "ResponseFormat",
    "RestApiConfig",
    "RestApiDatasource",
    "RestApiFetcher",
    "RetryPolicy",
    "create_rest_api_based_datasource",
    "fetch_data",
    "with_retry",
]
