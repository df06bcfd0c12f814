"""Datasource implementations."""

from databinder.datasources.base import Datasource, DatasourceDefinition, DatasourceMethod
from databinder.datasources.rest_api import (
    REST_API_DEFINITION,
    ExtraMethod,
    RestApiDatasource,
    create_rest_api_based_datasource,
)


__all__ = [
    "REST_API_DEFINITION",
    "Datasource",
    "DatasourceDefinition",
    "DatasourceMethod",
    "ExtraMethod",
    "RestApiDatasource",
    "create_rest_api_based_datasource",
]
