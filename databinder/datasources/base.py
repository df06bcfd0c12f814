"""Datasource interface shared by the linker and the binder."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from databinder.fetch.config import RestApiConfig
from databinder.fetch.models import FetchOptions


DatasourceMethod = Callable[[FetchOptions], Awaitable[Any]]


@runtime_checkable
class Datasource(Protocol):
    """A configured source exposing named async methods."""

    id: str
    config: RestApiConfig
    methods: dict[str, DatasourceMethod]


@dataclass(frozen=True)
class DatasourceDefinition:
    """Factory for datasource instances of one kind.

    Attributes:
        id: Definition identifier (e.g. ``rest-api``).
        name: Display name.
        description: Short description.
        create_instance: Builds an instance from a configuration.
    """

    id: str
    name: str
    create_instance: Callable[[RestApiConfig, str], Datasource]
    description: str = ""
