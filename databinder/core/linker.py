"""Links datasource instances to their method configuration and mappings."""

from dataclasses import dataclass
from typing import Annotated

import structlog
from pydantic import BaseModel, ConfigDict, Field

from databinder.datasources.base import Datasource, DatasourceMethod
from databinder.fetch.errors import InvalidConfigError
from databinder.fetch.models import FetchOptions


logger = structlog.get_logger()

DEFAULT_METHOD_NAME = "default"


class MethodConfig(BaseModel):
    """Method to call for a datasource, with its default options."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method_name: Annotated[str, Field(min_length=1)]
    options: FetchOptions | None = None


class DatasourceLinkConfig(BaseModel):
    """Per-datasource binding configuration.

    Attributes:
        method_config: Method used when fetching without an explicit name.
        property_mapping: Item key renames (original -> new).
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    method_config: MethodConfig | None = None
    property_mapping: dict[str, str] | None = None


@dataclass(frozen=True)
class ResolvedMethod:
    """A datasource method together with its configured options."""

    method: DatasourceMethod
    method_name: str
    options: FetchOptions | None = None


class Linker:
    """Holds datasources and their binding configuration."""

    def __init__(
        self,
        datasources: list[Datasource] | None = None,
        datasource_configs: dict[str, DatasourceLinkConfig] | None = None,
    ) -> None:
        """Initialize the linker.

        Args:
            datasources: Datasource instances.
            datasource_configs: Binding configuration keyed by datasource id.

        Raises:
            InvalidConfigError: If two datasources share an id.
        """
        self._datasources: dict[str, Datasource] = {}
        self._configs: dict[str, DatasourceLinkConfig] = dict(datasource_configs or {})
        self._log = logger.bind(component="linker")

        for datasource in datasources or []:
            if datasource.id in self._datasources:
                msg = f"Datasource with ID '{datasource.id}' already exists in linker"
                raise InvalidConfigError(msg, property_name="id")
            self._datasources[datasource.id] = datasource

    @property
    def datasource_ids(self) -> list[str]:
        """Get datasource ids in insertion order."""
        return list(self._datasources)

    def get_datasource(self, datasource_id: str) -> Datasource | None:
        """Get a datasource by id, or None."""
        return self._datasources.get(datasource_id)

    def _require(self, datasource_id: str) -> Datasource:
        datasource = self._datasources.get(datasource_id)
        if datasource is None:
            msg = f"Datasource with ID '{datasource_id}' not found in linker"
            raise InvalidConfigError(msg, property_name="datasource_id")
        return datasource

    def get_method(self, datasource_id: str, method_name: str) -> DatasourceMethod:
        """Get a named method of a datasource.

        Raises:
            InvalidConfigError: If the datasource or method does not exist.
        """
        datasource = self._require(datasource_id)
        method = datasource.methods.get(method_name)
        if method is None:
            msg = f"Method '{method_name}' not found in datasource '{datasource_id}'"
            raise InvalidConfigError(msg, property_name="method_name")
        return method

    def get_method_for_datasource(self, datasource_id: str) -> ResolvedMethod | None:
        """Get the configured method for a datasource.

        Args:
            datasource_id: Datasource identifier.

        Returns:
            The configured method and options, or None if none is configured.

        Raises:
            InvalidConfigError: If the datasource or configured method is missing.
        """
        self._require(datasource_id)
        config = self._configs.get(datasource_id)
        if config is None or config.method_config is None:
            return None

        method_name = config.method_config.method_name
        return ResolvedMethod(
            method=self.get_method(datasource_id, method_name),
            method_name=method_name,
            options=config.method_config.options,
        )

    def get_mapping_for_datasource(self, datasource_id: str) -> dict[str, str] | None:
        """Get the property mapping for a datasource, if any."""
        config = self._configs.get(datasource_id)
        return config.property_mapping if config else None

    def add_datasource(
        self,
        datasource: Datasource,
        config: DatasourceLinkConfig | None = None,
    ) -> None:
        """Add a datasource with optional binding configuration.

        Raises:
            InvalidConfigError: If the id is already in use.
        """
        if datasource.id in self._datasources:
            msg = f"Datasource with ID '{datasource.id}' already exists in linker"
            raise InvalidConfigError(msg, property_name="id")
        self._datasources[datasource.id] = datasource
        if config is not None:
            self._configs[datasource.id] = config
        self._log.debug("datasource_added", datasource_id=datasource.id)

    def remove_datasource(self, datasource_id: str) -> bool:
        """Remove a datasource and its configuration.

        Returns:
            True if the datasource was present.
        """
        self._configs.pop(datasource_id, None)
        removed = self._datasources.pop(datasource_id, None) is not None
        if removed:
            self._log.debug("datasource_removed", datasource_id=datasource_id)
        return removed

    def set_mapping(self, datasource_id: str, mapping: dict[str, str]) -> None:
        """Replace the property mapping of a configured datasource.

        Raises:
            InvalidConfigError: If the datasource has no configuration.
        """
        config = self._configs.get(datasource_id)
        if config is None:
            msg = (
                f"Datasource '{datasource_id}' not found in linker. "
                "Cannot set mapping for unconfigured datasource."
            )
            raise InvalidConfigError(msg, property_name="datasource_id")
        self._configs[datasource_id] = config.model_copy(
            update={"property_mapping": dict(mapping)}
        )

    def list_methods(self, datasource_id: str) -> list[str]:
        """List method names of a datasource."""
        return list(self._require(datasource_id).methods)
