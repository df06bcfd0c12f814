"""Configuration models for REST datasources."""

from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

from databinder.fetch.constants import DEFAULT_SOURCE_TAG


class AuthType(str, Enum):
    """Supported authentication schemes."""

    BEARER = "bearer"
    BASIC = "basic"
    COOKIE = "cookie"
    CUSTOM = "custom"


class AuthConfig(BaseModel):
    """Datasource-level authentication.

    Only the fields relevant to ``type`` are read: ``token`` for bearer,
    ``username``/``password`` for basic, ``cookies`` for cookie, and
    ``header_name``/``header_value`` for custom.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: AuthType
    token: str | None = None
    username: str | None = None
    password: str | None = None
    cookies: dict[str, str] = Field(default_factory=dict)
    header_name: str | None = None
    header_value: str | None = None


class AuthOverride(BaseModel):
    """Per-call authentication override.

    An override whose ``type`` differs from the datasource's replaces it for
    the call; otherwise its fields patch the datasource values.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    type: AuthType | None = None
    token: str | None = None
    username: str | None = None
    password: str | None = None
    cookies: dict[str, str] = Field(default_factory=dict)
    header_name: str | None = None
    header_value: str | None = None


class RestApiConfig(BaseModel):
    """Resolved configuration for one REST datasource.

    ``base_url`` is optional here so that a missing value surfaces as an
    ``InvalidConfigError`` when a request is built.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_ms: Annotated[int, Field(ge=1)] | None = None
    endpoints: dict[str, str] = Field(
        default_factory=dict, description="Logical endpoint name to path"
    )
    default_endpoint: str | None = None
    auth: AuthConfig | None = None
    source: Annotated[str, Field(min_length=1)] = DEFAULT_SOURCE_TAG
    extensions: dict[str, Any] = Field(
        default_factory=dict, description="Provider-specific settings"
    )

    def merged_with(self, overrides: "RestApiConfig") -> "RestApiConfig":
        """Layer explicitly-set fields of ``overrides`` on top of this config.

        Args:
            overrides: Configuration whose set fields take priority.

        Returns:
            New merged configuration.
        """
        update = {name: getattr(overrides, name) for name in overrides.model_fields_set}
        return self.model_copy(update=update)
