"""Centralized configuration for research-search using Pydantic Settings."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from research_search.domain.search import MAX_LIMIT


class ObservabilityCollectorConfig(BaseModel):
    """Configuration for OTLP trace and metric export."""

    model_config = {"extra": "forbid"}

    enabled: Annotated[
        bool,
        Field(description="Enable OTLP export to an external collector"),
    ] = False

    otlp_protocol: Annotated[
        Literal["http", "grpc"],
        Field(description="OTLP transport protocol"),
    ] = "grpc"

    collector_endpoint: Annotated[
        str,
        Field(
            description="OTLP collector endpoint (HTTP uses /v1/traces)",
            examples=["http://localhost:4317", "http://localhost:4318/v1/traces"],
        ),
    ] = "http://localhost:4317"

    headers: Annotated[
        dict[str, str],
        Field(description="Optional headers to include with OTLP requests"),
    ] = Field(default_factory=dict)

    timeout_seconds: Annotated[
        int,
        Field(ge=1, le=60, description="OTLP exporter timeout in seconds"),
    ] = 10

    grpc_insecure: Annotated[
        bool,
        Field(description="Allow insecure gRPC (plaintext) connections"),
    ] = True

    resource_attributes: Annotated[
        dict[str, str],
        Field(description="Additional OpenTelemetry resource attributes"),
    ] = Field(default_factory=dict)


class Settings(BaseSettings):
    """Strictly typed configuration loaded from environment variables.

    Nested observability settings use a double underscore, e.g.
    ``OBSERVABILITY__ENABLED=true``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",  # Ignore extra env vars not defined in model
    )

    # Data provider
    article_provider_url: str = Field(default="", description="Base URL of the CMS article feed")
    provider_timeout_seconds: float = Field(
        default=10.0, gt=0, description="Timeout for each article provider fetch in seconds"
    )

    # Query settings
    default_limit: int = Field(default=20, ge=1, le=MAX_LIMIT, description="Default page size for search results")
    max_limit: int = Field(default=MAX_LIMIT, ge=1, le=MAX_LIMIT, description="Largest page size a caller may request")
    snippet_max_chars: int = Field(default=300, ge=40, description="Maximum snippet length for search results")
    snippet_context_chars: int = Field(default=100, ge=10, description="Context kept around the first match")
    suggestion_limit: int = Field(default=5, ge=1, le=20, description="Default number of autocomplete suggestions")
    popular_terms_limit: int = Field(default=10, ge=1, le=50, description="Default number of popular terms")

    # Index lifecycle
    lazy_initialize: bool = Field(default=True, description="Build the index on the first query if it was never built")
    index_refresh_interval_seconds: int = Field(
        default=300,
        ge=0,
        description="Age after which a query schedules a background incremental refresh (0 disables)",
    )

    # Server settings
    host: str = Field(default="127.0.0.1", description="HTTP server host")
    port: int = Field(default=8080, ge=1, le=65535, description="HTTP server port")

    # Logging
    log_level: str = Field(default="info", description="Logging level")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    observability: ObservabilityCollectorConfig = Field(default_factory=ObservabilityCollectorConfig)

    @model_validator(mode="after")
    def _check_limits(self) -> "Settings":
        if self.default_limit > self.max_limit:
            raise ValueError("DEFAULT_LIMIT must not exceed MAX_LIMIT")
        return self
