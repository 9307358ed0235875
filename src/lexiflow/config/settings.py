"""
Configuration system with Pydantic Settings and validation.

Every section can be overridden from the environment using the ``LEX_``
prefix and ``__`` as the nesting delimiter, e.g.
``LEX_PROVIDERS__OPENAI__API_KEY`` or ``LEX_RETRY__MAX_ATTEMPTS``.
"""

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ModelEndpoint(BaseModel):
    """Connection settings for one model provider API."""

    name: str = Field(..., description="Provider name (e.g., 'openai')")
    base_url: str = Field(..., description="Base URL for the provider API")
    api_key: str | None = Field(None, description="API key if required")
    timeout: float = Field(120.0, gt=0, description="Request timeout in seconds")

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")


class OpenAIEndpoint(ModelEndpoint):
    name: str = "openai"
    base_url: str = "https://api.openai.com/v1"


class AnthropicEndpoint(ModelEndpoint):
    name: str = "anthropic"
    base_url: str = "https://api.anthropic.com"


class ProvidersConfig(BaseModel):
    """Configuration for all provider endpoints."""

    # Defaults live on the endpoint classes so a partial env override
    # (e.g. only the API key) keeps the remaining fields
    openai: OpenAIEndpoint = Field(default_factory=OpenAIEndpoint)
    anthropic: AnthropicEndpoint = Field(default_factory=AnthropicEndpoint)


class RoutingConfig(BaseModel):
    """Static model selection per call site."""

    planner_model: str = Field("gpt-4o")
    text_model: str = Field("gpt-4o")
    document_model: str = Field("claude-3-7-sonnet-20250219")
    rewrite_model: str = Field("gpt-3.5-turbo")
    embedding_model: str = Field("text-embedding-3-small")


class RetryConfig(BaseModel):
    """Backoff policy applied to every individual model call."""

    max_attempts: int = Field(5, gt=0)
    initial_delay_ms: float = Field(1000.0, ge=0)
    max_delay_ms: float = Field(32000.0, ge=0)
    backoff_factor: float = Field(2.0, ge=1.0)
    jitter_factor: float = Field(0.25, ge=0.0, le=1.0)
    retryable_status_codes: frozenset[int] = Field(
        default_factory=lambda: frozenset({429, 500, 502, 503, 504, 529})
    )


class WorkflowConfig(BaseModel):
    """Configuration for workflow mode execution."""

    enable_progress: bool = Field(True)
    final_temperature: float = Field(0.0, ge=0.0, le=2.0)
    max_tokens: int = Field(4096, gt=0)
    thinking_budget_tokens: int | None = Field(
        1024, description="Extended thinking budget for document-capable steps"
    )
    max_duration_seconds: float | None = Field(
        None, gt=0, description="Whole-workflow deadline checked before every model call"
    )


class RAGConfig(BaseModel):
    """Configuration for the retrieval collaborator."""

    similarity_threshold: float = Field(0.4, ge=0.0, le=1.0)
    max_results: int = Field(4, gt=0)
    fallback_top_chunks: int = Field(4, gt=0)
    chunk_size: int = Field(1000, gt=0)
    chunk_overlap: int = Field(100, ge=0)
    rewrite_queries: bool = Field(True)


class ObservabilityConfig(BaseModel):
    """Configuration for observability and monitoring."""

    enable_tracing: bool = Field(True)
    enable_metrics: bool = Field(True)
    log_level: str = Field("INFO")

    # OpenTelemetry configuration
    otlp_endpoint: str | None = Field(None)
    service_name: str = Field("lexiflow")
    service_version: str = Field("1.0.0")


class APIConfig(BaseModel):
    """Configuration for API server."""

    host: str = Field("0.0.0.0")
    port: int = Field(8000, gt=0, le=65535)
    reload: bool = Field(False)
    workers: int = Field(1, gt=0)
    enable_cors: bool = Field(True)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    enable_docs: bool = Field(True)


class Settings(BaseSettings):
    """Main application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_prefix="LEX_", env_nested_delimiter="__", case_sensitive=False, extra="ignore"
    )

    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    workflow: WorkflowConfig = Field(default_factory=WorkflowConfig)
    rag: RAGConfig = Field(default_factory=RAGConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    api: APIConfig = Field(default_factory=APIConfig)

    environment: str = Field(
        "development", description="Environment: development, staging, production"
    )
    debug: bool = Field(False)

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
