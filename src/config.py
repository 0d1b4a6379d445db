"""Centralized configuration using Pydantic BaseSettings"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application configuration with environment variable support

    Built once at startup and passed to services; instances are immutable.
    """

    # Database
    db_path: str = Field(default="./data/chat.db", description="SQLite database file path")

    # Embedding provider (Ollama-compatible /api/embeddings endpoint)
    ollama_base_url: str = Field(
        default="http://localhost:11434", description="Base URL of the embedding provider"
    )
    embedding_model: str = Field(
        default="nomic-embed-text:latest", description="Embedding model requested from provider"
    )
    embedding_timeout_seconds: float = Field(
        default=30.0, gt=0, le=300, description="Timeout for a single embedding request"
    )
    min_text_length: int = Field(
        default=3, ge=1, description="Minimum trimmed text length worth embedding or searching"
    )
    embedding_max_concurrent_tasks: int = Field(
        default=8,
        ge=1,
        le=256,
        description="Max in-flight provider calls from background embedding tasks",
    )

    # Search
    similarity_threshold: float = Field(
        default=0.3, ge=-1.0, le=1.0, description="Minimum cosine similarity for a semantic hit"
    )
    search_result_limit: int = Field(
        default=50, ge=1, le=500, description="Maximum number of hits returned by a search"
    )
    keyword_similarity_placeholder: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Similarity reported for keyword fallback hits",
    )

    # Backfill
    backfill_default_limit: int = Field(
        default=100, ge=1, le=10000, description="Default number of messages per backfill run"
    )
    backfill_max_errors: int = Field(
        default=5, ge=0, le=100, description="Number of per-item errors reported by a backfill"
    )
    backfill_schedule_enabled: bool = Field(
        default=False, description="Run the backfill sweep periodically in the server"
    )
    backfill_interval_hours: int = Field(
        default=6, ge=1, le=168, description="Interval between scheduled backfill sweeps"
    )

    # Chat
    default_chat_model: str = Field(
        default="qwen2.5:0.5b", description="Chat model recorded when the client sends none"
    )

    # MCP Server
    mcp_host: str = Field(default="0.0.0.0", description="MCP server bind address")
    mcp_port: int = Field(default=8080, ge=1024, le=65535, description="MCP server port")

    # OpenTelemetry
    otel_logging_enabled: bool = Field(default=False, description="Enable OpenTelemetry logging")
    otel_tracing_enabled: bool = Field(
        default=False, description="Enable OpenTelemetry tracing for HTTP requests"
    )
    otel_endpoint: str = Field(
        default="http://localhost:4318",
        description="OpenTelemetry collector endpoint (HTTP/protobuf)",
    )
    otel_service_name: str = Field(
        default="chat-semantic-search", description="Service name for OpenTelemetry"
    )
    otel_service_version: str = Field(
        default="1.0.0", description="Service version for OpenTelemetry"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )


_config: AppConfig | None = None


def get_config() -> AppConfig:
    """Get or create the process-wide configuration (entry points only)"""
    global _config
    if _config is None:
        _config = AppConfig()
    return _config
