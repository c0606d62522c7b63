"""Configuration for polenta-mcp."""

from pathlib import Path

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_env_files() -> list[Path]:
    """Get list of .env files to load, in priority order."""
    env_files = []
    cwd_env = Path(".env")
    if cwd_env.exists():
        env_files.append(cwd_env)
    return env_files


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=_get_env_files(),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ==========================================================================
    # Presto / Trino connection
    # ==========================================================================

    presto_url: str = Field(
        default="",
        description="SQLAlchemy URL of the engine (e.g., trino://user@host:8080/hive/default)",
    )
    presto_user: str = Field(default="", description="Username, if not part of the URL")
    presto_password: str = Field(default="", description="Password (optional)")
    presto_verify_ssl: bool = Field(
        default=True,
        description="Verify TLS certificates when connecting over https",
    )

    # ==========================================================================
    # Pool and execution policy
    # ==========================================================================

    presto_max_pool_size: int = Field(
        default=10, ge=1, description="Maximum number of pooled connections"
    )
    presto_connection_timeout_ms: int = Field(
        default=30000, ge=0, description="Maximum wait for a pooled connection"
    )
    presto_query_timeout_ms: int = Field(
        default=0, ge=0, description="Per-attempt query timeout (0 disables it)"
    )
    presto_max_retries: int = Field(
        default=3, ge=1, description="Maximum attempts for a query that fails transiently"
    )
    presto_retry_backoff_ms: int = Field(
        default=1000, ge=0, description="Fixed delay between attempts"
    )
    presto_max_rows: int = Field(
        default=10, ge=1, description="Row cap for data-returning queries"
    )

    # ==========================================================================
    # MCP server
    # ==========================================================================

    mcp_server_name: str = Field(default="polenta-mcp", description="Advertised server name")
    mcp_server_version: str = Field(default="0.3.0", description="Advertised server version")
    mcp_server_description: str = Field(
        default="Natural language and SQL access to the data lake",
        description="Advertised server description",
    )
    mcp_host: str = Field(default="0.0.0.0", description="Host to bind the HTTP server")
    mcp_port: int = Field(default=8000, description="Port for the HTTP server")
    mcp_path: str = Field(default="/mcp", description="Path of the JSON-RPC endpoint")

    # ==========================================================================
    # Metadata cache
    # ==========================================================================

    load_metadata_on_startup: bool = Field(
        default=True,
        description="Load the schema/table/column snapshot when the server starts",
    )
    metadata_refresh_seconds: int = Field(
        default=0,
        ge=0,
        description="Interval for background metadata refresh (0 keeps the startup snapshot)",
    )

    log_level: str = Field(default="INFO", description="Root log level")

    @model_validator(mode="after")
    def strip_url(self) -> "Settings":
        """Tolerate quoted or padded URLs coming from .env files."""
        self.presto_url = self.presto_url.strip().strip('"').strip("'")
        return self

    @property
    def connection_timeout_seconds(self) -> float:
        return self.presto_connection_timeout_ms / 1000

    @property
    def query_timeout_seconds(self) -> float:
        return self.presto_query_timeout_ms / 1000

    @property
    def retry_backoff_seconds(self) -> float:
        return self.presto_retry_backoff_ms / 1000


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset cached settings (useful for testing)."""
    global _settings
    _settings = None
