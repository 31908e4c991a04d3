"""Configuration management using pydantic-settings."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database settings (primary document store + queue ledger)
    db_server: str = "localhost"
    db_name: str = "flatindex"
    db_user: str = "flatindex"
    db_password: str = ""
    db_port: int = 5432
    db_pool_size: int = 20
    db_max_overflow: int = 40
    sql_echo: bool = False

    # Full connection URL override (e.g. sqlite+aiosqlite:///./flatindex.db)
    db_url: Optional[str] = None

    # Search store connection URL. Defaults to the primary database.
    search_db_url: Optional[str] = None

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000

    # Redis settings (rebuild locks and arq)
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = 20
    redis_socket_timeout: float = 5.0
    redis_retry_on_timeout: bool = True
    redis_required: bool = False

    # Indexing dispatcher (in-process bounded worker pool)
    indexing_workers: int = 4
    indexing_queue_size: int = 1000
    indexing_max_attempts: int = 3
    indexing_retry_base_delay: float = 0.5

    # Reconciler settings
    reconcile_batch_size: int = 500
    rebuild_lock_ttl: int = 600  # seconds, matches the longest expected rebuild

    # ARQ Worker settings
    # Drain job: runs at these seconds within each minute (comma-separated)
    # Default "0,30" = every 30 seconds
    arq_drain_seconds: str = "0,30"

    @property
    def database_url(self) -> str:
        """Build PostgreSQL async connection string."""
        if self.db_url:
            return self.db_url
        from urllib.parse import quote_plus
        return (
            f"postgresql+asyncpg://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )

    @property
    def search_database_url(self) -> str:
        """Connection string for the search store."""
        return self.search_db_url or self.database_url

    @property
    def sync_database_url(self) -> str:
        """Build PostgreSQL sync connection string for Alembic."""
        if self.db_url:
            return self.db_url.replace("+asyncpg", "+psycopg2").replace("+aiosqlite", "")
        from urllib.parse import quote_plus
        return (
            f"postgresql+psycopg2://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )


# Global settings instance
settings = Settings()
