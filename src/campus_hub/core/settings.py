"""Application settings and configuration.

This module defines all configuration options for Campus Hub, covering both
the backend service and the client sync layer. Settings are loaded from
environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Campus Hub", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(default="campus-hub-dev-secret", alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )

    # Database configuration
    database_url: str = Field(default="sqlite:///./campus_hub.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Communities
    community_free_tier_limit: int = Field(default=3, alias="COMMUNITY_FREE_TIER_LIMIT")
    community_default_max_members: int = Field(
        default=50,
        alias="COMMUNITY_DEFAULT_MAX_MEMBERS",
    )
    notification_page_size: int = Field(default=50, alias="NOTIFICATION_PAGE_SIZE")

    # Realtime change feed
    changefeed_retention: int = Field(default=5000, alias="CHANGEFEED_RETENTION")
    changefeed_max_wait_seconds: float = Field(
        default=25.0,
        alias="CHANGEFEED_MAX_WAIT_SECONDS",
    )
    changefeed_batch_size: int = Field(default=200, alias="CHANGEFEED_BATCH_SIZE")

    # Presence (heartbeat writes last_active_at)
    presence_tracking_enabled: bool = Field(default=True, alias="PRESENCE_TRACKING_ENABLED")
    online_window_seconds: int = Field(default=120, alias="ONLINE_WINDOW_SECONDS")
    heartbeat_interval_seconds: float = Field(default=60.0, alias="HEARTBEAT_INTERVAL_SECONDS")

    # Object storage for profile and cover photos
    storage_root: str = Field(default="./storage", alias="STORAGE_ROOT")
    storage_public_url: str = Field(
        default="http://localhost:8000/storage",
        alias="STORAGE_PUBLIC_URL",
    )
    storage_max_upload_bytes: int = Field(
        default=5 * 1024 * 1024,
        alias="STORAGE_MAX_UPLOAD_BYTES",
    )

    # Client sync layer
    backend_base_url: str = Field(default="http://localhost:8000", alias="BACKEND_BASE_URL")
    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")
    realtime_poll_interval_seconds: float = Field(
        default=1.0,
        alias="REALTIME_POLL_INTERVAL_SECONDS",
    )
    realtime_long_poll_seconds: float = Field(
        default=20.0,
        alias="REALTIME_LONG_POLL_SECONDS",
    )

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling such as Alembic."""
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url


settings = Settings()
