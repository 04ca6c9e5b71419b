"""Configuration management using pydantic-settings."""

from urllib.parse import quote_plus

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database settings
    db_server: str = "localhost"
    db_name: str = "taskflow"
    db_user: str = "taskflow"
    db_password: str = ""
    db_port: int = 5432
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_warmup_on_startup: bool = True
    sql_echo: bool = False

    # JWT settings
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expiration_minutes: int = 1440

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: str = "*"  # comma-separated
    log_level: str = "INFO"

    # WebSocket settings
    ws_heartbeat_interval: float = 30.0  # app-level ping period (seconds)
    ws_idle_timeout: float = 60.0  # transport idle window before force-close
    ws_max_connections_per_user: int = 20
    ws_max_message_size: int = 65536  # 64KB

    # Rate limiting (per client IP, sliding window)
    rate_limit_enabled: bool = True
    rate_limit_window_seconds: int = 900
    rate_limit_global_max: int = 100
    rate_limit_auth_max: int = 10  # login and register only

    # Pagination
    default_page_size: int = 10
    max_page_size: int = 100

    @property
    def database_url(self) -> str:
        """Build PostgreSQL async connection string."""
        return (
            f"postgresql+asyncpg://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )

    @property
    def sync_database_url(self) -> str:
        """Build PostgreSQL sync connection string for Alembic."""
        return (
            f"postgresql+psycopg2://{self.db_user}:{quote_plus(self.db_password)}"
            f"@{self.db_server}:{self.db_port}/{self.db_name}"
        )

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


# Global settings instance
settings = Settings()
