from __future__ import annotations

import secrets
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Environment
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    debug: bool = Field(default=False, validation_alias="DEBUG")

    # Server
    api_prefix: str = Field(default="/api", validation_alias="API_PREFIX")

    # Security
    secret_key: str = Field(default_factory=lambda: secrets.token_urlsafe(32), validation_alias="SECRET_KEY")
    access_token_expire_minutes: int = Field(default=60 * 24, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    algorithm: str = Field(default="HS256", validation_alias="ALGORITHM")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # CORS
    allowed_origins: str = Field(default="http://localhost:3000,http://127.0.0.1:3000", validation_alias="ALLOWED_ORIGINS")
    allowed_methods: str = Field(default="GET,POST,PUT,DELETE,OPTIONS", validation_alias="ALLOWED_METHODS")
    allowed_headers: str = Field(default="*", validation_alias="ALLOWED_HEADERS")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    redis_max_connections: int = Field(default=20, validation_alias="REDIS_MAX_CONNECTIONS")
    redis_socket_timeout: int = Field(default=5, validation_alias="REDIS_SOCKET_TIMEOUT")
    redis_socket_connect_timeout: int = Field(default=5, validation_alias="REDIS_SOCKET_CONNECT_TIMEOUT")

    # Lead assignment
    assignment_cursor_backend: str = Field(default="memory", validation_alias="ASSIGNMENT_CURSOR_BACKEND")
    assignment_require_active_subscription: bool = Field(
        default=True, validation_alias="ASSIGNMENT_REQUIRE_ACTIVE_SUBSCRIPTION"
    )

    # Realtime (Pusher-compatible)
    pusher_enabled: bool = Field(default=False, validation_alias="PUSHER_ENABLED")
    pusher_app_id: Optional[str] = Field(default=None, validation_alias="PUSHER_APP_ID")
    pusher_app_key: Optional[str] = Field(default=None, validation_alias="PUSHER_APP_KEY")
    pusher_app_secret: Optional[str] = Field(default=None, validation_alias="PUSHER_APP_SECRET")
    pusher_app_cluster: Optional[str] = Field(default=None, validation_alias="PUSHER_APP_CLUSTER")
    pusher_ws_url: Optional[str] = Field(default=None, validation_alias="PUSHER_WS_URL")

    # In-memory store bootstrap
    seed_file: Optional[str] = Field(default=None, validation_alias="SEED_FILE")

    # Client SDK
    api_url: str = Field(default="http://localhost:8000/api", validation_alias="API_URL")
    http_timeout_seconds: float = Field(default=10.0, validation_alias="HTTP_TIMEOUT_SECONDS")
    notification_poll_interval_seconds: float = Field(
        default=30.0, validation_alias="NOTIFICATION_POLL_INTERVAL_SECONDS"
    )
    realtime_connect_timeout_seconds: float = Field(
        default=10.0, validation_alias="REALTIME_CONNECT_TIMEOUT_SECONDS"
    )
    realtime_reconnect_delay_seconds: float = Field(
        default=1.0, validation_alias="REALTIME_RECONNECT_DELAY_SECONDS"
    )
    realtime_max_reconnect_delay_seconds: float = Field(
        default=30.0, validation_alias="REALTIME_MAX_RECONNECT_DELAY_SECONDS"
    )

    # Monitoring
    sentry_dsn: Optional[str] = Field(default=None, validation_alias="SENTRY_DSN")

    @field_validator("environment")
    def validate_environment(cls, v):
        valid_envs = ["development", "testing", "staging", "production"]
        if v not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}")
        return v

    @field_validator("log_level")
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    def validate_log_format(cls, v):
        valid_formats = ["json", "console", "plain"]
        if v not in valid_formats:
            raise ValueError(f"log_format must be one of {valid_formats}")
        return v

    @field_validator("secret_key")
    def validate_secret_key(cls, v):
        if len(v) < 32:
            raise ValueError("secret_key must be at least 32 characters")
        return v

    @field_validator("assignment_cursor_backend")
    def validate_cursor_backend(cls, v):
        if v not in ("memory", "redis"):
            raise ValueError("assignment_cursor_backend must be 'memory' or 'redis'")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"

    @property
    def realtime_configured(self) -> bool:
        """Realtime is usable only when switched on and fully credentialed."""
        return bool(
            self.pusher_enabled
            and self.pusher_app_key
            and self.pusher_app_secret
            and (self.pusher_app_cluster or self.pusher_ws_url)
        )

    def origins(self) -> List[str]:
        if self.allowed_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    def methods(self) -> List[str]:
        return [method.strip() for method in self.allowed_methods.split(",") if method.strip()]

    def headers(self) -> List[str]:
        return [header.strip() for header in self.allowed_headers.split(",") if header.strip()]


settings = Settings()
