from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Beacon Relay", description="Human readable service name")
    environment: str = Field(default="development", description="Deployment environment name")
    debug: bool = Field(default=False, description="Enable debug mode")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:9100",
            "http://127.0.0.1",
            "http://127.0.0.1:9100",
        ],
        description="List of allowed CORS origins",
    )

    database_url: str = Field(
        default=f"sqlite+pysqlite:///{Path('data') / 'beacon.db'}",
        description="SQLAlchemy URL of the durable room directory store",
    )
    persistence_backend: str = Field(
        default="sql",
        description="Room directory backend: 'sql' for the database, 'memory' for ephemeral runs",
    )

    room_name_max_length: int = Field(default=50, ge=1)
    display_name_max_length: int = Field(default=30, ge=1)
    stream_title_max_length: int = Field(default=100, ge=1)
    default_stream_title: str = Field(default="Untitled Stream")

    vip_code_length: int = Field(default=6, ge=4, description="Length of generated VIP codes")
    vip_code_max_attempts: int = Field(
        default=32,
        ge=1,
        description="Collision retries before VIP code generation gives up",
    )
    vip_token_ttl_seconds: int = Field(
        default=15 * 60,
        ge=1,
        description="Lifetime of single-use VIP tokens issued on code redemption",
    )

    relay_max_tier: int = Field(default=3, ge=1, description="Deepest tier a relay node may occupy")
    relay_root_capacity: int = Field(
        default=10, ge=0, description="Number of direct relay children the host serves"
    )

    websocket_keepalive_timeout_seconds: float = Field(
        default=25.0,
        description="Idle time after which the server checks whether to ping the client",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25.0,
        description="Minimum spacing between keepalive pings",
    )

    integration_secret: str | None = Field(
        default=None,
        description="Shared secret required by the payment integration hook",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("persistence_backend", mode="before")
    @classmethod
    def normalise_backend(cls, value: str | None) -> str:
        lowered = str(value or "sql").strip().lower()
        return lowered if lowered in {"sql", "memory"} else "sql"


@lru_cache
def get_settings() -> Settings:
    return Settings()
