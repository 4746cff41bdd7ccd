"""
Connector settings, read from the environment (MODULEDB_*) or a local .env file.

Per-module connection details are not settings: they are passed to the
connector as ModuleConfig objects.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MODULEDB_",
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    POOL_SIZE: int = Field(
        default=10, ge=1, description="Max open connections per module pool"
    )
    POOL_MAX_AGE_SEC: float = Field(
        default=600.0, gt=0, description="Evict pooled connections older than this"
    )
    POOL_PING_IDLE_SEC: float = Field(
        default=30.0,
        ge=0,
        description="Ping pooled connections idle longer than this on checkout",
    )
    CONNECT_TIMEOUT: int = Field(
        default=10, ge=1, description="Driver connect timeout in seconds"
    )
    STATEMENT_TIMEOUT: float | None = Field(
        default=None,
        description="Per-statement timeout in seconds; None or <= 0 disables it",
    )
    REQUIRE_INIT_BEFORE_QUERY: bool = Field(
        default=False,
        description="Reject queries until init() has verified every module",
    )


settings = Settings()
