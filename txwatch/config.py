"""Application configuration."""
import logging
from functools import lru_cache
from typing import Dict, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

from txwatch.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENDPOINTS_FORMAT_ERROR = "ETH_ENDPOINTS must be in the form of '<name>=<endpoint>'"


def parse_chain_endpoints(raw: str) -> Dict[str, str]:
    """
    Parse a comma separated list of ``name=endpoint`` pairs.

    Every entry must contain exactly one ``=``; anything else (including an
    empty list or a trailing comma) is a configuration error.
    """
    endpoints: Dict[str, str] = {}
    for entry in raw.split(","):
        parts = entry.strip().split("=")
        if len(parts) != 2:
            raise ConfigurationError(ENDPOINTS_FORMAT_ERROR, details=entry.strip() or None)
        name = parts[0].strip()
        endpoint = parts[1].strip()
        if not name or not endpoint:
            raise ConfigurationError(ENDPOINTS_FORMAT_ERROR, details=entry.strip())
        endpoints[name] = endpoint
    return endpoints


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Database
    db_host: str = "localhost"
    db_port: int = 5432
    db_user: str = "postgres"
    db_name: str = "txwatch"
    db_password: str = ""
    database_url: Optional[str] = Field(
        default=None,
        description="Full async DSN, overrides the DB_* parts when set",
    )
    auto_migrate: bool = True

    # Chains
    eth_endpoints: str = ""
    chain_rpc_timeout_seconds: float = Field(default=10.0, gt=0)
    chain_rpc_retry_attempts: int = Field(default=3, ge=1)

    # Monitor
    checks_timer: int = Field(default=60, ge=0, description="Seconds between sweeps")
    sweep_workers: int = Field(default=10, ge=1)
    healthcheck_interval: int = Field(default=10, ge=1)

    # HTTP
    port: int = 8080

    # Environment
    environment: str = "development"

    @model_validator(mode="after")
    def process_database_url(self):
        """Build the async DSN from the DB_* parts unless given explicitly."""
        if self.database_url:
            self.database_url = self.database_url.strip()
            # Convert postgresql:// to postgresql+asyncpg:// for async driver
            if self.database_url.startswith("postgresql://"):
                self.database_url = self.database_url.replace(
                    "postgresql://", "postgresql+asyncpg://", 1
                )
        else:
            self.database_url = URL.create(
                "postgresql+asyncpg",
                username=self.db_user,
                password=self.db_password or None,
                host=self.db_host,
                port=self.db_port,
                database=self.db_name,
            ).render_as_string(hide_password=False)
        return self

    @property
    def database_url_sync(self) -> str:
        """DSN for synchronous tooling (alembic)."""
        return self.database_url.replace("+asyncpg", "").replace("+aiosqlite", "")

    @property
    def chain_endpoints(self) -> Dict[str, str]:
        """Parsed ETH_ENDPOINTS; raises ConfigurationError when malformed."""
        return parse_chain_endpoints(self.eth_endpoints)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()

    # Hide credentials
    db_url_masked = settings.database_url.split("@")[-1]
    logger.info(f"Settings loaded - database: ...@{db_url_masked}, sweep every {settings.checks_timer}s")

    return settings
