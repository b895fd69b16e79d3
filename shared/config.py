"""
Shared configuration management for the SRS Rules Proxy.
"""

import re
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_ALLOWED_ORIGINS = [
    "https://frontend-code-srs-rules.vercel.app",
    "http://localhost:5173",
]

_SQL_IDENTIFIER = re.compile(r"^[A-Za-z][A-Za-z0-9_$#]{0,127}$")


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Environment
    env: str = Field(default="local", validation_alias="RULES_ENV")
    log_level: str = Field(default="info", validation_alias="RULES_LOG_LEVEL")

    # CORS
    allowed_origins: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS),
        validation_alias="RULES_ALLOWED_ORIGINS",
    )

    # Cache
    cache_ttl_seconds: float = Field(
        default=3600, gt=0, validation_alias="RULES_CACHE_TTL_SECONDS"
    )
    cache_check_period_seconds: float = Field(
        default=120,
        gt=0,
        validation_alias="RULES_CACHE_CHECK_PERIOD_SECONDS",
    )

    # Database
    db_timeout_seconds: Optional[float] = Field(
        default=30, ge=0, validation_alias="RULES_DB_TIMEOUT_SECONDS"
    )
    rule_table: str = Field(default="SRS_RULES", validation_alias="RULES_TABLE")
    rule_name_column: str = Field(
        default="RULE_NAME", validation_alias="RULES_NAME_COLUMN"
    )

    @field_validator("rule_table", "rule_name_column")
    @classmethod
    def _check_identifier(cls, value: str) -> str:
        # Interpolated into SQL text, so only plain identifiers are accepted.
        if not _SQL_IDENTIFIER.match(value):
            raise ValueError(f"not a plain SQL identifier: {value!r}")
        return value.upper()

    @property
    def db_timeout(self) -> Optional[float]:
        """Deadline for connect + query, or None when disabled."""
        if not self.db_timeout_seconds:
            return None
        return self.db_timeout_seconds


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str = "rules"
    port: int = Field(default=8080, validation_alias="PORT")
    host: str = Field(default="0.0.0.0", validation_alias="RULES_HOST")


def get_config(service_name: str, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, **overrides)
