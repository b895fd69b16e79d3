"""
Request and result models for rule lookups.
"""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from shared.errors import ValidationError


INVALID_REQUEST = "Invalid request: name or dbCreds missing"
INVALID_CREDENTIALS = "Invalid DB credentials"
NOT_CONFIGURED_STATUS = "Not Configured in DB"


def not_configured() -> Dict[str, Any]:
    """Result returned when no rule row matches the requested name."""
    return {"status": NOT_CONFIGURED_STATUS}


def is_not_configured(result: Dict[str, Any]) -> bool:
    return result == not_configured()


class DatabaseCredentials(BaseModel):
    """Caller-supplied credentials for one lookup.

    Fields are optional at parse time so that an incomplete set produces the
    service's own 400 message rather than a framework error.
    """

    model_config = ConfigDict(populate_by_name=True)

    username: Optional[str] = None
    password: Optional[SecretStr] = None
    host: Optional[str] = None
    port: Optional[Union[int, str]] = None
    service_name: Optional[str] = Field(default=None, alias="serviceName")

    def is_complete(self) -> bool:
        """True when every field is present and non-empty."""
        password = self.password.get_secret_value() if self.password is not None else None
        return all([self.username, password, self.host, self.port, self.service_name])

    @property
    def connect_string(self) -> str:
        """Easy Connect string, ``host:port/serviceName``."""
        return f"{self.host}:{self.port}/{self.service_name}"


class RuleLookupRequest(BaseModel):
    """Body of ``POST /rule``."""

    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    db_creds: Optional[DatabaseCredentials] = Field(default=None, alias="dbCreds")

    def validate_complete(self) -> None:
        """Raise ValidationError when a required field is missing."""
        if not self.name or self.db_creds is None:
            raise ValidationError(INVALID_REQUEST)
        if not self.db_creds.is_complete():
            raise ValidationError(INVALID_CREDENTIALS)

    def cache_key(self) -> str:
        """Cache key ``username@host:port/serviceName:name``.

        The password is deliberately absent: callers with the same
        non-secret fields share cached answers.
        """
        creds = self.db_creds
        return f"{creds.username}@{creds.host}:{creds.port}/{creds.service_name}:{self.name}"
