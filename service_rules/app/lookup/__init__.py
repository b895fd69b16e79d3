"""
Rule lookup package for the Rules Service.

- models: request body, credentials and the not-configured marker.
- connections: per-request connection factories (python-oracledb).
- executor: connect, run one parameterized select, release.
"""

from .connections import ConnectionFactory, OracleConnectionFactory
from .executor import RuleLookupExecutor
from .models import (
    DatabaseCredentials,
    RuleLookupRequest,
    INVALID_REQUEST,
    INVALID_CREDENTIALS,
    NOT_CONFIGURED_STATUS,
    not_configured,
    is_not_configured,
)

__all__ = [
    "ConnectionFactory",
    "OracleConnectionFactory",
    "RuleLookupExecutor",
    "DatabaseCredentials",
    "RuleLookupRequest",
    "INVALID_REQUEST",
    "INVALID_CREDENTIALS",
    "NOT_CONFIGURED_STATUS",
    "not_configured",
    "is_not_configured",
]
