"""
Structured JSON logging for the SRS Rules Proxy.

Every event carries an ISO-8601 UTC ``timestamp``, the level, the logger
name, the service name and, inside a request, the ``request_id``.
Credentials never reach the renderer.
"""

import sys
import structlog
import logging
import uuid
from typing import Any, Dict, List, Optional
from contextvars import ContextVar

from pydantic import SecretStr

request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
service_name_var: ContextVar[Optional[str]] = ContextVar('service_name', default=None)

REDACTED = "**********"
SECRET_KEYS = frozenset({"password", "passwd", "pwd", "secret"})


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp the owning service, falling back to the logger name prefix."""
    service_name = service_name_var.get()
    if not service_name:
        logger_name = event_dict.get("logger") or ""
        service_name = logger_name.split(".")[0] or None
    if service_name:
        event_dict["service"] = service_name
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Mask password-like keys and any SecretStr value."""
    for key, value in event_dict.items():
        if key.lower() in SECRET_KEYS or isinstance(value, SecretStr):
            event_dict[key] = REDACTED
    return event_dict


def build_processors() -> List[Any]:
    """Processor chain ending in the JSON renderer."""
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
        add_correlation_context,
        redact_secrets,
        structlog.processors.JSONRenderer(),
    ]


def configure_logging(service_name: str, log_level: str = "info") -> None:
    """Route structlog through stdlib logging on stdout at ``log_level``."""
    service_name_var.set(service_name)

    structlog.configure(
        processors=build_processors(),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind the request ID for the current request, generating one if absent."""
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


def clear_context():
    request_id_var.set(None)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
