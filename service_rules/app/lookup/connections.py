"""
Connection factories for rule lookups.

A connection factory is any awaitable callable taking
``DatabaseCredentials`` and returning an open connection that offers
``cursor()`` (a context manager with async ``execute``/``fetchone`` and a
``description``) and async ``close()``. python-oracledb's asyncio API
satisfies that shape directly.
"""

from typing import Any, Awaitable, Callable, Optional

import oracledb

from .models import DatabaseCredentials


ConnectionFactory = Callable[[DatabaseCredentials], Awaitable[Any]]


class OracleConnectionFactory:
    """Opens one python-oracledb (thin mode) connection per call."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout

        # Rows are cached and rendered as JSON, so LOB columns come back inline.
        oracledb.defaults.fetch_lobs = False

    async def __call__(self, credentials: DatabaseCredentials):
        params = {}
        if self.timeout:
            params["tcp_connect_timeout"] = self.timeout

        connection = await oracledb.connect_async(
            user=credentials.username,
            password=credentials.password.get_secret_value(),
            dsn=credentials.connect_string,
            **params
        )
        if self.timeout:
            connection.call_timeout = int(self.timeout * 1000)
        return connection
