"""
Rule lookup executor.

Opens one connection with the caller's credentials, runs a single
parameterized select, and always releases the connection. There are no
retries: the first failure is the answer.
"""

import asyncio
from typing import Any, Dict, Optional

from fastapi.encoders import jsonable_encoder

from shared.errors import DatabaseError, LookupTimeoutError, ResourceReleaseError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from .connections import ConnectionFactory
from .models import DatabaseCredentials, not_configured

# RAW and BLOB values are not text; render them the way RAWTOHEX does.
ROW_ENCODERS = {bytes: lambda value: value.hex().upper()}


class RuleLookupExecutor:
    """Fetches a rule row by exact name."""

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        *,
        table: str = "SRS_RULES",
        name_column: str = "RULE_NAME",
        timeout: Optional[float] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.connection_factory = connection_factory
        self.timeout = timeout
        self.metrics = metrics
        self.logger = get_logger("rules.lookup.executor")
        # table and name_column are validated identifiers (see shared.config)
        self.query = f"SELECT * FROM {table} WHERE {name_column} = :name"

    async def fetch_rule(self, credentials: DatabaseCredentials, name: str) -> Dict[str, Any]:
        """Return the first matching row, or the not-configured marker.

        Raises DatabaseError on connect/query failure and LookupTimeoutError
        when the deadline passes first.
        """
        if self.timeout is None:
            return await self._lookup(credentials, name)

        try:
            return await asyncio.wait_for(self._lookup(credentials, name), timeout=self.timeout)
        except asyncio.TimeoutError:
            self.logger.error(
                "DB lookup timed out",
                connect_string=credentials.connect_string,
                rule_name=name,
                timeout=self.timeout
            )
            raise LookupTimeoutError(self.timeout) from None

    async def _lookup(self, credentials: DatabaseCredentials, name: str) -> Dict[str, Any]:
        connection = None
        loop = asyncio.get_running_loop()
        started = loop.time()
        try:
            self.logger.info(
                "Connecting to DB",
                connect_string=credentials.connect_string,
                username=credentials.username
            )
            connection = await self.connection_factory(credentials)
            row = await self._query_first_row(connection, name)
        except Exception as e:
            self.logger.error(
                "DB error",
                connect_string=credentials.connect_string,
                rule_name=name,
                error=str(e),
                exc_info=True
            )
            raise DatabaseError(str(e)) from e
        finally:
            if connection is not None:
                try:
                    await self._release(connection)
                except ResourceReleaseError as release_error:
                    self.logger.error(
                        release_error.message,
                        code=release_error.code,
                        connect_string=credentials.connect_string,
                        error=release_error.error
                    )
            if self.metrics:
                self.metrics.observe_histogram("rule_db_query_duration_seconds", loop.time() - started)

        if row is None:
            self.logger.info("Rule not configured", rule_name=name)
            return not_configured()
        return row

    async def _query_first_row(self, connection, name: str) -> Optional[Dict[str, Any]]:
        """Run the select and map the first row to a column-keyed dict."""
        with connection.cursor() as cursor:
            await cursor.execute(self.query, {"name": name})
            columns = [column[0] for column in cursor.description or ()]
            row = await cursor.fetchone()

        if row is None:
            return None
        # Dates, decimals and raw bytes become JSON-ready before caching.
        return jsonable_encoder(dict(zip(columns, row)), custom_encoder=ROW_ENCODERS)

    async def _release(self, connection) -> None:
        try:
            await connection.close()
        except Exception as e:
            raise ResourceReleaseError(str(e)) from e
