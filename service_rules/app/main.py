"""
Rules service for the SRS Rules Proxy.
"""

from typing import Dict, Any, Optional

from fastapi.exceptions import RequestValidationError

from shared.base_service import BaseService, SERVICE_VERSION
from shared.config import ServiceConfig, get_config
from shared.errors import RuleProxyException, ValidationError

from .cache import RuleCache
from .lookup import (
    ConnectionFactory,
    OracleConnectionFactory,
    RuleLookupExecutor,
    RuleLookupRequest,
    INVALID_REQUEST,
    INVALID_CREDENTIALS,
    is_not_configured,
)
from .origin_gate import OriginGate


class RulesService(BaseService):
    """Rules service implementation."""

    def __init__(
        self,
        config: Optional[ServiceConfig] = None,
        connection_factory: Optional[ConnectionFactory] = None,
        cache: Optional[RuleCache] = None,
    ):
        super().__init__("rules", config or get_config("rules"))

        # Initialize components
        self.cache = cache if cache is not None else RuleCache(
            ttl_seconds=self.config.cache_ttl_seconds,
            check_period_seconds=self.config.cache_check_period_seconds,
            metrics=self.metrics
        )
        if connection_factory is None:
            connection_factory = OracleConnectionFactory(timeout=self.config.db_timeout)
        self.executor = RuleLookupExecutor(
            connection_factory,
            table=self.config.rule_table,
            name_column=self.config.rule_name_column,
            timeout=self.config.db_timeout,
            metrics=self.metrics
        )

        self._setup_rules_routes()

    def _setup_service_middleware(self):
        """Reject disallowed origins before any route runs."""
        self.origin_gate = OriginGate(self.config.allowed_origins)
        self.app.middleware("http")(self.origin_gate.dispatch)

    def _setup_rules_routes(self):
        """Set up rules-specific routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": "rules",
                "message": "SRS Rules Proxy - Rules Service",
                "version": SERVICE_VERSION,
                "capabilities": ["rule_lookup", "caching", "cors"]
            }

        @self.app.post("/rule")
        async def lookup_rule(request: RuleLookupRequest):
            """Fetch a rule row by name using the caller's database credentials."""
            return await self.handle_lookup(request)

    async def handle_lookup(self, request: RuleLookupRequest) -> Dict[str, Any]:
        """Validate, consult the cache, and fall through to the database."""
        request.validate_complete()

        cache_key = request.cache_key()
        cached_result = self.cache.get(cache_key)
        if cached_result is not None:
            self.logger.info("Rule cache hit", rule_name=request.name, cache_key=cache_key)
            self.metrics.increment_counter("rule_lookups_total", outcome="cache_hit")
            return cached_result

        try:
            result = await self.executor.fetch_rule(request.db_creds, request.name)
        except RuleProxyException as e:
            self.metrics.increment_counter("rule_lookups_total", outcome=e.code.lower())
            raise

        self.cache.set(cache_key, result)

        outcome = "not_configured" if is_not_configured(result) else "found"
        self.metrics.increment_counter("rule_lookups_total", outcome=outcome)
        self.logger.info("Rule lookup completed", rule_name=request.name, outcome=outcome)
        return result

    def _validation_failure(self, exc: RequestValidationError) -> RuleProxyException:
        """Body parse failures get the same 400 messages as missing fields.

        A missing name outranks bad credentials, so the credentials message
        is only given when the raw body carries a name.
        """
        body = exc.body if isinstance(exc.body, dict) else {}
        locations = [tuple(error.get("loc", ())) for error in exc.errors()]
        if not body.get("name"):
            return ValidationError(INVALID_REQUEST)
        if locations and all(loc[:2] == ("body", "dbCreds") for loc in locations):
            return ValidationError(INVALID_CREDENTIALS)
        return ValidationError(INVALID_REQUEST)

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check service dependencies.

        The database is reached with per-request credentials, so only the
        cache is checked here.
        """
        return {"cache": "ok" if self.cache is not None else "error"}

    def _health_details(self) -> Dict[str, Any]:
        return {"cache": self.cache.stats()}

    async def start(self):
        """Start rules service components."""
        await self.cache.start()
        self.logger.info("Rules service started", port=self.port)

    async def stop(self):
        """Stop rules service components."""
        await self.cache.stop()
        self.logger.info("Rules service stopped")


def create_app(
    config: Optional[ServiceConfig] = None,
    connection_factory: Optional[ConnectionFactory] = None,
    cache: Optional[RuleCache] = None,
):
    """Create rules service application."""
    service = RulesService(config, connection_factory, cache)
    return service.app


def main():
    """Run the rules service under uvicorn."""
    service = RulesService()
    service.run()


if __name__ == "__main__":
    main()
