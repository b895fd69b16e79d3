"""
Unit tests for Rules main service.
"""

import pytest
from fastapi.testclient import TestClient

from shared.config import get_config
from shared.test_helpers import (
    FakeClock,
    FakeConnection,
    FakeConnectionFactory,
    LookupDataFactory,
    create_rule_connection,
)
from service_rules.app.cache import RuleCache
from service_rules.app.lookup import INVALID_CREDENTIALS, INVALID_REQUEST
from service_rules.app.main import RulesService, create_app


ALLOWED_ORIGIN = "http://localhost:5173"


def build_service(connection_factory=None, cache=None, **config_overrides):
    config = get_config("rules", **config_overrides)
    return RulesService(config, connection_factory or FakeConnectionFactory(create_rule_connection()), cache)


class TestRulesService:
    """Test cases for RulesService."""

    @pytest.fixture
    def factory(self):
        """Connection factory backed by the sample SRS_RULES rows."""
        return FakeConnectionFactory(create_rule_connection())

    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def service(self, factory, clock):
        """Create RulesService with fake database and clock."""
        return build_service(factory, RuleCache(ttl_seconds=3600, clock=clock))

    @pytest.fixture
    def client(self, service):
        """Create test client."""
        return TestClient(service.app)

    @pytest.fixture
    def lookup_request(self):
        return LookupDataFactory.create_lookup_request()

    def test_root_endpoint(self, client):
        """Test root endpoint."""
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "rules"
        assert "rule_lookup" in data["capabilities"]

    def test_health_endpoint(self, client):
        """Test health endpoint."""
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "rules"
        assert data["status"] == "ok"
        assert data["dependencies"]["cache"] == "ok"
        assert data["cache"] == {"entries": 0, "hits": 0, "misses": 0}

    def test_metrics_endpoint(self, client, lookup_request):
        """Test Prometheus exposition includes lookup counters."""
        client.post("/rule", json=lookup_request)
        response = client.get("/metrics")
        assert response.status_code == 200
        assert 'rule_lookups_total{outcome="found"} 1.0' in response.text

    def test_service_initialization(self, service):
        """Test service initialization."""
        assert service.service_name == "rules"
        assert service.port == service.config.port
        assert service.cache is not None
        assert service.executor.query == "SELECT * FROM SRS_RULES WHERE RULE_NAME = :name"

    def test_create_app(self, factory):
        """Test app factory wiring."""
        app = create_app(get_config("rules"), factory)
        response = TestClient(app).post("/rule", json=LookupDataFactory.create_lookup_request())
        assert response.status_code == 200
        assert len(factory.calls) == 1

    def test_lookup_returns_first_row(self, client, factory, lookup_request):
        """Test a found rule returns the first matching row keyed by column."""
        response = client.post("/rule", json=lookup_request)

        assert response.status_code == 200
        assert response.json() == LookupDataFactory.create_rule_row()
        statement, params = factory.connection.executed[0]
        assert statement == "SELECT * FROM SRS_RULES WHERE RULE_NAME = :name"
        assert params == {"name": "MAX_EXPOSURE"}
        assert factory.connection.close_calls == 1

    def test_lookup_uses_caller_credentials(self, client, factory, lookup_request):
        """Test the connection is opened with the request's credentials."""
        client.post("/rule", json=lookup_request)

        credentials = factory.calls[0]
        assert credentials.username == "srs_reader"
        assert credentials.password.get_secret_value() == "s3cret"
        assert credentials.connect_string == "db.internal:1521/SRSPDB"

    def test_second_identical_request_served_from_cache(self, client, factory, lookup_request):
        """Test two identical requests run one query and return identical bytes."""
        first = client.post("/rule", json=lookup_request)
        second = client.post("/rule", json=lookup_request)

        assert first.status_code == second.status_code == 200
        assert first.content == second.content
        assert factory.query_count == 1
        assert len(factory.calls) == 1

    def test_cache_key_ignores_password(self, client, factory):
        """Test requests differing only in password share a cache entry."""
        client.post("/rule", json=LookupDataFactory.create_lookup_request(password="first"))
        response = client.post("/rule", json=LookupDataFactory.create_lookup_request(password="second"))

        assert response.status_code == 200
        assert factory.query_count == 1

    def test_port_as_string_or_number_share_cache_entry(self, client, factory):
        """Test port 1521 and "1521" produce the same key."""
        client.post("/rule", json=LookupDataFactory.create_lookup_request(port=1521))
        client.post("/rule", json=LookupDataFactory.create_lookup_request(port="1521"))

        assert factory.query_count == 1

    def test_different_credentials_miss_cache(self, client, factory):
        """Test a different host is a different cache entry."""
        client.post("/rule", json=LookupDataFactory.create_lookup_request())
        client.post("/rule", json=LookupDataFactory.create_lookup_request(host="db2.internal"))

        assert factory.query_count == 2

    def test_not_configured_is_returned_and_cached(self):
        """Test an empty result yields the not-configured marker and is cached."""
        factory = FakeConnectionFactory(create_rule_connection(rows=[]))
        client = TestClient(build_service(factory).app)
        lookup_request = LookupDataFactory.create_lookup_request(name="UNKNOWN_RULE")

        first = client.post("/rule", json=lookup_request)
        second = client.post("/rule", json=lookup_request)

        assert first.status_code == 200
        assert first.json() == {"status": "Not Configured in DB"}
        assert second.json() == {"status": "Not Configured in DB"}
        assert factory.query_count == 1

    def test_raw_column_is_returned_as_hex(self, lookup_request):
        """Test a RAW value that is not UTF-8 text is served, then cached."""
        connection = FakeConnection(
            columns=("RULE_NAME", "RULE_GUID"),
            rows=[("MAX_EXPOSURE", b"\x8f\x12\xff\x00")]
        )
        factory = FakeConnectionFactory(connection)
        client = TestClient(build_service(factory).app)

        first = client.post("/rule", json=lookup_request)
        second = client.post("/rule", json=lookup_request)

        assert first.status_code == 200
        assert first.json() == {"RULE_NAME": "MAX_EXPOSURE", "RULE_GUID": "8F12FF00"}
        assert second.content == first.content
        assert factory.query_count == 1

    def test_query_failure_returns_db_error_and_closes_connection(self, lookup_request):
        """Test a failing query is a 500 and the connection is closed once."""
        connection = create_rule_connection(query_error=RuntimeError("ORA-00942: table or view does not exist"))
        factory = FakeConnectionFactory(connection)
        client = TestClient(build_service(factory).app)

        response = client.post("/rule", json=lookup_request)

        assert response.status_code == 500
        assert response.json() == {
            "status": "DB error",
            "error": "ORA-00942: table or view does not exist"
        }
        assert connection.close_calls == 1

    def test_failures_are_not_cached(self, lookup_request):
        """Test a failed lookup is retried by the next request."""
        connection = create_rule_connection(query_error=RuntimeError("ORA-03113: end-of-file on communication channel"))
        factory = FakeConnectionFactory(connection)
        service = build_service(factory)
        client = TestClient(service.app)

        client.post("/rule", json=lookup_request)
        connection.query_error = None
        response = client.post("/rule", json=lookup_request)

        assert response.status_code == 200
        assert factory.query_count == 2
        assert len(service.cache) == 1

    def test_connect_failure_returns_db_error(self, lookup_request):
        """Test an authentication failure surfaces the driver message."""
        factory = FakeConnectionFactory(connect_error=RuntimeError("ORA-01017: invalid credential or not authorized"))
        client = TestClient(build_service(factory).app)

        response = client.post("/rule", json=lookup_request)

        assert response.status_code == 500
        assert response.json()["status"] == "DB error"
        assert response.json()["error"] == "ORA-01017: invalid credential or not authorized"
        assert factory.connection.close_calls == 0

    def test_close_failure_does_not_change_response(self, lookup_request):
        """Test a failed close after a successful fetch still returns 200."""
        connection = create_rule_connection(close_error=RuntimeError("DPY-1001: not connected to database"))
        client = TestClient(build_service(FakeConnectionFactory(connection)).app)

        response = client.post("/rule", json=lookup_request)

        assert response.status_code == 200
        assert response.json() == LookupDataFactory.create_rule_row()
        assert connection.close_calls == 1

    def test_timeout_returns_504_and_closes_connection(self, lookup_request):
        """Test a query past the deadline is a distinct timeout error."""
        connection = create_rule_connection(query_delay=2)
        factory = FakeConnectionFactory(connection)
        service = build_service(factory, db_timeout_seconds=0.05)
        client = TestClient(service.app)

        response = client.post("/rule", json=lookup_request)

        assert response.status_code == 504
        assert response.json() == {
            "status": "DB timeout",
            "error": "Rule lookup exceeded 0.05s deadline"
        }
        assert connection.close_calls == 1
        assert len(service.cache) == 0

    def test_cache_entry_expires_after_ttl(self, client, factory, clock, lookup_request):
        """Test a request after the TTL queries the database again."""
        client.post("/rule", json=lookup_request)
        clock.advance(3599)
        client.post("/rule", json=lookup_request)
        assert factory.query_count == 1

        clock.advance(2)
        response = client.post("/rule", json=lookup_request)

        assert response.status_code == 200
        assert factory.query_count == 2

    def test_request_id_is_echoed(self, client):
        """Test X-Request-ID is propagated to the response."""
        response = client.get("/", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"

    def test_lifespan_starts_and_stops_cache_sweeper(self, service):
        """Test the cache sweeper runs for the lifetime of the app."""
        with TestClient(service.app) as client:
            assert client.get("/health").status_code == 200
            assert service.cache.running
        assert not service.cache.running


class TestRequestValidation:
    """Validation failures never reach the database."""

    @pytest.fixture
    def factory(self):
        return FakeConnectionFactory(create_rule_connection())

    @pytest.fixture
    def client(self, factory):
        return TestClient(build_service(factory).app)

    @pytest.mark.parametrize("body", [
        LookupDataFactory.create_lookup_request(name=None),
        LookupDataFactory.create_lookup_request(name=""),
        {"name": "MAX_EXPOSURE"},
        {"name": "MAX_EXPOSURE", "dbCreds": None},
        {},
    ])
    def test_missing_name_or_credentials(self, client, factory, body):
        """Test missing name or dbCreds is rejected."""
        response = client.post("/rule", json=body)

        assert response.status_code == 400
        assert response.json() == {"status": INVALID_REQUEST}
        assert factory.calls == []

    @pytest.mark.parametrize("field", ["username", "password", "host", "port", "serviceName"])
    def test_missing_credential_field(self, client, factory, field):
        """Test each credential field is required."""
        body = LookupDataFactory.create_lookup_request()
        del body["dbCreds"][field]

        response = client.post("/rule", json=body)

        assert response.status_code == 400
        assert response.json() == {"status": INVALID_CREDENTIALS}
        assert factory.calls == []

    @pytest.mark.parametrize("field, value", [
        ("username", ""),
        ("password", ""),
        ("host", None),
        ("port", 0),
        ("serviceName", ""),
    ])
    def test_empty_credential_field(self, client, factory, field, value):
        """Test empty values count as missing."""
        body = LookupDataFactory.create_lookup_request(**{field: value})

        response = client.post("/rule", json=body)

        assert response.status_code == 400
        assert response.json() == {"status": INVALID_CREDENTIALS}
        assert factory.calls == []

    def test_wrongly_typed_credential_field(self, client, factory):
        """Test a malformed credential is reported as invalid credentials."""
        body = LookupDataFactory.create_lookup_request(username=["not", "a", "string"])

        response = client.post("/rule", json=body)

        assert response.status_code == 400
        assert response.json() == {"status": INVALID_CREDENTIALS}
        assert factory.calls == []

    @pytest.mark.parametrize("body", [
        {"dbCreds": "not-an-object"},
        {"dbCreds": ["srs_reader"]},
        {"name": "", "dbCreds": "not-an-object"},
        {"name": None, "dbCreds": 42},
        LookupDataFactory.create_lookup_request(name=None, username=5),
        LookupDataFactory.create_lookup_request(name="", host=""),
        LookupDataFactory.create_lookup_request(name="", port=None, serviceName=""),
    ])
    def test_missing_name_outranks_bad_credentials(self, client, factory, body):
        """Test a body missing its name is an invalid request whatever dbCreds holds."""
        response = client.post("/rule", json=body)

        assert response.status_code == 400
        assert response.json() == {"status": INVALID_REQUEST}
        assert factory.calls == []

    @pytest.mark.parametrize("db_creds", ["not-an-object", 42, ["srs_reader"]])
    def test_non_object_credentials_with_name(self, client, factory, db_creds):
        """Test a named request with unusable dbCreds is an invalid credentials error."""
        response = client.post("/rule", json={"name": "MAX_EXPOSURE", "dbCreds": db_creds})

        assert response.status_code == 400
        assert response.json() == {"status": INVALID_CREDENTIALS}
        assert factory.calls == []

    def test_malformed_body(self, client, factory):
        """Test a body that is not JSON is rejected as an invalid request."""
        response = client.post(
            "/rule",
            content="name=MAX_EXPOSURE",
            headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"status": INVALID_REQUEST}
        assert factory.calls == []

    def test_missing_body(self, client, factory):
        """Test an empty body is rejected as an invalid request."""
        response = client.post("/rule")

        assert response.status_code == 400
        assert response.json() == {"status": INVALID_REQUEST}
        assert factory.calls == []


class TestOriginEnforcement:
    """CORS allow-list behaviour through the full middleware stack."""

    @pytest.fixture
    def factory(self):
        return FakeConnectionFactory(create_rule_connection())

    @pytest.fixture
    def client(self, factory):
        return TestClient(build_service(factory).app)

    def test_disallowed_origin_rejected_before_handler(self, client, factory):
        """Test a foreign origin never reaches the database."""
        response = client.post(
            "/rule",
            json=LookupDataFactory.create_lookup_request(),
            headers={"Origin": "https://evil.example.com"}
        )

        assert response.status_code == 403
        assert response.text == "Not allowed by CORS"
        assert "access-control-allow-origin" not in response.headers
        assert factory.calls == []

    def test_allowed_origin_gets_credentialed_cors_headers(self, client):
        """Test an allowed origin is echoed with credentials enabled."""
        response = client.post(
            "/rule",
            json=LookupDataFactory.create_lookup_request(),
            headers={"Origin": ALLOWED_ORIGIN}
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
        assert response.headers["access-control-allow-credentials"] == "true"

    def test_request_without_origin_allowed(self, client):
        """Test non-browser callers pass the gate."""
        response = client.post("/rule", json=LookupDataFactory.create_lookup_request())
        assert response.status_code == 200

    def test_preflight_from_allowed_origin(self, client, factory):
        """Test preflight requests from allowed origins are answered."""
        response = client.options(
            "/rule",
            headers={
                "Origin": ALLOWED_ORIGIN,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type"
            }
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
        assert factory.calls == []

    def test_preflight_from_disallowed_origin(self, client):
        """Test preflight requests from foreign origins are rejected."""
        response = client.options(
            "/rule",
            headers={
                "Origin": "https://evil.example.com",
                "Access-Control-Request-Method": "POST"
            }
        )

        assert response.status_code == 403

    def test_configured_allow_list(self, factory):
        """Test the allow-list comes from configuration."""
        service = build_service(factory, allowed_origins=["https://rules.example.com"])
        client = TestClient(service.app)

        allowed = client.get("/", headers={"Origin": "https://rules.example.com"})
        rejected = client.get("/", headers={"Origin": ALLOWED_ORIGIN})

        assert allowed.status_code == 200
        assert rejected.status_code == 403
