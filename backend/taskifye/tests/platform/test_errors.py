"""
Error handling tests for the integration layer.

These tests verify that:
1. All errors return consistent shapes
2. Stack traces are never returned to clients
3. Correlation IDs are included in responses
"""

import pytest
from unittest.mock import Mock
from fastapi import FastAPI, Request, HTTPException
from fastapi.testclient import TestClient

from taskifye.platform.errors import (
    AppError,
    ValidationError,
    AuthenticationError,
    TenantIsolationError,
    NotFoundError,
    CredentialUnavailableError,
    IntegrationUnavailableError,
    ErrorHandlerMiddleware,
    generate_correlation_id,
    get_correlation_id,
)


# ============================================================================
# TEST SUITE: ERROR CLASSES
# ============================================================================

class TestErrorClasses:

    def test_app_error_to_dict(self):
        error = AppError(code="TEST", message="Something broke", status_code=418, details={"a": 1})

        assert error.to_dict() == {
            "error": {"code": "TEST", "message": "Something broke", "details": {"a": 1}}
        }

    def test_not_found_message_includes_identifier(self):
        assert NotFoundError("Deal", "42").message == "Deal with id '42' not found"
        assert NotFoundError("Deal").message == "Deal not found"

    def test_credential_unavailable_is_409(self):
        error = CredentialUnavailableError("pipedrive", reason="decryption_failed")

        assert error.status_code == 409
        assert error.code == "INTEGRATION_NOT_CONFIGURED"
        assert error.details == {"provider": "pipedrive", "reason": "decryption_failed"}
        assert "Settings > Integrations" in error.message

    def test_integration_unavailable_is_503(self):
        error = IntegrationUnavailableError("pipedrive")

        assert error.status_code == 503
        assert error.code == "INTEGRATION_UNAVAILABLE"
        assert error.details == {"provider": "pipedrive"}


class TestErrorResponseFormat:

    def test_error_shape_is_consistent(self):
        """All errors return the same shape."""
        errors = [
            ValidationError("test"),
            AuthenticationError(),
            TenantIsolationError(),
            NotFoundError("Resource"),
            CredentialUnavailableError("pipedrive"),
            IntegrationUnavailableError("pipedrive"),
        ]

        for error in errors:
            result = error.to_dict()

            assert set(result["error"]) == {"code", "message", "details"}
            assert isinstance(result["error"]["code"], str) and result["error"]["code"]
            assert isinstance(result["error"]["message"], str) and result["error"]["message"]
            assert isinstance(result["error"]["details"], dict)


# ============================================================================
# TEST SUITE: CORRELATION ID
# ============================================================================

class TestCorrelationId:

    def test_generate_correlation_id(self):
        id1 = generate_correlation_id()
        id2 = generate_correlation_id()

        assert id1 != id2
        assert len(id1) == 36  # UUID format

    def test_get_correlation_id_from_header(self):
        request = Mock(spec=Request)
        request.headers = {"X-Correlation-ID": "header-corr-id"}
        request.state = Mock(spec=[])

        assert get_correlation_id(request) == "header-corr-id"

    def test_get_correlation_id_from_state(self):
        request = Mock(spec=Request)
        request.headers = {}
        request.state.correlation_id = "state-corr-id"

        assert get_correlation_id(request) == "state-corr-id"

    def test_get_correlation_id_generates_new(self):
        request = Mock(spec=Request)
        request.headers = {}
        request.state = Mock(spec=[])

        assert len(get_correlation_id(request)) == 36


# ============================================================================
# TEST SUITE: ERROR HANDLER MIDDLEWARE
# ============================================================================

class TestErrorHandlerMiddleware:

    @pytest.fixture
    def client(self):
        app = FastAPI()
        app.add_middleware(ErrorHandlerMiddleware)

        @app.get("/ok")
        async def ok():
            return {"status": "ok"}

        @app.get("/not-configured")
        async def not_configured():
            raise CredentialUnavailableError("pipedrive")

        @app.get("/unavailable")
        async def unavailable():
            raise IntegrationUnavailableError("pipedrive")

        @app.get("/http-error")
        async def http_error():
            raise HTTPException(status_code=400, detail="HTTP error detail")

        @app.get("/unexpected-error")
        async def unexpected():
            raise RuntimeError("secret internal detail")

        return TestClient(app)

    def test_successful_request_has_correlation_id(self, client):
        response = client.get("/ok")

        assert response.status_code == 200
        assert "X-Correlation-ID" in response.headers

    def test_credential_unavailable_response(self, client):
        response = client.get("/not-configured")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "INTEGRATION_NOT_CONFIGURED"
        assert "X-Correlation-ID" in response.headers

    def test_integration_unavailable_response(self, client):
        response = client.get("/unavailable")

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "INTEGRATION_UNAVAILABLE"

    def test_http_exception_keeps_status(self, client):
        response = client.get("/http-error")

        # FastAPI's own handler may answer before the middleware sees it
        assert response.status_code == 400
        data = response.json()
        assert data.get("detail") == "HTTP error detail" or data["error"]["message"] == "HTTP error detail"

    def test_unexpected_error_returns_generic_message(self, client):
        """Unexpected errors don't expose stack traces."""
        response = client.get("/unexpected-error")

        assert response.status_code == 500
        data = response.json()
        assert data["error"]["code"] == "INTERNAL_ERROR"
        assert "RuntimeError" not in str(data)
        assert "secret internal detail" not in str(data)
        assert "correlation_id" in data["error"]["details"]


# ============================================================================
# TEST SUITE: SECURITY CONSIDERATIONS
# ============================================================================

class TestSecurityConsiderations:

    def test_tenant_isolation_error_hides_details(self):
        error = TenantIsolationError("Attempted to access tenant-123 data")

        result = error.to_dict()

        assert "tenant-123" not in result["error"]["message"]
        assert result["error"]["details"] == {}
        assert result["error"]["code"] == "ACCESS_DENIED"
        assert error.status_code == 403

    def test_default_app_error_is_500(self):
        assert AppError(code="TEST", message="test").status_code == 500
