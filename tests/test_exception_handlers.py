"""Tests for global exception handlers.

Validates that all exception types are handled consistently with
proper HTTP status codes, error format, and no information leakage.
"""

import asyncio
import json
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from ratelimit_api.core.errors import (
    AppError,
    PartialApplicationError,
    ScriptFailureError,
    StoreUnavailableError,
    ValidationAppError,
)
from ratelimit_api.core.exception_handlers import setup_exception_handlers


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    """Create test client with handlers enabled."""
    return TestClient(app_with_handlers)


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    def test_validation_error_returns_400(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify ValidationAppError returns HTTP 400."""
        @app_with_handlers.get("/test-validation")
        async def test_endpoint():
            raise ValidationAppError(
                code="unknown_store_backend",
                message="Unknown store backend",
            )

        response = client.get("/test-validation")

        assert response.status_code == 400
        data = response.json()
        assert data["error"]["code"] == "unknown_store_backend"
        assert data["error"]["message"] == "Unknown store backend"
        assert "request_id" in data["error"]

    @pytest.mark.parametrize(
        "error_cls,code",
        [
            (StoreUnavailableError, "store_unavailable"),
            (ScriptFailureError, "script_failure"),
            (PartialApplicationError, "partial_application"),
        ],
    )
    def test_store_errors_return_500(
        self, client: TestClient, app_with_handlers: FastAPI, error_cls, code
    ):
        """Every store failure is an internal error, never a verdict."""
        @app_with_handlers.get("/test-store")
        async def test_endpoint():
            raise error_cls(code=code, message="store failed")

        response = client.get("/test-store")

        assert response.status_code == 500
        assert response.json()["error"]["code"] == code

    def test_error_includes_details(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify details are included when provided."""
        @app_with_handlers.get("/test-details")
        async def test_endpoint():
            raise StoreUnavailableError(
                code="store_unavailable",
                message="State store unavailable during incr",
                details={"operation": "incr", "error_type": "ConnectionError"},
            )

        response = client.get("/test-details")

        data = response.json()
        assert data["error"]["details"] == {"operation": "incr", "error_type": "ConnectionError"}

    def test_error_response_format_is_consistent(self, client: TestClient, app_with_handlers: FastAPI):
        """Verify error responses have consistent JSON structure."""
        @app_with_handlers.get("/test-format")
        async def test_endpoint():
            raise ValidationAppError(code="test", message="test")

        response = client.get("/test-format")
        data = response.json()

        assert "error" in data
        assert "code" in data["error"]
        assert "message" in data["error"]
        assert "request_id" in data["error"]
        assert "details" not in data["error"]


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_general_exception_handler_logic(self):
        """Verify general_exception_handler returns correct structure."""
        from ratelimit_api.core.exception_handlers import general_exception_handler

        request = AsyncMock()
        request.url.path = "/fixed-window"
        request.method = "GET"

        exc = RuntimeError("Unexpected error: redis pool exhausted")
        response = asyncio.run(general_exception_handler(request, exc))

        data = json.loads(bytes(response.body).decode())
        assert response.status_code == 500
        assert data["error"]["code"] == "internal_server_error"
        assert "redis pool" not in data["error"]["message"]
        assert "request_id" in data["error"]

    def test_general_exception_handler_never_leaks_stack_trace(self):
        """Verify stack traces are never included in response."""
        from ratelimit_api.core.exception_handlers import general_exception_handler

        request = AsyncMock()
        request.url.path = "/token-bucket"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("boom")))

        response_text = bytes(response.body).decode()
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text


def test_setup_exception_handlers_registers_handlers(app_with_handlers: FastAPI):
    assert AppError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
