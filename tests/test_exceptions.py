"""
Tests for custom exception classes and handlers.
"""

import json
from unittest.mock import MagicMock

import pytest


@pytest.mark.unit
class TestStoreExceptions:
    """Tests for the StoreException hierarchy."""

    def test_store_exception_init(self):
        from app.exceptions import StoreException

        exc = StoreException("Test error", status_code=502)

        assert exc.message == "Test error"
        assert exc.status_code == 502
        assert str(exc) == "Test error"

    def test_store_exception_default_status_code(self):
        from app.exceptions import StoreException

        assert StoreException("Test error").status_code == 500

    @pytest.mark.parametrize(
        "name,status_code",
        [
            ("StoreConnectionError", 503),
            ("ConfigError", 500),
            ("SerializationError", 500),
        ],
    )
    def test_subclass_status_codes(self, name, status_code):
        import app.exceptions as exceptions

        exc = getattr(exceptions, name)("boom")

        assert isinstance(exc, exceptions.StoreException)
        assert exc.status_code == status_code

    def test_capacity_exceeded_default_message(self):
        from app.exceptions import CapacityExceeded

        exc = CapacityExceeded()

        assert exc.status_code == 507
        assert "capacity" in exc.message.lower()


@pytest.mark.unit
class TestExceptionHandlers:
    """Tests for FastAPI exception handlers."""

    @pytest.mark.asyncio
    async def test_store_exception_handler(self):
        from app.exceptions import SerializationError, store_exception_handler

        request = MagicMock()
        request.url.path = "/sessions/me"
        request.method = "GET"

        response = await store_exception_handler(request, SerializationError("bad payload"))

        assert response.status_code == 500
        assert json.loads(response.body) == {
            "detail": "bad payload",
            "type": "SerializationError",
        }

    @pytest.mark.asyncio
    async def test_generic_exception_handler_hides_details(self):
        from app.exceptions import generic_exception_handler

        request = MagicMock()
        request.url.path = "/health"
        request.method = "GET"

        response = await generic_exception_handler(request, RuntimeError("secret detail"))

        assert response.status_code == 500
        assert "secret detail" not in response.body.decode()
