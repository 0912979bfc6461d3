"""Tests for the DRF exception handler."""

from rest_framework.exceptions import NotAuthenticated

from core.exception_handlers import api_exception_handler
from core.exceptions import (
    ConflictError,
    NotFoundError,
    RateLimitError,
    UnauthorizedError,
)


class TestApiExceptionHandler:
    """Tests for application error rendering."""

    def test_renders_application_error_with_declared_status(self):
        """Should use the exception's http_status and to_dict()."""
        exc = NotFoundError("Order 1 not found", error_code="ORDER_NOT_FOUND")

        response = api_exception_handler(exc, {})

        assert response.status_code == 404
        assert response.data == {
            "error": "Order 1 not found",
            "error_code": "ORDER_NOT_FOUND",
        }

    def test_includes_details(self):
        """Should include details when present."""
        exc = ConflictError("Already bought", details={"resource_id": "9"})

        response = api_exception_handler(exc, {})

        assert response.status_code == 409
        assert response.data["details"] == {"resource_id": "9"}

    def test_sets_retry_after_header(self):
        """Should expose retry_after as a Retry-After header."""
        exc = RateLimitError("Slow down", details={"retry_after": 30})

        response = api_exception_handler(exc, {})

        assert response["Retry-After"] == "30"

    def test_unauthorized_maps_to_401(self):
        """Should answer 401 for authenticity failures."""
        response = api_exception_handler(UnauthorizedError("Bad signature"), {})

        assert response.status_code == 401

    def test_falls_back_to_drf_handler(self):
        """Should leave DRF's own exceptions to the default handler."""
        response = api_exception_handler(NotAuthenticated(), {})

        assert response.status_code == 401
        assert "detail" in response.data
