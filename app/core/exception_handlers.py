"""
DRF exception handler for application errors.

Renders BaseApplicationError subclasses as
{"error": ..., "error_code": ..., "details": ...} with the status code the
exception class declares. Everything else falls through to DRF's default
handler (serializer validation, authentication, throttling).

Configured in settings:
    REST_FRAMEWORK["EXCEPTION_HANDLER"] = "core.exception_handlers.api_exception_handler"
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from rest_framework.response import Response
from rest_framework.views import exception_handler

from core.exceptions import BaseApplicationError

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


def api_exception_handler(exc: Exception, context: dict[str, Any]) -> Response | None:
    """Translate application errors into API responses."""
    if isinstance(exc, BaseApplicationError):
        view = context.get("view")
        log_extra = {
            "error_code": exc.error_code,
            "view": view.__class__.__name__ if view else None,
        }
        if exc.http_status >= 500:
            logger.error(str(exc), extra=log_extra)
        else:
            logger.info(str(exc), extra=log_extra)

        response = Response(exc.to_dict(), status=exc.http_status)
        retry_after = exc.details.get("retry_after")
        if retry_after is not None:
            response["Retry-After"] = str(retry_after)
        return response

    return exception_handler(exc, context)
