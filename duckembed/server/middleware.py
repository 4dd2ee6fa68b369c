"""Middleware classes for the duckembed server.

Converts ``ServerError`` and ``DuckEmbedError`` exceptions into JSON error
responses with a status code matching the failing stage.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Awaitable, Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from ..errors import (
    ConnectionBuildError,
    ConnectionUnavailableError,
    DuckEmbedError,
    FileRegistrationError,
    ModuleAcquisitionError,
    QueryExecutionError,
    SetupStatementError,
)

if TYPE_CHECKING:
    from starlette.requests import Request
    from starlette.responses import Response

logger = logging.getLogger(__name__)


@dataclass
class ServerError(Exception):
    """Exception raised for request errors with HTTP status code and error code."""

    status_code: int
    code: str
    message: str


# Checked in order, so subclasses come before their bases.
ERROR_STATUS: tuple[tuple[type[DuckEmbedError], int, str], ...] = (
    (QueryExecutionError, 400, "query_failed"),
    (FileRegistrationError, 502, "file_registration_failed"),
    (SetupStatementError, 500, "setup_failed"),
    (ModuleAcquisitionError, 503, "engine_unavailable"),
    (ConnectionBuildError, 503, "engine_unavailable"),
    (ConnectionUnavailableError, 503, "engine_unavailable"),
)


def error_status(error: DuckEmbedError) -> tuple[int, str]:
    for error_type, status_code, code in ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code, code
    return 500, "internal_error"


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        {"data": None, "code": code, "message": message, "success": False},
        status_code=status_code,
    )


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Middleware to handle ServerError and DuckEmbedError exceptions globally."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        try:
            return await call_next(request)
        except ServerError as e:
            return error_response(e.status_code, e.code, e.message)
        except DuckEmbedError as e:
            status_code, code = error_status(e)
            logger.warning("%s %s failed: %s", request.method, request.url.path, e)
            return error_response(status_code, code, str(e))
