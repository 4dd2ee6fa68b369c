"""HTTP request handlers.

Handlers:
    run_query: POST /api/query
    register_file: POST /api/files
    get_status: GET /api/status
    close_connection: DELETE /api/connection
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from starlette.responses import JSONResponse

from ..paths import resolve_path
from ..snippet import run_snippet
from .middleware import ServerError

if TYPE_CHECKING:
    from starlette.requests import Request

    from ..config import EmbedConfig
    from ..manager import QueryManager


def _manager(request: Request) -> QueryManager:
    return request.app.state.manager


def _embed_config(request: Request) -> EmbedConfig:
    return request.app.state.embed_config


async def _json_body(request: Request) -> dict[str, Any]:
    try:
        body = await request.json()
    except json.JSONDecodeError:
        raise ServerError(
            status_code=400, code="invalid_json", message="Request body must be JSON."
        ) from None
    if not isinstance(body, dict):
        raise ServerError(
            status_code=400, code="invalid_json", message="Request body must be a JSON object."
        )
    return body


async def run_query(request: Request) -> JSONResponse:
    """Run a snippet and return its normalized result.

    Request Body:
        sql: SQL text
        baseUrl: Base URL for relative file paths (defaults to the server's)
    """
    body = await _json_body(request)
    sql = body.get("sql") or ""
    if not isinstance(sql, str) or not sql.strip():
        raise ServerError(status_code=422, code="sql_required", message="No SQL query to execute")

    base_url = body.get("baseUrl") or _embed_config(request).base_url
    result = await run_snippet(_manager(request), sql, base_url=base_url)

    return JSONResponse({"data": result.to_dict(), "success": True})


async def register_file(request: Request) -> JSONResponse:
    """Register a data file under a logical name.

    Request Body:
        name: Logical file name
        url: Absolute URL, or a path resolved against the base URL
    """
    body = await _json_body(request)
    name = body.get("name")
    url = body.get("url")
    if not (isinstance(name, str) and name and isinstance(url, str) and url):
        raise ServerError(
            status_code=422, code="file_required", message="Both name and url are required"
        )

    resolved = resolve_path(url, _embed_config(request).base_url)
    await _manager(request).register_file(name, resolved)

    return JSONResponse({"data": {"name": name, "url": resolved}, "success": True})


async def get_status(request: Request) -> JSONResponse:
    manager = _manager(request)
    return JSONResponse(
        {
            "data": {
                "ready": manager.is_ready(),
                "setupDone": manager.setup_done,
                "registeredFiles": sorted(manager.registered_files),
            },
            "success": True,
        }
    )


async def close_connection(request: Request) -> JSONResponse:
    """Close the connection. The next request reconnects and reruns setup."""
    manager = _manager(request)
    await manager.teardown()
    manager.configure_setup_queries(_embed_config(request).setup_queries)
    return JSONResponse({"data": None, "success": True})
