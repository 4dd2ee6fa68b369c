"""duckembed server - HTTP API for running SQL snippets on a shared engine.

Modules:
    app: Application factory and CLI entry point
    handlers: HTTP request handlers
    routes: Route definitions
    middleware: Error handling middleware
"""

from .app import create_app, main
from .middleware import ErrorHandlingMiddleware, ServerError
from .routes import get_routes

__all__ = [
    "create_app",
    "main",
    "get_routes",
    "ErrorHandlingMiddleware",
    "ServerError",
]
