"""Route definitions for the snippet API."""

from starlette.routing import Route

from . import handlers


def get_routes() -> list[Route]:
    """Get all snippet API routes.

    Returns:
        List of Starlette Route objects
    """
    return [
        Route("/api/query", handlers.run_query, methods=["POST"]),
        Route("/api/files", handlers.register_file, methods=["POST"]),
        Route("/api/status", handlers.get_status, methods=["GET"]),
        Route("/api/connection", handlers.close_connection, methods=["DELETE"]),
    ]
