import argparse
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from ..config import EmbedConfig
from ..manager import QueryManager
from .middleware import ErrorHandlingMiddleware
from .routes import get_routes

try:
    from starlette.applications import Starlette
    from uvicorn import run
except ImportError as e:
    raise ImportError(
        "Optional dependencies for the server are not installed. "
        "Install them using one of the following commands:\n"
        "  - With uv: 'uv sync --extra server'\n"
        "  - With pip: 'pip install duckembed[server]'"
    ) from e

logger = logging.getLogger(__name__)


def create_app(
    manager: QueryManager | None = None,
    embed_config: EmbedConfig | None = None,
    debug: bool = False,
) -> Starlette:
    """Create the snippet API application.

    Args:
        manager: Manager shared by every request; built from ``embed_config``
            when not given
        embed_config: Base URL, engine settings and setup statements
        debug: Starlette debug mode
    """
    embed_config = embed_config or EmbedConfig.from_env()
    if manager is None:
        manager = QueryManager(
            embed_config.manager, setup_queries=embed_config.setup_queries
        )

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        try:
            yield
        finally:
            logger.info("Shutting down, closing DuckDB connection")
            await manager.teardown()

    app = Starlette(debug=debug, routes=get_routes(), lifespan=lifespan)
    app.add_middleware(ErrorHandlingMiddleware)
    app.state.manager = manager
    app.state.embed_config = embed_config
    return app


# CLI Entry Point
def main() -> None:
    parser = argparse.ArgumentParser(description="Run the duckembed snippet server.")

    parser.add_argument(
        "--host", type=str, default="127.0.0.1", help="Host to run the server on (default: 127.0.0.1)"
    )

    parser.add_argument(
        "--port", type=int, default=8000, help="Port to run the server on (default: 8000)"
    )

    parser.add_argument(
        "--debug", action="store_true", help="Enable debug mode (default: False)"
    )

    parser.add_argument(
        "--setup-query",
        action="append",
        default=[],
        dest="setup_queries",
        help="Statement to run once before the first query (repeatable, runs in order)",
    )

    parser.add_argument(
        "--base-url", type=str, default=None, help="Base URL for relative data file paths"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    env_config = EmbedConfig.from_env()
    embed_config = EmbedConfig(
        base_url=args.base_url or env_config.base_url,
        manager=env_config.manager,
        setup_queries=tuple(args.setup_queries),
    )
    app = create_app(embed_config=embed_config, debug=args.debug)

    run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
