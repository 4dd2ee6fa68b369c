"""Running one embedded SQL snippet end to end."""

from __future__ import annotations

import logging

from .config import DEFAULT_BASE_URL
from .manager import QueryManager
from .paths import resolve_paths_in_sql
from .result import QueryResult

logger = logging.getLogger(__name__)


async def run_snippet(
    manager: QueryManager,
    sql: str,
    base_url: str = DEFAULT_BASE_URL,
    origin: str | None = None,
) -> QueryResult:
    """Register the data files a snippet references, then run it.

    Each referenced file is registered under the last segment of its path.

    Raises:
        ValueError: If the snippet is blank
    """
    if not sql.strip():
        raise ValueError("No SQL query to execute")

    for path, url in resolve_paths_in_sql(sql, base_url, origin).items():
        name = path.rstrip("/").rsplit("/", 1)[-1] or path
        logger.debug("Snippet references %s, registering %s as %s", path, url, name)
        await manager.register_file(name, url)

    return await manager.query(sql)
