"""Resolution of data file references in SQL snippets.

Rules for ``resolve_path``:

- ``http://...`` / ``https://...`` are returned unchanged
- ``/data.parquet`` resolves against the origin
- ``data.parquet`` and ``./data.parquet`` resolve against the base URL
"""

from __future__ import annotations

import re
from urllib.parse import urlsplit

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

DATA_FILE_EXTENSIONS = (".parquet", ".csv", ".json", ".arrow")

_QUOTED = re.compile(r"'([^']+)'|\"([^\"]+)\"")


def resolve_path(path: str, base_url: str, origin: str | None = None) -> str:
    """Resolve a file reference to an absolute URL.

    Args:
        path: Path as written in the snippet
        base_url: Base URL for relative paths
        origin: Origin for root-relative paths; derived from ``base_url``
            when not given

    Returns:
        Absolute URL
    """
    if path.startswith(("http://", "https://")):
        return path

    if path.startswith("/"):
        if origin is None:
            parts = urlsplit(base_url)
            origin = f"{parts.scheme}://{parts.netloc}"
        return f"{origin.rstrip('/')}{path}"

    base = base_url[:-1] if base_url.endswith("/") else base_url
    clean = path[2:] if path.startswith("./") else path
    return f"{base}/{clean}"


def _is_data_file(value: str) -> bool:
    return value.lower().endswith(DATA_FILE_EXTENSIONS)


def _quoted_values(sql: str) -> list[str]:
    try:
        expressions = sqlglot.parse(sql, read="duckdb")
    except SqlglotError:
        return [single or double for single, double in _QUOTED.findall(sql)]

    values: list[str] = []
    for expression in expressions:
        if expression is None:
            continue
        for node in expression.find_all(exp.Literal, exp.Identifier, bfs=False):
            if isinstance(node, exp.Literal) and node.is_string:
                values.append(node.this)
            elif isinstance(node, exp.Identifier) and node.quoted:
                values.append(node.this)
    return values


def extract_file_paths(sql: str) -> list[str]:
    """Return the distinct data file paths quoted in ``sql``, in order of appearance."""
    paths: list[str] = []
    for value in _quoted_values(sql):
        if _is_data_file(value) and value not in paths:
            paths.append(value)
    return paths


def resolve_paths_in_sql(sql: str, base_url: str, origin: str | None = None) -> dict[str, str]:
    """Map every data file path in ``sql`` to its absolute URL."""
    return {path: resolve_path(path, base_url, origin) for path in extract_file_paths(sql)}
