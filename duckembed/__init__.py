from .config import EmbedConfig, ManagerConfig
from .errors import (
    ConnectionBuildError,
    ConnectionUnavailableError,
    CrossOriginBlockedError,
    DuckEmbedError,
    FileRegistrationError,
    ModuleAcquisitionError,
    QueryExecutionError,
    SetupStatementError,
)
from .manager import QueryManager
from .paths import extract_file_paths, resolve_path, resolve_paths_in_sql
from .result import QueryResult
from .single_flight import SingleFlight
from .snippet import run_snippet


# Lazy import for the server (requires starlette and uvicorn)
def __getattr__(name: str):
    if name == "create_app":
        from .server import create_app
        return create_app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

__all__ = [
    "ConnectionBuildError",
    "ConnectionUnavailableError",
    "CrossOriginBlockedError",
    "DuckEmbedError",
    "EmbedConfig",
    "FileRegistrationError",
    "ManagerConfig",
    "ModuleAcquisitionError",
    "QueryExecutionError",
    "QueryManager",
    "QueryResult",
    "SetupStatementError",
    "SingleFlight",
    "create_app",
    "extract_file_paths",
    "resolve_path",
    "resolve_paths_in_sql",
    "run_snippet",
]
