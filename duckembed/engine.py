"""DuckDB engine client module.

This is the default module the manager acquires. It exposes the engine
capability surface (logger, bundles, worker, async database and
connection) on top of the ``duckdb`` Python package. All engine calls of
one database run on that database's worker thread, so awaiting them never
blocks the event loop.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import shutil
import tempfile
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import IntEnum
from functools import partial
from pathlib import Path, PurePosixPath
from typing import Any, Callable, TypeVar

import duckdb
import httpx
import pyarrow as pa

logger = logging.getLogger(__name__)

T = TypeVar("T")

CORE_EXTENSION_REPOSITORY = "http://extensions.duckdb.org"
NIGHTLY_EXTENSION_REPOSITORY = "http://nightly-extensions.duckdb.org"


class DataProtocol(IntEnum):
    """How a registered file reaches the engine."""

    BUFFER = 0
    NODE_FS = 1
    BROWSER_FILEREADER = 2
    BROWSER_FSACCESS = 3
    HTTP = 4
    S3 = 5


@dataclass(frozen=True)
class Bundle:
    """A deliverable engine build.

    Attributes:
        main_module: Extension repository the engine installs extensions from
        main_worker: URL of the worker payload for this build
    """

    main_module: str
    main_worker: str


class ConsoleLogger:
    """Forwards engine log entries to the standard logging tree."""

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level

    def log(self, entry: Any) -> None:
        logger.log(self.level, "%s", entry)


def get_bundles(base_url: str, version: str) -> dict[str, Bundle]:
    """Return the engine builds available for a release."""
    root = f"{base_url.rstrip('/')}@{version}/dist"
    return {
        "core": Bundle(
            main_module=CORE_EXTENSION_REPOSITORY,
            main_worker=f"{root}/duckdb-browser-eh.worker.js",
        ),
        "nightly": Bundle(
            main_module=NIGHTLY_EXTENSION_REPOSITORY,
            main_worker=f"{root}/duckdb-browser-mvp.worker.js",
        ),
    }


async def select_bundle(bundles: dict[str, Bundle]) -> Bundle:
    """Pick the build matching the installed engine (release or nightly)."""
    if not bundles:
        raise ValueError("No bundles available")
    preferred = "nightly" if "dev" in duckdb.__version__ else "core"
    if preferred in bundles:
        return bundles[preferred]
    return next(iter(bundles.values()))


class Worker:
    """In-process worker: a dedicated thread every engine call runs on.

    The payload file is read once at construction; the caller may delete it
    afterwards.
    """

    def __init__(self, path: str | Path) -> None:
        payload = Path(path).read_bytes()
        if not payload:
            raise ValueError(f"Worker payload {path} is empty")
        self.fingerprint = hashlib.sha256(payload).hexdigest()
        self.payload_size = len(payload)
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="duckembed-worker"
        )
        self._terminated = False

    @property
    def terminated(self) -> bool:
        return self._terminated

    async def call(self, fn: Callable[..., T], *args: Any) -> T:
        if self._terminated:
            raise RuntimeError("Worker has been terminated")
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, partial(fn, *args))

    def terminate(self) -> None:
        if self._terminated:
            return
        self._terminated = True
        self._executor.shutdown(wait=False, cancel_futures=True)


def _quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


class AsyncDuckDB:
    """An engine instance bound to a worker."""

    def __init__(
        self,
        logger: ConsoleLogger,
        worker: Worker,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._logger = logger
        self._worker = worker
        self._transport = transport
        self._db: duckdb.DuckDBPyConnection | None = None
        self._scratch: Path | None = None

    @property
    def worker(self) -> Worker:
        return self._worker

    @property
    def scratch_dir(self) -> Path | None:
        """Directory registered files are stored in and resolved against."""
        return self._scratch

    async def instantiate(self, main_module: str, main_worker: str | None = None) -> None:
        self._logger.log(
            f"Instantiating DuckDB {duckdb.__version__} "
            f"(worker {self._worker.fingerprint[:12]}, {self._worker.payload_size} bytes)"
        )
        self._scratch = Path(tempfile.mkdtemp(prefix="duckembed-files-"))
        self._db = await self._worker.call(self._open, main_module)

    def _open(self, main_module: str) -> duckdb.DuckDBPyConnection:
        db = duckdb.connect(":memory:")
        db.execute(f"SET custom_extension_repository = {_quote(main_module)}")
        db.execute(f"SET file_search_path = {_quote(str(self._scratch))}")
        return db

    def _require(self) -> duckdb.DuckDBPyConnection:
        if self._db is None:
            raise RuntimeError("DuckDB instance is not instantiated")
        return self._db

    async def connect(self) -> AsyncDuckDBConnection:
        db = self._require()
        cursor = await self._worker.call(db.cursor)
        await self._worker.call(
            cursor.execute, f"SET file_search_path = {_quote(str(self._scratch))}"
        )
        self._logger.log("Opened DuckDB connection")
        return AsyncDuckDBConnection(self, cursor)

    async def register_file_url(
        self,
        name: str,
        url: str,
        protocol: DataProtocol = DataProtocol.HTTP,
        direct_io: bool = False,
    ) -> None:
        """Make a remote file readable under ``name``.

        Only ``DataProtocol.HTTP`` is supported. The file is downloaded into
        the instance's scratch directory; ``direct_io`` is accepted for
        compatibility and ignored.
        """
        self._require()
        if protocol != DataProtocol.HTTP:
            raise ValueError(f"Unsupported data protocol: {DataProtocol(protocol).name}")
        if not name or PurePosixPath(name).name != name or name in (".", ".."):
            raise ValueError(f"Invalid file name: {name!r}")

        async with httpx.AsyncClient(
            transport=self._transport, timeout=60.0, follow_redirects=True
        ) as client:
            response = await client.get(url)
            response.raise_for_status()

        target = self._scratch / name  # type: ignore[operator]
        await self._worker.call(target.write_bytes, response.content)
        self._logger.log(f"Registered {name} from {url} ({len(response.content)} bytes)")

    async def terminate(self) -> None:
        try:
            if self._db is not None:
                await self._worker.call(self._db.close)
        finally:
            self._db = None
            self._worker.terminate()
            if self._scratch is not None:
                shutil.rmtree(self._scratch, ignore_errors=True)
                self._scratch = None


class AsyncDuckDBConnection:
    """A logical connection of an ``AsyncDuckDB`` instance."""

    def __init__(self, db: AsyncDuckDB, cursor: duckdb.DuckDBPyConnection) -> None:
        self._db = db
        self._cursor: duckdb.DuckDBPyConnection | None = cursor

    @property
    def closed(self) -> bool:
        return self._cursor is None

    def _run(self, sql: str) -> pa.Table:
        cursor = self._cursor
        if cursor is None:
            raise RuntimeError("Connection is closed")
        cursor.execute(sql)
        if cursor.description is None:
            return pa.table({})
        return cursor.fetch_arrow_table()

    async def query(self, sql: str) -> pa.Table:
        return await self._db.worker.call(self._run, sql)

    async def register_file_url(
        self,
        name: str,
        url: str,
        protocol: DataProtocol = DataProtocol.HTTP,
        direct_io: bool = False,
    ) -> None:
        await self._db.register_file_url(name, url, protocol, direct_io)

    async def close(self) -> None:
        cursor, self._cursor = self._cursor, None
        if cursor is not None:
            await self._db.worker.call(cursor.close)
