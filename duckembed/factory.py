"""Construction of the engine connection from an acquired client module."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from types import ModuleType
from typing import Any

import httpx

from .config import ManagerConfig
from .errors import ConnectionBuildError, CrossOriginBlockedError

logger = logging.getLogger(__name__)

CROSS_ORIGIN_MARKERS = ("CORS", "cross-origin")


@dataclass
class ConnectionHandle:
    """Everything one connection lifetime owns.

    Attributes:
        module: Engine client module the connection was built from
        db: Instantiated engine
        connection: Logical connection statements are submitted through
        worker: Worker the engine runs on
    """

    module: Any
    db: Any
    connection: Any
    worker: Any = None

    @property
    def http_protocol(self) -> Any:
        """Protocol tag for remotely fetchable, non direct-write files."""
        return self.module.DataProtocol.HTTP

    async def close(self) -> None:
        try:
            await self.connection.close()
        finally:
            await self.db.terminate()


class ConnectionFactory:
    """Builds the worker, engine instance and logical connection.

    Not idempotent: every call builds a fresh engine.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._transport = transport
        self._timeout = timeout

    async def build(self, module: ModuleType, config: ManagerConfig) -> ConnectionHandle:
        step = "logger creation"
        worker = None
        db = None
        try:
            log = module.ConsoleLogger()

            step = "bundle selection"
            bundles = module.get_bundles(config.delivery_base_url, config.engine_version)
            bundle = await module.select_bundle(bundles)

            step = "worker fetch"
            logger.info("Loading DuckDB worker from %s", bundle.main_worker)
            payload = await self._fetch_worker(bundle.main_worker)

            step = "worker startup"
            worker = self._start_worker(module, payload)

            step = "instantiation"
            logger.info("Initializing DuckDB...")
            db = module.AsyncDuckDB(log, worker)
            await db.instantiate(bundle.main_module, bundle.main_worker)

            step = "connection"
            connection = await db.connect()
        except Exception as e:
            logger.error("DuckDB initialization error during %s: %s", step, e)
            await self._discard(db, worker)
            reason = str(e) or type(e).__name__
            if any(marker.lower() in reason.lower() for marker in CROSS_ORIGIN_MARKERS):
                raise CrossOriginBlockedError(step, reason) from e
            raise ConnectionBuildError(step, reason) from e

        logger.info("DuckDB initialized successfully")
        return ConnectionHandle(module=module, db=db, connection=connection, worker=worker)

    async def _fetch_worker(self, url: str) -> bytes:
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._timeout, follow_redirects=True
        ) as client:
            response = await client.get(url)
        if response.is_error:
            raise RuntimeError(
                f"Failed to fetch worker: {response.status_code} {response.reason_phrase}"
            )
        return response.content

    def _start_worker(self, module: ModuleType, payload: bytes) -> Any:
        """Materialize the payload as a local file and start a worker from it."""
        fd, path = tempfile.mkstemp(prefix="duckembed-", suffix=".worker")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
            return module.Worker(path)
        finally:
            os.unlink(path)

    async def _discard(self, db: Any, worker: Any) -> None:
        try:
            if db is not None:
                await db.terminate()
            elif worker is not None:
                worker.terminate()
        except Exception as e:
            logger.warning("Cleanup after failed initialization raised: %s", e)
