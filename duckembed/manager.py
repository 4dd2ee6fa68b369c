"""Shared query-execution resource manager.

One ``QueryManager`` owns one engine connection and shares it between any
number of concurrent callers. The connection is acquired lazily on first
use, the configured setup statements run exactly once before the first
user statement, and ``teardown`` returns the manager to its initial state.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from types import TracebackType
from typing import Any, Iterable

from .config import ManagerConfig
from .errors import (
    ConnectionBuildError,
    ConnectionUnavailableError,
    FileRegistrationError,
    QueryExecutionError,
    SetupStatementError,
)
from .factory import ConnectionFactory, ConnectionHandle
from .loader import ModuleAcquirer
from .result import QueryResult
from .single_flight import SingleFlight

logger = logging.getLogger(__name__)


class QueryManager:
    """Lazily connects to the engine and runs statements on a shared connection.

    Args:
        config: Engine version and delivery settings, mutable until first use
        setup_queries: Statements to run once before the first user query
        acquirer: Module acquisition chain
        factory: Connection factory
    """

    def __init__(
        self,
        config: ManagerConfig | None = None,
        *,
        setup_queries: Iterable[str] | None = None,
        acquirer: ModuleAcquirer | None = None,
        factory: ConnectionFactory | None = None,
    ) -> None:
        self._config = config or ManagerConfig()
        self._acquirer = acquirer or ModuleAcquirer()
        self._factory = factory or ConnectionFactory()
        self._connection: SingleFlight[ConnectionHandle] = SingleFlight()
        self._setup: SingleFlight[None] = SingleFlight()
        self._setup_queries: list[str] = list(setup_queries or [])
        self._file_registrations: dict[str, SingleFlight[None]] = {}
        self._generation = 0

    async def __aenter__(self) -> QueryManager:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.teardown()

    @property
    def config(self) -> ManagerConfig:
        return self._config

    @property
    def setup_queries(self) -> tuple[str, ...]:
        return tuple(self._setup_queries)

    @property
    def setup_done(self) -> bool:
        return self._setup.done

    @property
    def registered_files(self) -> frozenset[str]:
        return frozenset(
            url for url, flight in self._file_registrations.items() if flight.done
        )

    def configure(self, **changes: Any) -> None:
        """Update the engine settings.

        Ignored with a warning once a connection exists or is being built.
        """
        if self._connection.done or self._connection.running:
            logger.warning("DuckDB already initialized, configuration will not take effect")
            return
        self._config = replace(self._config, **changes)

    def configure_setup_queries(self, queries: Iterable[str]) -> None:
        """Set the statements run once before the first user query.

        Ignored with a warning once setup has started or completed.
        """
        if self._setup.done or self._setup.running:
            logger.warning("Init queries already executed, configuration will not take effect")
            return
        self._setup_queries = list(queries)

    def is_ready(self) -> bool:
        return self._connection.done

    async def ensure_ready(self) -> None:
        await self._connection.run(self._acquire)

    async def _acquire(self) -> ConnectionHandle:
        generation = self._generation
        config = self._config
        module = await self._acquirer.acquire(config)
        handle = await self._factory.build(module, config)
        if generation != self._generation:
            await handle.close()
            raise ConnectionBuildError("connection", "manager was torn down during initialization")
        return handle

    def _handle(self) -> ConnectionHandle:
        if not self._connection.done:
            raise ConnectionUnavailableError()
        return self._connection.result

    async def ensure_setup_ran(self) -> None:
        connection = self._handle().connection
        await self._setup.run(lambda: self._run_setup(connection))

    async def _run_setup(self, connection: Any) -> None:
        statements = list(self._setup_queries)
        if not statements:
            return

        logger.info("Executing %d initialization queries...", len(statements))
        for position, statement in enumerate(statements, start=1):
            logger.info("Init query [%d/%d]: %s", position, len(statements), statement)
            try:
                await connection.query(statement)
            except Exception as e:
                logger.error("Init query [%d/%d] failed: %s", position, len(statements), e)
                raise SetupStatementError(position, statement, str(e)) from e
        logger.info("Initialization queries completed successfully")

    async def _setup_connection(self) -> ConnectionHandle:
        """Return the connection once it is ready and its setup has completed.

        Raises ``ConnectionUnavailableError`` if the connection was torn down
        while this caller waited on its setup run.
        """
        await self.ensure_ready()
        handle = self._handle()
        await self.ensure_setup_ran()
        if not (
            self._connection.done and self._connection.result is handle and self._setup.done
        ):
            raise ConnectionUnavailableError()
        return handle

    async def register_file(self, name: str, url: str) -> None:
        """Register a remote file with the connection, once per URL."""
        handle = await self._setup_connection()

        flight = self._file_registrations.get(url)
        if flight is None:
            flight = self._file_registrations[url] = SingleFlight()
        await flight.run(lambda: self._register(handle, name, url))

    async def _register(self, handle: ConnectionHandle, name: str, url: str) -> None:
        try:
            await handle.connection.register_file_url(name, url, handle.http_protocol, False)
        except Exception as e:
            logger.error("Failed to register file %s from %s: %s", name, url, e)
            raise FileRegistrationError(name, url, str(e)) from e
        logger.debug("Registered file %s from %s", name, url)

    async def query(self, sql: str) -> QueryResult:
        """Run a statement, initializing the connection and setup if needed."""
        connection = (await self._setup_connection()).connection

        started = time.perf_counter()
        try:
            table = await connection.query(sql)
        except Exception as e:
            raise QueryExecutionError(sql, str(e)) from e
        execution_time_ms = (time.perf_counter() - started) * 1000

        return QueryResult.from_arrow(table, execution_time_ms)

    async def teardown(self) -> None:
        """Close the connection and reset to a freshly constructed state."""
        handle = self._connection.result if self._connection.done else None

        self._generation += 1
        self._connection.reset()
        self._setup.reset()
        self._setup_queries = []
        self._file_registrations.clear()
        self._acquirer.reset()

        if handle is not None:
            await handle.close()
            logger.info("DuckDB connection closed")
