import asyncio
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any

import httpx
import pyarrow as pa
import pytest

from duckembed import ManagerConfig, QueryManager
from duckembed.factory import ConnectionFactory
from duckembed.loader import LoadStrategy, ModuleAcquirer

WORKER_PAYLOAD = b"// duckdb worker payload"


class FakeProtocol(IntEnum):
    HTTP = 4


@dataclass(frozen=True)
class FakeBundle:
    main_module: str
    main_worker: str


class FakeLogger:
    def __init__(self) -> None:
        self.entries: list[Any] = []

    def log(self, entry: Any) -> None:
        self.entries.append(entry)


class FakeWorker:
    def __init__(self, path: str) -> None:
        self.path = path
        self.payload = Path(path).read_bytes()
        self.terminated = False

    def terminate(self) -> None:
        self.terminated = True


class FakeConnection:
    def __init__(self, engine: "FakeEngine") -> None:
        self.engine = engine
        self.closed = False

    async def query(self, sql: str) -> pa.Table:
        self.engine.statements.append(sql)
        await asyncio.sleep(0)
        gate = self.engine.gates.get(sql)
        if gate is not None:
            await gate.wait()
        error = self.engine.failures.get(sql)
        if error is not None:
            raise error
        return self.engine.results.get(sql, pa.table({}))

    async def register_file_url(self, name: str, url: str, protocol: int, direct_io: bool) -> None:
        self.engine.registrations.append((name, url, protocol, direct_io))
        await asyncio.sleep(0)
        error = self.engine.registration_failures.pop(url, None)
        if error is not None:
            raise error

    async def close(self) -> None:
        self.closed = True


class FakeDatabase:
    def __init__(self, engine: "FakeEngine", logger: FakeLogger, worker: FakeWorker) -> None:
        self.engine = engine
        self.logger = logger
        self.worker = worker
        self.instantiated_with: tuple[str, str] | None = None
        self.terminated = False

    async def instantiate(self, main_module: str, main_worker: str) -> None:
        await asyncio.sleep(self.engine.instantiate_delay)
        if self.engine.instantiate_error is not None:
            raise self.engine.instantiate_error
        self.instantiated_with = (main_module, main_worker)

    async def connect(self) -> FakeConnection:
        connection = FakeConnection(self.engine)
        self.engine.connections.append(connection)
        return connection

    async def terminate(self) -> None:
        self.terminated = True
        self.worker.terminate()


class FakeEngine:
    """Scripted stand-in for the engine client module."""

    DataProtocol = FakeProtocol

    def __init__(self) -> None:
        self.databases: list[FakeDatabase] = []
        self.connections: list[FakeConnection] = []
        self.statements: list[str] = []
        self.registrations: list[tuple[str, str, int, bool]] = []
        self.results: dict[str, pa.Table] = {}
        self.failures: dict[str, Exception] = {}
        self.registration_failures: dict[str, Exception] = {}
        # Statements that block until their event is set.
        self.gates: dict[str, asyncio.Event] = {}
        self.instantiate_delay = 0.01
        self.instantiate_error: Exception | None = None

    def ConsoleLogger(self) -> FakeLogger:
        return FakeLogger()

    def get_bundles(self, base_url: str, version: str) -> dict[str, FakeBundle]:
        return {
            "core": FakeBundle(
                main_module="ext://core",
                main_worker=f"{base_url}@{version}/dist/worker.js",
            )
        }

    async def select_bundle(self, bundles: dict[str, FakeBundle]) -> FakeBundle:
        return bundles["core"]

    def Worker(self, path: str) -> FakeWorker:
        return FakeWorker(path)

    def AsyncDuckDB(self, logger: FakeLogger, worker: FakeWorker) -> FakeDatabase:
        db = FakeDatabase(self, logger, worker)
        self.databases.append(db)
        return db


class StaticStrategy(LoadStrategy):
    name = "Static module"

    def __init__(self, module: Any) -> None:
        self.module = module
        self.loads = 0

    async def load(self, config: ManagerConfig) -> Any:
        self.loads += 1
        return self.module


class RecordingTransport(httpx.MockTransport):
    """Mock transport answering every request with one canned response."""

    def __init__(self, status_code: int = 200, content: bytes = WORKER_PAYLOAD) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = status_code
        self.content = content
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, content=self.content)


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def strategy(engine: FakeEngine) -> StaticStrategy:
    return StaticStrategy(engine)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def manager(strategy: StaticStrategy, transport: RecordingTransport) -> QueryManager:
    return QueryManager(
        ManagerConfig(),
        acquirer=ModuleAcquirer([strategy]),
        factory=ConnectionFactory(transport=transport),
    )


@pytest.fixture
def worker_payload() -> bytes:
    return WORKER_PAYLOAD


@pytest.fixture
def make_transport() -> type[RecordingTransport]:
    return RecordingTransport


@pytest.fixture
def make_strategy() -> type[StaticStrategy]:
    return StaticStrategy
