"""Acquisition of the engine client module through a fallback chain.

Strategies are tried in order and the first success wins:

1. A module already published in the process-wide registry.
2. A regular import of the configured package.
3. A download of the module source from the delivery network. A module
   obtained this way is published, so later acquisitions (from any
   manager in the process) find it at step 1.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
from types import ModuleType
from typing import Iterable

import httpx

from .config import ManagerConfig
from .errors import ModuleAcquisitionError

logger = logging.getLogger(__name__)

# Process-wide registry of engine modules, keyed by package name.
published_modules: dict[str, ModuleType] = {}


def publish_module(name: str, module: ModuleType) -> None:
    published_modules[name] = module


class StrategyUnavailable(Exception):
    """Raised by a strategy that has nothing to offer. Not a failure."""


class LoadStrategy:
    """One way of obtaining the engine module."""

    name = "strategy"

    async def load(self, config: ManagerConfig) -> ModuleType:
        raise NotImplementedError


class PublishedModuleStrategy(LoadStrategy):
    name = "Pre-published module"

    async def load(self, config: ManagerConfig) -> ModuleType:
        module = published_modules.get(config.package_name)
        if module is None:
            raise StrategyUnavailable(f"{config.package_name} has not been published")
        logger.info("Using pre-published engine module %s", config.package_name)
        return module


class ImportStrategy(LoadStrategy):
    name = "Dynamic import"

    async def load(self, config: ManagerConfig) -> ModuleType:
        logger.debug("Attempting to import engine module %s", config.package_name)
        module = importlib.import_module(config.package_name)
        logger.info("Engine module %s loaded via import", config.package_name)
        return module


class DeliveryNetworkStrategy(LoadStrategy):
    """Loads the module source from the configured delivery network."""

    name = "Delivery network"

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        timeout: float = 30.0,
    ) -> None:
        self._transport = transport
        self._timeout = timeout

    async def load(self, config: ManagerConfig) -> ModuleType:
        url = config.module_url
        logger.info("Loading engine module from %s", url)
        async with httpx.AsyncClient(
            transport=self._transport, timeout=self._timeout, follow_redirects=True
        ) as client:
            response = await client.get(url)
            response.raise_for_status()

        spec = importlib.util.spec_from_loader(config.package_name, loader=None, origin=url)
        module = importlib.util.module_from_spec(spec)
        module.__file__ = url
        code = compile(response.text, url, "exec")
        exec(code, module.__dict__)

        publish_module(config.package_name, module)
        logger.info("Engine module loaded from %s", url)
        return module


def default_strategies(
    transport: httpx.AsyncBaseTransport | None = None,
) -> list[LoadStrategy]:
    return [
        PublishedModuleStrategy(),
        ImportStrategy(),
        DeliveryNetworkStrategy(transport=transport),
    ]


class ModuleAcquirer:
    """Runs the strategy chain and memoizes the first module obtained."""

    def __init__(self, strategies: Iterable[LoadStrategy] | None = None) -> None:
        self._strategies = (
            list(strategies) if strategies is not None else default_strategies()
        )
        self._module: ModuleType | None = None

    @property
    def strategies(self) -> list[LoadStrategy]:
        return list(self._strategies)

    @property
    def module(self) -> ModuleType | None:
        return self._module

    async def acquire(self, config: ManagerConfig) -> ModuleType:
        if self._module is not None:
            return self._module

        failures: list[str] = []
        for strategy in self._strategies:
            try:
                module = await strategy.load(config)
            except StrategyUnavailable as e:
                logger.debug("%s skipped: %s", strategy.name, e)
                continue
            except Exception as e:
                logger.info("%s failed: %s", strategy.name, e)
                reason = f"{strategy.name}: {e}"
                if reason not in failures:
                    failures.append(reason)
                continue
            self._module = module
            return module

        logger.error("Engine module %s could not be loaded", config.package_name)
        raise ModuleAcquisitionError(config.package_name, failures)

    def reset(self) -> None:
        self._module = None
