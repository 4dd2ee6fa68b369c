"""Configuration for the query manager and the embed runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_ENGINE_VERSION = "1.31.1-dev1.0"
DEFAULT_DELIVERY_BASE_URL = "https://cdn.jsdelivr.net/npm/@duckdb/duckdb-wasm"
DEFAULT_PACKAGE_NAME = "duckembed.engine"
DEFAULT_BASE_URL = "https://data.sql-workbench.com"


@dataclass(frozen=True)
class ManagerConfig:
    """Settings the connection factory commits to on first use.

    Attributes:
        engine_version: Engine release used for delivery network URLs
        delivery_base_url: Base URL of the delivery network hosting the
            engine module and worker payloads
        package_name: Importable name of the engine client module
    """

    engine_version: str = DEFAULT_ENGINE_VERSION
    delivery_base_url: str = DEFAULT_DELIVERY_BASE_URL
    package_name: str = DEFAULT_PACKAGE_NAME

    @property
    def release_url(self) -> str:
        """Root URL of the configured engine release on the delivery network."""
        return f"{self.delivery_base_url.rstrip('/')}@{self.engine_version}"

    @property
    def module_url(self) -> str:
        """URL of the engine client module source on the delivery network."""
        module_file = self.package_name.rsplit(".", 1)[-1]
        return f"{self.release_url}/{module_file}.py"

    @classmethod
    def from_env(cls) -> ManagerConfig:
        return cls(
            engine_version=os.getenv("DUCKEMBED_ENGINE_VERSION", DEFAULT_ENGINE_VERSION),
            delivery_base_url=os.getenv(
                "DUCKEMBED_DELIVERY_BASE_URL", DEFAULT_DELIVERY_BASE_URL
            ),
            package_name=os.getenv("DUCKEMBED_PACKAGE", DEFAULT_PACKAGE_NAME),
        )


@dataclass(frozen=True)
class EmbedConfig:
    """Settings for running snippets: file resolution plus the manager config."""

    base_url: str = DEFAULT_BASE_URL
    manager: ManagerConfig = field(default_factory=ManagerConfig)
    setup_queries: tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> EmbedConfig:
        return cls(
            base_url=os.getenv("DUCKEMBED_BASE_URL", DEFAULT_BASE_URL),
            manager=ManagerConfig.from_env(),
        )
