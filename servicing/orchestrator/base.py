"""Capability interface implemented by every orchestrator backend."""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx

from ..cache import ServiceCache
from ..models import Configuration, UserProvidedConfig
from ..runtime import Runtime
from ..settings import ServicingSettings


class Orchestrator(ABC):
    """Performs provisioning actions for one service against an external tool.

    Backends are stateless apart from their collaborators; all service state
    lives in the shared ServiceCache. Implementations must never hold the
    cache lock while running a subprocess, probing the network or touching
    the disk.

    Attributes:
        runtime: Worker loop used for probes and background polling
        settings: Active Servicing settings
    """

    def __init__(self, runtime: Runtime, settings: ServicingSettings):
        self.runtime = runtime
        self.settings = settings

    def resolve_config(self, config: Optional[UserProvidedConfig] = None) -> Configuration:
        """Overlay a sparse override on this backend's default configuration."""
        return Configuration().merge(config)

    @abstractmethod
    def setup(
        self,
        cache: ServiceCache,
        working_dir: Path,
        name: str,
        config: Optional[UserProvidedConfig] = None,
    ) -> Path:
        """Verify the tool, render the configuration and return its path."""

    @abstractmethod
    def remove(self, cache: ServiceCache, name: str) -> None:
        """Delete the configuration file and drop the service from the cache."""

    @abstractmethod
    def update(self, cache: ServiceCache, name: str) -> None:
        """Re-render the configuration file from the stored override."""

    @abstractmethod
    def up(
        self,
        client: httpx.AsyncClient,
        cache: ServiceCache,
        name: str,
        skip_confirmation: bool = False,
    ) -> None:
        """Provision the service and start polling it for readiness."""

    @abstractmethod
    def down(
        self,
        cache: ServiceCache,
        name: str,
        skip_confirmation: bool = False,
        force: bool = False,
    ) -> None:
        """Tear the service down."""

    @abstractmethod
    def status(
        self,
        client: httpx.AsyncClient,
        cache: ServiceCache,
        name: str,
        pretty: bool = False,
    ) -> str:
        """Return a serialized snapshot of the service record."""

    @abstractmethod
    def replica_check_marker(self) -> str:
        """Substring a readiness response contains while replicas are not ready."""
