"""Dispatcher - the façade callers use to manage services.

The dispatcher owns a reference to the shared service cache, the worker
runtime and an HTTP client. It resolves which backend owns a service,
delegates lifecycle operations to it and handles persistence of the cache.
"""

import logging
from pathlib import Path
from typing import List, Optional

import httpx

from .errors import General, NotFound, NotRunning, ProvisionFailed, ServicingError
from .helpers import create_directory, create_http_client, read_file, write_file
from .models import Orchestrators, Service, UserProvidedConfig
from .orchestrator import Orchestrator, get_orchestrator
from .persistence import (
    decode_services,
    decode_services_b64,
    encode_services,
    encode_services_b64,
)
from .readiness import poll_readiness
from .runtime import ServicingContext, get_context
from .settings import ServicingSettings, get_settings

logger = logging.getLogger(__name__)


class Dispatcher:
    """Entry point for creating, provisioning and tracking services.

    Dispatchers built without an explicit context share the process-wide
    default one, so every dispatcher sees the same services.

    The cache lock is only taken to look up or mutate a record; it is never
    held while a backend runs a subprocess or probes an endpoint.

    Example:
        dispatcher = Dispatcher()
        dispatcher.add_service("api", Orchestrators.SKYPILOT, UserProvidedConfig(port=9000))
        dispatcher.up("api", skip_confirmation=True)
        print(dispatcher.get_url("api"))
    """

    def __init__(
        self,
        context: Optional[ServicingContext] = None,
        settings: Optional[ServicingSettings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.context = context if context is not None else get_context()
        self.settings = settings if settings is not None else get_settings()
        self.client = client if client is not None else create_http_client(self.settings.http_timeout)

    @property
    def cache(self):
        return self.context.cache

    @property
    def runtime(self):
        return self.context.runtime

    def _orchestrator(self, kind: Orchestrators) -> Orchestrator:
        return get_orchestrator(kind, self.runtime, self.settings)

    def _orchestrator_for(self, name: str) -> Orchestrator:
        with self.cache.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            kind = service.backend_kind
        return self._orchestrator(kind)

    def add_service(
        self,
        name: str,
        backend: Orchestrators = Orchestrators.SKYPILOT,
        config: Optional[UserProvidedConfig] = None,
    ) -> None:
        """Register a service and generate its configuration document.

        Raises:
            General: If a service with this name already exists
            BackendMissing: If the backend's tool is not installed
        """
        orchestrator = self._orchestrator(backend)

        with self.cache.reserve(name):
            working_dir = create_directory(self.settings.cache_dir)
            filepath = orchestrator.setup(self.cache, working_dir, name, config)
            resolved = orchestrator.resolve_config(config)

            with self.cache.lock() as services:
                if name in services:
                    raise General(f"Service {name} already exists")
                services[name] = Service(
                    configuration=config,
                    resolved_config=resolved,
                    backend_kind=backend,
                    config_file_path=filepath,
                    readiness_probe_path=resolved.service.readiness_probe,
                )
        logger.info(f"Added service {name} ({backend.value})")

    def remove_service(self, name: str) -> None:
        """Remove a stopped service and delete its configuration document."""
        self._orchestrator_for(name).remove(self.cache, name)

    def update_service(self, name: str, config: Optional[UserProvidedConfig] = None) -> None:
        """Replace a stopped service's override (if given) and regenerate its document."""
        orchestrator = self._orchestrator_for(name)
        if config is not None:
            with self.cache.lock() as services:
                service = services.get(name)
                if service is None:
                    raise NotFound(name)
                if service.is_active:
                    raise ProvisionFailed(
                        f"Service {name} must be down before its configuration is updated"
                    )
                service.configuration = config
        orchestrator.update(self.cache, name)

    def up(self, name: str, skip_confirmation: bool = False) -> None:
        """Provision a service; readiness is tracked in the background."""
        self._orchestrator_for(name).up(self.client, self.cache, name, skip_confirmation)

    def down(self, name: str, skip_confirmation: bool = False, force: bool = False) -> None:
        self._orchestrator_for(name).down(self.cache, name, skip_confirmation, force)

    def status(self, name: str, pretty: bool = False) -> str:
        """Return the JSON snapshot of a service, re-probing it if it claims to be up."""
        return self._orchestrator_for(name).status(self.client, self.cache, name, pretty)

    def list(self) -> List[str]:
        return self.cache.names()

    def get_url(self, name: str) -> str:
        """Return the ``host:port`` endpoint of a service.

        Raises:
            NotFound: If the service is not registered
            NotRunning: If the service has no endpoint
        """
        with self.cache.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            if service.endpoint is None:
                raise NotRunning(name)
            return service.endpoint

    def _cache_file(self, location: Optional[Path]) -> Path:
        directory = create_directory(Path(location) if location is not None else self.settings.cache_dir)
        return directory / self.settings.cache_file_name

    def save(self, location: Optional[Path] = None) -> Path:
        """Persist the whole cache to ``<location>/services.bin``.

        Args:
            location: Directory to write to (default: the configured cache dir)

        Returns:
            Path of the written file
        """
        data = encode_services(self.cache.snapshot())
        path = write_file(self._cache_file(location), data)
        logger.info(f"Saved {self.settings.cache_file_name} to {path.parent}")
        return path

    def save_as_base64(self) -> str:
        return encode_services_b64(self.cache.snapshot())

    def load(self, location: Optional[Path] = None, reconcile_on_load: bool = False) -> None:
        """Merge a persisted cache into the in-memory one.

        Entries with the same name are replaced by the loaded ones.

        Args:
            location: Directory holding the cache file (default: the configured cache dir)
            reconcile_on_load: Start readiness polling for loaded services that
                have an endpoint but are not yet marked up
        """
        path = self._cache_file(location)
        services = decode_services(read_file(path))
        self.cache.extend(services)
        logger.info(f"Loaded {len(services)} services from {path}")

        if reconcile_on_load:
            self.reconcile()

    def load_from_base64(self, data: str) -> None:
        self.cache.extend(decode_services_b64(data))

    def reconcile(self) -> int:
        """Start a readiness poller for every starting service.

        Returns:
            Number of pollers started
        """
        logger.info("Checking for services that may have come up while you were away...")

        with self.cache.lock() as services:
            starting = [
                (name, service.backend_kind, service.endpoint, service.readiness_probe_path)
                for name, service in services.items()
                if service.endpoint is not None and not service.is_up
            ]

        if not starting:
            logger.info("No services to check")
            return 0

        started = 0
        for name, kind, endpoint, probe_path in starting:
            try:
                marker = self._orchestrator(kind).replica_check_marker()
            except ServicingError as e:
                logger.warning(f"Skipping readiness check for service {name}: {e}")
                continue
            self.runtime.spawn(
                poll_readiness(
                    self.client,
                    self.cache,
                    name,
                    endpoint,
                    probe_path,
                    marker,
                    self.settings.poll_interval,
                )
            )
            started += 1
        logger.info(f"Started readiness checks for {started} services")
        return started

    def close(self) -> None:
        """Close the HTTP client. The shared context keeps running."""
        if self.runtime.is_running:
            self.runtime.block_on(self.client.aclose())

    def __enter__(self) -> "Dispatcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
