"""SkyPilot backend, driving ``sky serve`` as a subprocess."""

import itertools
import logging
import re
import subprocess
from pathlib import Path
from typing import List, Optional

import httpx

from ..cache import ServiceCache
from ..errors import (
    AlreadyRunning,
    BackendMissing,
    General,
    IOFailure,
    NotFound,
    NotRunning,
    ProvisionFailed,
)
from ..helpers import check_tool_installed, delete_file, read_file, write_file
from ..models import Configuration, UserProvidedConfig
from ..readiness import poll_readiness, probe_once
from .base import Orchestrator

logger = logging.getLogger(__name__)

# host:port token printed by `sky serve status`
ENDPOINT_PATTERN = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}:\d+\b")

REPLICA_NOT_READY = "no ready replicas"

# Ownership tokens for in-flight `up` calls
_provision_tokens = itertools.count(1)


class SkyPilot(Orchestrator):
    """Orchestrator backed by the SkyPilot command line tool.

    Every service maps to one SkyPilot service of the same name. The tool is
    invoked as ``sky serve up|down|status`` and its exit code is the only
    success signal; the live endpoint is scraped from the status output.
    """

    @property
    def command(self) -> str:
        return self.settings.sky_command

    def config_path(self, working_dir: Path, name: str) -> Path:
        return working_dir / f"{name}{self.settings.config_file_suffix}"

    def setup(
        self,
        cache: ServiceCache,
        working_dir: Path,
        name: str,
        config: Optional[UserProvidedConfig] = None,
    ) -> Path:
        if not check_tool_installed(self.command):
            raise BackendMissing(self.command)

        resolved = self.resolve_config(config)
        path = self.config_path(working_dir, name)
        write_file(path, resolved.to_yaml())
        logger.info(f"Wrote configuration for service {name} to {path}")
        return path

    def remove(self, cache: ServiceCache, name: str) -> None:
        with cache.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            self._ensure_stopped(name, service)
            service.removing = True
            path = service.config_file_path

        if path is not None:
            try:
                delete_file(path)
            except Exception:
                with cache.lock() as services:
                    service = services.get(name)
                    if service is not None:
                        service.removing = False
                raise

        with cache.lock() as services:
            if services.pop(name, None) is None:
                raise NotFound(name)
        logger.info(f"Removed service {name}")

    def update(self, cache: ServiceCache, name: str) -> None:
        with cache.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            self._ensure_not_removing(name, service)
            if service.is_active:
                raise ProvisionFailed(f"Service {name} must be down before its configuration is updated")
            if service.config_file_path is None:
                raise General(f"Configuration file for service {name} not found")
            override = service.configuration
            path = service.config_file_path

        resolved = self.resolve_config(override)
        write_file(path, resolved.to_yaml())

        with cache.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            service.resolved_config = resolved
            service.readiness_probe_path = resolved.service.readiness_probe
        logger.info(f"Updated configuration for service {name}")

    def up(
        self,
        client: httpx.AsyncClient,
        cache: ServiceCache,
        name: str,
        skip_confirmation: bool = False,
    ) -> None:
        with cache.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            self._ensure_not_removing(name, service)
            if service.endpoint is not None or service.provisioning is not None:
                raise AlreadyRunning(name)
            if service.config_file_path is None:
                raise General(f"Configuration file for service {name} not found, run setup first")
            token = next(_provision_tokens)
            service.provisioning = token
            path = service.config_file_path
            probe_path = service.readiness_probe_path

        logger.info(f"Launching service {name} with configuration from {path}")
        try:
            cmd = [self.command, "serve", "up", "-n", name, str(path)]
            if skip_confirmation:
                cmd.append("-y")
            result = self._run(cmd, name, "serve up")
            if result.returncode != 0:
                raise ProvisionFailed(
                    f"Provisioning service {name} failed with exit code {result.returncode}"
                )
            endpoint = self.discover_endpoint(name)
        except Exception:
            self._clear_provisioning(cache, name, token)
            raise

        with cache.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            if service.provisioning != token:
                raise ProvisionFailed(f"Service {name} was brought down while provisioning")
            service.provisioning = None
            service.endpoint = endpoint
            service.is_up = False
        logger.info(f"Service {name} provisioned at {endpoint}, waiting for replicas")

        self.runtime.spawn(
            poll_readiness(
                client,
                cache,
                name,
                endpoint,
                probe_path,
                self.replica_check_marker(),
                self.settings.poll_interval,
            )
        )

    def down(
        self,
        cache: ServiceCache,
        name: str,
        skip_confirmation: bool = False,
        force: bool = False,
    ) -> None:
        with cache.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            self._ensure_not_removing(name, service)
            if service.is_active:
                service.endpoint = None
                service.is_up = False
                service.provisioning = None
            elif not force:
                raise NotRunning(name)

        logger.info(f"Destroying service {name}")
        cmd = [self.command, "serve", "down", name]
        if skip_confirmation:
            cmd.append("-y")
        result = self._run(cmd, name, "serve down")
        if result.returncode != 0:
            raise ProvisionFailed(
                f"Tearing down service {name} failed with exit code {result.returncode}"
            )

    def status(
        self,
        client: httpx.AsyncClient,
        cache: ServiceCache,
        name: str,
        pretty: bool = False,
    ) -> str:
        with cache.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            if service.config_file_path is None:
                raise General(f"Configuration file for service {name} not found")
            path = service.config_file_path
            endpoint = service.endpoint
            url = service.readiness_url() if service.is_up else None

        logger.info(f"Checking the status of service {name}")
        resolved = Configuration.from_yaml(read_file(path).decode("utf-8", errors="replace"))

        ready = True
        if url is not None:
            ready = self.runtime.block_on(probe_once(client, url, self.replica_check_marker()))

        with cache.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            service.resolved_config = resolved
            if not ready and service.is_up and service.endpoint == endpoint:
                logger.warning(f"Service {name} stopped answering its readiness probe")
                service.is_up = False
            return service.model_dump_json(indent=2 if pretty else None)

    def replica_check_marker(self) -> str:
        return REPLICA_NOT_READY

    def discover_endpoint(self, name: str) -> str:
        """Ask ``sky serve status`` for the endpoint of ``name``.

        Raises:
            ProvisionFailed: If the status command exits non-zero
            General: If no ``host:port`` token appears in its output
        """
        result = self._run(
            [self.command, "serve", "status", name], name, "serve status", capture=True
        )
        if result.returncode != 0:
            raise ProvisionFailed(
                f"Querying status of service {name} failed with exit code {result.returncode}"
            )

        match = ENDPOINT_PATTERN.search(result.stdout or "")
        if match is None:
            raise General(f"Cannot find the endpoint of service {name} in status output")
        return match.group(0)

    def _run(
        self, cmd: List[str], name: str, step: str, capture: bool = False
    ) -> subprocess.CompletedProcess:
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            return subprocess.run(
                cmd,
                capture_output=capture,
                text=True,
                errors="replace",
                check=False,
            )
        except FileNotFoundError as e:
            raise BackendMissing(self.command) from e
        except OSError as e:
            raise IOFailure(f"Failed to launch '{step}' for service {name}: {e}") from e

    def _ensure_stopped(self, name, service) -> None:
        if service.is_up:
            raise ProvisionFailed(f"Service {name} is still up")
        if service.endpoint is not None:
            raise ProvisionFailed(f"Service {name} is starting")
        if service.provisioning is not None:
            raise ProvisionFailed(f"Service {name} is provisioning")
        self._ensure_not_removing(name, service)

    def _ensure_not_removing(self, name, service) -> None:
        if service.removing:
            raise ProvisionFailed(f"Service {name} is being removed")

    def _clear_provisioning(self, cache: ServiceCache, name: str, token: int) -> None:
        with cache.lock() as services:
            service = services.get(name)
            if service is not None and service.provisioning == token:
                service.provisioning = None
