"""
Pydantic models for Servicing.

This module contains the data shared by every component:
- UserProvidedConfig: sparse override supplied by the caller
- Configuration: the fully resolved document handed to the orchestrator
- Orchestrators: which backend owns a service
- Service: one record in the service cache
"""

from enum import Enum
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from .errors import SerializationFailure


class Orchestrators(str, Enum):
    """Supported orchestrator backends."""
    SKYPILOT = "SkyPilot"
    LOCAL = "Local"


class ServiceStatus(str, Enum):
    """Lifecycle status derived from a service record."""
    REGISTERED = "registered"
    PROVISIONING = "provisioning"
    STARTING = "starting"
    READY = "ready"


class UserProvidedConfig(BaseModel):
    """Sparse configuration override.

    Every field is optional; only the fields that are set replace the
    corresponding value of the default Configuration.

    Example:
        >>> UserProvidedConfig(port=9000, accelerators="A100:1")
    """

    port: Optional[int] = Field(None, ge=1, le=65535)
    replicas: Optional[int] = Field(None, ge=0)
    cloud: Optional[str] = None
    workdir: Optional[str] = None
    disk_size: Optional[int] = Field(None, ge=0)
    cpu: Optional[str] = None
    memory: Optional[str] = None
    accelerators: Optional[str] = None
    setup: Optional[str] = None
    run: Optional[str] = None
    readiness_probe: Optional[str] = None


class ServiceSection(BaseModel):
    readiness_probe: str
    replicas: int


class Resources(BaseModel):
    ports: int
    cloud: str
    cpus: str
    memory: str
    disk_size: int
    accelerators: Optional[str] = None


class Configuration(BaseModel):
    """Resolved configuration document sent to the orchestrator.

    Attributes:
        service: Readiness probe path and replica count
        resources: Port, cloud, cpu, memory, disk and accelerator requirements
        workdir: Directory synced to the remote machines
        setup: Script run once when a replica is provisioned
        run: Script that starts the service
    """

    service: ServiceSection = Field(
        default_factory=lambda: ServiceSection(readiness_probe="/health", replicas=2)
    )
    resources: Resources = Field(
        default_factory=lambda: Resources(
            ports=8080,
            cloud="aws",
            cpus="4+",
            memory="10+",
            disk_size=100,
        )
    )
    workdir: str = "."
    setup: str = "conda install cudatoolkit -y\npip install poetry\npoetry install\n"
    run: str = "poetry run python service.py\n"

    @classmethod
    def test_config(cls) -> "Configuration":
        """Small single-replica configuration serving the working directory."""
        return cls(
            service=ServiceSection(readiness_probe="/", replicas=1),
            resources=Resources(
                ports=8080,
                cloud="aws",
                cpus="4+",
                memory="10+",
                disk_size=50,
            ),
            workdir=".",
            setup="",
            run="python -m http.server 8080\n",
        )

    def merge(self, override: Optional[UserProvidedConfig]) -> "Configuration":
        """Return a copy with the fields present in ``override`` applied.

        The receiver is left untouched, so merging the same override twice
        gives the same document as merging it once.
        """
        merged = self.model_copy(deep=True)
        if override is None:
            return merged

        if override.port is not None:
            merged.resources.ports = override.port
        if override.replicas is not None:
            merged.service.replicas = override.replicas
        if override.readiness_probe is not None:
            merged.service.readiness_probe = override.readiness_probe
        if override.cloud is not None:
            merged.resources.cloud = override.cloud
        if override.workdir is not None:
            merged.workdir = override.workdir
        if override.disk_size is not None:
            merged.resources.disk_size = override.disk_size
        if override.cpu is not None:
            merged.resources.cpus = override.cpu
        if override.memory is not None:
            merged.resources.memory = override.memory
        if override.setup is not None:
            merged.setup = override.setup
        if override.run is not None:
            merged.run = override.run
        if override.accelerators is not None:
            merged.resources.accelerators = override.accelerators
        return merged

    def to_yaml(self) -> str:
        """Render the document for the orchestrator.

        ``accelerators`` is left out entirely when unset, the tool rejects
        an explicit null there.
        """
        return yaml.safe_dump(self.model_dump(exclude_none=True), sort_keys=False)

    @classmethod
    def from_yaml(cls, content: str) -> "Configuration":
        """Parse a document previously produced by ``to_yaml``."""
        try:
            return cls.model_validate(yaml.safe_load(content))
        except (yaml.YAMLError, ValidationError) as e:
            raise SerializationFailure(f"Invalid configuration document: {e}") from e


class Service(BaseModel):
    """One entry of the service cache.

    Attributes:
        configuration: Sparse override supplied when the service was added
        resolved_config: Fully merged document last written to disk
        backend_kind: Orchestrator that owns this service
        config_file_path: Generated configuration document, set by setup
        readiness_probe_path: Path appended to the endpoint when probing
        endpoint: ``host:port`` reported by the orchestrator once provisioned
        is_up: True only after a readiness probe succeeded
        provisioning: Token of the ``up`` whose subprocess is in flight, never persisted
        removing: Set while ``remove`` deletes the configuration file, never persisted
    """

    configuration: Optional[UserProvidedConfig] = None
    resolved_config: Optional[Configuration] = None
    backend_kind: Orchestrators = Orchestrators.SKYPILOT
    config_file_path: Optional[Path] = None
    readiness_probe_path: str = "/"
    endpoint: Optional[str] = None
    is_up: bool = False
    provisioning: Optional[int] = Field(default=None, exclude=True)
    removing: bool = Field(default=False, exclude=True)

    @model_validator(mode="after")
    def _up_requires_endpoint(self) -> "Service":
        if self.is_up and self.endpoint is None:
            raise ValueError("a service that is up must have an endpoint")
        return self

    @property
    def status(self) -> ServiceStatus:
        if self.is_up:
            return ServiceStatus.READY
        if self.endpoint is not None:
            return ServiceStatus.STARTING
        if self.provisioning is not None:
            return ServiceStatus.PROVISIONING
        return ServiceStatus.REGISTERED

    @property
    def is_active(self) -> bool:
        """True while the service is provisioning, starting or ready."""
        return self.is_up or self.endpoint is not None or self.provisioning is not None

    def readiness_url(self) -> Optional[str]:
        if self.endpoint is None:
            return None
        return f"http://{self.endpoint}{self.readiness_probe_path}"
