"""Orchestrator backends and the factory that selects one per service."""

from typing import Dict, Type

from ..errors import General
from ..models import Orchestrators
from ..runtime import Runtime
from ..settings import ServicingSettings
from .base import Orchestrator
from .sky import SkyPilot

_BACKENDS: Dict[Orchestrators, Type[Orchestrator]] = {
    Orchestrators.SKYPILOT: SkyPilot,
}


def get_orchestrator(
    kind: Orchestrators, runtime: Runtime, settings: ServicingSettings
) -> Orchestrator:
    """Build the backend that owns services of the given kind.

    Raises:
        General: If no backend is available for ``kind``
    """
    backend = _BACKENDS.get(kind)
    if backend is None:
        raise General(f"{kind.value} orchestrator is not implemented")
    return backend(runtime, settings)


__all__ = ["Orchestrator", "SkyPilot", "get_orchestrator"]
