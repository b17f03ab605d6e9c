"""
Servicing - lifecycle management for remotely provisioned services.

Register named services, provision them through an external orchestrator
(SkyPilot), track their readiness in the background and persist the
bookkeeping between sessions.
"""

from .cache import ServiceCache
from .dispatcher import Dispatcher
from .errors import (
    AlreadyRunning,
    BackendMissing,
    General,
    IOFailure,
    LockFailure,
    NotFound,
    NotRunning,
    ProvisionFailed,
    SerializationFailure,
    ServicingError,
)
from .models import Configuration, Orchestrators, Service, ServiceStatus, UserProvidedConfig
from .runtime import Runtime, ServicingContext, get_context
from .settings import ServicingSettings, configure_logging, get_settings, reload_settings

__version__ = "0.1.0"
__all__ = [
    "AlreadyRunning",
    "BackendMissing",
    "Configuration",
    "Dispatcher",
    "General",
    "IOFailure",
    "LockFailure",
    "NotFound",
    "NotRunning",
    "Orchestrators",
    "ProvisionFailed",
    "Runtime",
    "SerializationFailure",
    "Service",
    "ServiceCache",
    "ServiceStatus",
    "ServicingContext",
    "ServicingError",
    "ServicingSettings",
    "UserProvidedConfig",
    "configure_logging",
    "get_context",
    "get_settings",
    "reload_settings",
]
