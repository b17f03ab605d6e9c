"""
Servicing errors - typed failure categories shared by every component.
"""


class ServicingError(Exception):
    """Base exception for all Servicing errors."""
    pass


class NotFound(ServicingError):
    """The named service is not registered in the cache."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Service {name} not found")


class AlreadyRunning(ServicingError):
    """The service already has an endpoint or is being provisioned."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Service {name} is already running")


class NotRunning(ServicingError):
    """The service was never brought up."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Service {name} is not running")


class BackendMissing(ServicingError):
    """The external orchestration tool is not installed."""

    def __init__(self, tool: str):
        self.tool = tool
        super().__init__(f"Orchestrator tool '{tool}' is not installed or not on PATH")


class ProvisionFailed(ServicingError):
    """The external tool reported a failure, or the service is in the wrong state."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class IOFailure(ServicingError):
    """Reading or writing a file on disk failed."""
    pass


class SerializationFailure(ServicingError):
    """Encoding or decoding a document or the persisted cache failed."""
    pass


class LockFailure(ServicingError):
    """The cache guard was poisoned by a prior failed critical section."""
    pass


class General(ServicingError):
    """Anything that does not fit the other categories."""
    pass
