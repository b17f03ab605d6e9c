"""Shared, lock-guarded registry of every known service."""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Mapping, Set

from .errors import General, LockFailure, NotFound, ServicingError
from .models import Service

logger = logging.getLogger(__name__)


class ServiceCache:
    """Mutation-guarded map of service name to Service record.

    The dispatcher and every background task hold a reference to the same
    instance. Callers take the lock only long enough to read or mutate a
    record and must never perform subprocess, network or disk I/O while
    holding it.

    An unexpected exception escaping a critical section leaves the map in
    an unknown state and poisons the cache: every later acquisition raises
    LockFailure until ``clear_poison`` is called. ServicingError raised
    inside a critical section is a normal outcome and does not poison.

    Example:
        cache = ServiceCache()
        with cache.lock() as services:
            services["api"] = Service()
    """

    def __init__(self):
        self._services: Dict[str, Service] = {}
        self._lock = threading.Lock()
        self._poisoned = False
        self._reserved: Set[str] = set()

    @contextmanager
    def lock(self) -> Iterator[Dict[str, Service]]:
        """Acquire the guard and yield the underlying map.

        Raises:
            LockFailure: If a prior critical section failed mid-mutation
        """
        with self._lock:
            if self._poisoned:
                raise LockFailure("Service cache lock is poisoned by a previous failure")
            try:
                yield self._services
            except ServicingError:
                raise
            except BaseException as e:
                self._poisoned = True
                logger.error(f"Service cache poisoned: {e!r}")
                raise

    @contextmanager
    def reserve(self, name: str) -> Iterator[None]:
        """Hold ``name`` while a new record for it is being prepared.

        Other reservations for the same name, and names already in the
        cache, are refused until the block exits.

        Raises:
            General: If the name is registered or already reserved
        """
        with self.lock() as services:
            if name in services or name in self._reserved:
                raise General(f"Service {name} already exists")
            self._reserved.add(name)
        try:
            yield
        finally:
            with self._lock:
                self._reserved.discard(name)

    @property
    def is_poisoned(self) -> bool:
        return self._poisoned

    def clear_poison(self) -> None:
        with self._lock:
            self._poisoned = False

    def get(self, name: str) -> Service:
        """Return a snapshot copy of the named record.

        Raises:
            NotFound: If the name is not registered
        """
        with self.lock() as services:
            service = services.get(name)
            if service is None:
                raise NotFound(name)
            return service.model_copy(deep=True)

    def names(self) -> List[str]:
        with self.lock() as services:
            return list(services.keys())

    def extend(self, services: Mapping[str, Service]) -> None:
        """Merge records into the cache, replacing entries with the same name."""
        with self.lock() as current:
            current.update(services)

    def snapshot(self) -> Dict[str, Service]:
        """Deep copy of the whole map, safe to use after the lock is released."""
        with self.lock() as services:
            return {name: service.model_copy(deep=True) for name, service in services.items()}

    def __contains__(self, name: str) -> bool:
        with self.lock() as services:
            return name in services

    def __len__(self) -> int:
        with self.lock() as services:
            return len(services)
