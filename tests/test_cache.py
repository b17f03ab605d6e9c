"""Tests for ServiceCache."""

import threading

import pytest

from servicing.cache import ServiceCache
from servicing.errors import LockFailure, NotFound
from servicing.models import Service


def test_insert_and_get():
    cache = ServiceCache()
    with cache.lock() as services:
        services["api"] = Service(endpoint="10.0.0.5:30000")

    service = cache.get("api")

    assert service.endpoint == "10.0.0.5:30000"
    assert "api" in cache
    assert len(cache) == 1
    assert cache.names() == ["api"]


def test_get_returns_a_copy():
    """Test snapshots handed out by get do not alias the cached record."""
    cache = ServiceCache()
    cache.extend({"api": Service()})

    cache.get("api").endpoint = "10.0.0.5:30000"

    assert cache.get("api").endpoint is None


def test_get_missing_raises_not_found():
    cache = ServiceCache()

    with pytest.raises(NotFound) as exc_info:
        cache.get("missing")

    assert exc_info.value.name == "missing"
    assert "missing" in str(exc_info.value)


def test_extend_overwrites_existing_names():
    cache = ServiceCache()
    cache.extend({"api": Service(), "db": Service()})

    cache.extend({"api": Service(readiness_probe_path="/health")})

    assert sorted(cache.names()) == ["api", "db"]
    assert cache.get("api").readiness_probe_path == "/health"


def test_servicing_error_does_not_poison():
    """Test domain errors raised under the lock leave the cache usable."""
    cache = ServiceCache()

    with pytest.raises(NotFound):
        with cache.lock():
            raise NotFound("api")

    assert not cache.is_poisoned
    assert cache.names() == []


def test_unexpected_error_poisons_cache():
    """Test a crash mid-mutation turns later acquisitions into LockFailure."""
    cache = ServiceCache()

    with pytest.raises(KeyError):
        with cache.lock() as services:
            services["api"] = Service()
            raise KeyError("boom")

    assert cache.is_poisoned
    with pytest.raises(LockFailure):
        cache.names()
    with pytest.raises(LockFailure):
        with cache.lock():
            pass

    cache.clear_poison()
    assert cache.names() == ["api"]


def test_lock_is_released_after_failure():
    """Test the guard never stays held, even when poisoned."""
    cache = ServiceCache()
    with pytest.raises(RuntimeError):
        with cache.lock():
            raise RuntimeError("boom")

    acquired = []

    def worker():
        try:
            with cache.lock():
                pass
        except LockFailure:
            acquired.append(True)

    thread = threading.Thread(target=worker)
    thread.start()
    thread.join(timeout=2)

    assert acquired == [True]


def test_snapshot_is_deep_copy():
    cache = ServiceCache()
    cache.extend({"api": Service()})

    snapshot = cache.snapshot()
    snapshot["api"].endpoint = "10.0.0.5:30000"
    snapshot["db"] = Service()

    assert cache.get("api").endpoint is None
    assert "db" not in cache
