"""Readiness probing for provisioned services.

The background poller reconciles a service's declared state with what its
endpoint actually reports. It is best effort: a transport error ends the
poll (logged, not retried) and the caller that issued ``up`` never waits
on it.
"""

import asyncio
import logging

import httpx

from .cache import ServiceCache
from .errors import ServicingError
from .helpers import fetch

logger = logging.getLogger(__name__)


def is_ready_response(body: str, not_ready_marker: str) -> bool:
    return not_ready_marker.lower() not in body.lower()


async def probe_once(client: httpx.AsyncClient, url: str, not_ready_marker: str) -> bool:
    """Probe ``url`` once.

    Returns:
        True if the endpoint answered without the not-ready marker, False if
        it answered with the marker or could not be reached
    """
    try:
        body = await fetch(client, url)
    except (httpx.HTTPError, RuntimeError) as e:
        logger.warning(f"Readiness probe to {url} failed: {e}")
        return False
    return is_ready_response(body, not_ready_marker)


async def poll_readiness(
    client: httpx.AsyncClient,
    cache: ServiceCache,
    name: str,
    endpoint: str,
    probe_path: str,
    not_ready_marker: str,
    interval: float,
) -> bool:
    """Poll a service until it reports ready, then mark it up in the cache.

    The record is re-read on every iteration. If it has been removed, or its
    endpoint no longer matches the one being polled (a ``down`` happened),
    the poll ends without touching the cache.

    Args:
        client: Shared probe client
        cache: The shared service cache
        name: Service name
        endpoint: ``host:port`` the service was provisioned at
        probe_path: Path appended to the endpoint
        not_ready_marker: Substring present while replicas are not ready
        interval: Seconds to sleep between attempts

    Returns:
        True if the service was marked up, False otherwise
    """
    url = f"http://{endpoint}{probe_path}"
    logger.info(f"Polling {url} for readiness of service {name}")

    while True:
        if not _still_tracking(cache, name, endpoint):
            logger.info(f"Service {name} changed while polling, stopping readiness poll")
            return False

        try:
            body = await fetch(client, url)
        except (httpx.HTTPError, RuntimeError) as e:
            logger.error(f"Error fetching the endpoint of service {name}: {e}")
            return False

        if not is_ready_response(body, not_ready_marker):
            logger.debug(f"Service {name} has no ready replicas yet")
            await asyncio.sleep(interval)
            continue

        try:
            with cache.lock() as services:
                service = services.get(name)
                if service is None or service.endpoint != endpoint:
                    logger.warning(f"Service {name} not found, readiness result discarded")
                    return False
                service.is_up = True
        except ServicingError as e:
            logger.error(f"Could not record readiness of service {name}: {e}")
            return False

        logger.info(f"Service {name} is up")
        return True


def _still_tracking(cache: ServiceCache, name: str, endpoint: str) -> bool:
    try:
        with cache.lock() as services:
            service = services.get(name)
            return service is not None and service.endpoint == endpoint and not service.is_up
    except ServicingError as e:
        logger.error(f"Could not read service {name} while polling: {e}")
        return False
