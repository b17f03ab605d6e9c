"""Filesystem, tool discovery and HTTP helpers shared by the backends."""

import logging
import shutil
from pathlib import Path

import httpx

from .errors import IOFailure

logger = logging.getLogger(__name__)


def check_tool_installed(command: str) -> bool:
    """Return True if ``command`` resolves to an executable on PATH."""
    logger.info(f"Checking for orchestrator tool: {command}")
    return shutil.which(command) is not None


def create_directory(path: Path) -> Path:
    """Create ``path`` (and parents) if missing and return it."""
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IOFailure(f"Failed to create directory {path}: {e}") from e
    return path


def write_file(path: Path, content: str | bytes) -> Path:
    try:
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise IOFailure(f"Failed to write {path}: {e}") from e
    logger.debug(f"Content written to file '{path}'")
    return path


def read_file(path: Path) -> bytes:
    try:
        return path.read_bytes()
    except OSError as e:
        raise IOFailure(f"Failed to read {path}: {e}") from e


def delete_file(path: Path) -> None:
    """Delete ``path``; a file that is already gone is not an error."""
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        raise IOFailure(f"Failed to delete {path}: {e}") from e
    logger.debug(f"File '{path}' deleted")


def create_http_client(timeout: float) -> httpx.AsyncClient:
    """Build the probe client.

    Keep-alive is disabled: cloud endpoints come and go, and a pooled
    connection to a replaced replica would fail on reuse.
    """
    return httpx.AsyncClient(
        timeout=timeout,
        limits=httpx.Limits(max_keepalive_connections=0),
    )


async def fetch(client: httpx.AsyncClient, url: str) -> str:
    """GET ``url`` and return the response body as text.

    Raises:
        httpx.HTTPError: On any transport failure
        RuntimeError: If the client has been closed
    """
    response = await client.get(url)
    return response.text
