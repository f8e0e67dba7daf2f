"""Release source protocol and shared HTTP plumbing."""

import io
import logging
from typing import BinaryIO, Protocol

import httpx

from selfupdate.context import Context
from selfupdate.domain.models import Release, SourceRelease
from selfupdate.domain.repository import Repository
from selfupdate.errors import DeadlineExceededError, SourceError

logger = logging.getLogger(__name__)

USER_AGENT = "selfupdate/0.1"
DEFAULT_TIMEOUT = 30.0
CHUNK_SIZE = 64 * 1024


class Source(Protocol):
    """Where releases are listed and downloaded from."""

    def list_releases(self, ctx: Context, repository: Repository) -> list[SourceRelease]:
        """Return all releases; an unknown repository gives an empty list."""
        ...

    def download_release_asset(self, ctx: Context, release: Release, asset_id: int) -> BinaryIO:
        """Return the content of one asset of the release."""
        ...


def request_timeout(ctx: Context, default: float = DEFAULT_TIMEOUT) -> float:
    """Timeout for the next request: the default, capped by the deadline."""
    remaining = ctx.remaining()
    if remaining is None:
        return default
    if remaining <= 0:
        raise DeadlineExceededError()
    return min(default, remaining)


def send(
    client: httpx.Client,
    ctx: Context,
    method: str,
    url: str,
    **kwargs,
) -> httpx.Response:
    """Send a request, mapping transport failures onto package errors."""
    ctx.check()
    try:
        return client.request(method, url, timeout=request_timeout(ctx), **kwargs)
    except httpx.TimeoutException as err:
        raise DeadlineExceededError(f"request to {url} timed out") from err
    except httpx.HTTPError as err:
        raise SourceError(f"request to {url} failed: {err}") from err


def download(
    client: httpx.Client,
    ctx: Context,
    url: str,
    headers: dict[str, str] | None = None,
) -> BinaryIO:
    """Stream a file into memory, checking the context between chunks."""
    ctx.check()
    buffer = io.BytesIO()
    try:
        with client.stream(
            "GET",
            url,
            headers=headers,
            timeout=request_timeout(ctx),
            follow_redirects=True,
        ) as response:
            if response.status_code != httpx.codes.OK:
                raise SourceError(f"HTTP request failed with status code {response.status_code}: {url}")
            for chunk in response.iter_bytes(CHUNK_SIZE):
                ctx.check()
                buffer.write(chunk)
    except httpx.TimeoutException as err:
        raise DeadlineExceededError(f"download of {url} timed out") from err
    except httpx.HTTPError as err:
        raise SourceError(f"download of {url} failed: {err}") from err

    logger.debug("Downloaded %d bytes from %s", buffer.tell(), url)
    buffer.seek(0)
    return buffer
