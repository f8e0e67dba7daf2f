"""Release source backed by a plain HTTP server.

The server publishes one YAML manifest per repository at
``<base_url>/<owner>/<repo>/manifest.yaml``::

    releases:
      - id: 1
        name: "v1.0.0"
        tag_name: "v1.0.0"
        url: "v1.0.0"
        draft: false
        prerelease: false
        published_at: 2024-01-01T00:00:00Z
        release_notes: "First release"
        assets:
          - id: 10
            name: "app_linux_amd64.tar.gz"
            size: 1024
            url: "v1.0.0/app_linux_amd64.tar.gz"

Relative URLs are resolved against ``<base_url>/<owner>/<repo>/``.
"""

import logging
from typing import Any, BinaryIO
from urllib.parse import urlsplit

import httpx
import yaml

from selfupdate.context import Context
from selfupdate.domain.models import Release, SourceRelease
from selfupdate.domain.repository import Repository
from selfupdate.errors import AssetNotFoundError, ConfigurationError, InvalidReleaseError, SourceError
from selfupdate.sources.base import download, send

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.yaml"


def _is_absolute(uri: str) -> bool:
    parts = urlsplit(uri)
    return bool(parts.scheme and parts.netloc)


class HttpSource:
    """Loads releases from a YAML manifest on an HTTP server."""

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        client: httpx.Client | None = None,
    ):
        if not base_url:
            raise ConfigurationError("http base url must be set")
        if not _is_absolute(base_url):
            raise ConfigurationError(f"invalid http base url {base_url!r}")
        self.base_url = base_url.rstrip("/")
        self.headers = dict(headers or {})
        self.client = client or httpx.Client()

    def _join(self, owner: str, repo: str, uri: str) -> str:
        return "/".join([self.base_url, owner, repo, uri.lstrip("/")])

    def _resolve(self, uri: str, owner: str, repo: str) -> str:
        if not uri or _is_absolute(uri):
            return uri
        return self._join(owner, repo, uri)

    def list_releases(self, ctx: Context, repository: Repository) -> list[SourceRelease]:
        owner, repo = repository.get_slug()
        url = self._join(owner, repo, MANIFEST_NAME)

        response = send(self.client, ctx, "GET", url, headers=self.headers)
        if response.status_code == httpx.codes.NOT_FOUND:
            logger.debug("No manifest at %s", url)
            return []
        if response.status_code != httpx.codes.OK:
            raise SourceError(f"HTTP request failed with status code {response.status_code}: {url}")

        try:
            manifest = yaml.safe_load(response.text) or {}
        except yaml.YAMLError as err:
            raise SourceError(f"cannot decode manifest {url}: {err}") from err
        if not isinstance(manifest, dict):
            raise SourceError(f"cannot decode manifest {url}: expected a mapping, got {type(manifest).__name__}")

        releases: list[SourceRelease] = []
        for item in manifest.get("releases") or []:
            releases.append(SourceRelease.model_validate(self._resolve_release(item, owner, repo)))
        logger.debug("Manifest %s lists %d releases", url, len(releases))
        return releases

    def _resolve_release(self, item: dict[str, Any], owner: str, repo: str) -> dict[str, Any]:
        release = dict(item)
        release["url"] = self._resolve(release.get("url") or "", owner, repo)
        release["assets"] = [
            {**asset, "url": self._resolve(asset.get("url") or "", owner, repo)}
            for asset in release.get("assets") or []
        ]
        return release

    def download_release_asset(self, ctx: Context, release: Release, asset_id: int) -> BinaryIO:
        if release is None:
            raise InvalidReleaseError()

        url = release.find_asset_url(asset_id)
        if not url:
            raise AssetNotFoundError(f"asset ID {asset_id}: asset not found")
        return download(self.client, ctx, url, headers=self.headers)
