"""GitHub (and GitHub Enterprise) release source."""

import io
import logging
import os
from typing import BinaryIO
from urllib.parse import urljoin, urlsplit

import httpx

from selfupdate.context import Context
from selfupdate.domain.models import Release, SourceRelease
from selfupdate.domain.repository import Repository
from selfupdate.errors import ConfigurationError, InvalidReleaseError, SourceError
from selfupdate.sources.base import USER_AGENT, download, send
from selfupdate.sources.token import can_use_token_for_domain

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com/"


class GitHubSource:
    """Loads releases through the GitHub REST API.

    The token is read from ``$GITHUB_TOKEN`` when not given. Set
    ``enterprise_base_url`` to ``https://<host>/api/v3/`` for GitHub
    Enterprise.
    """

    def __init__(
        self,
        api_token: str | None = None,
        enterprise_base_url: str | None = None,
        client: httpx.Client | None = None,
    ):
        self.token = api_token or os.environ.get("GITHUB_TOKEN", "")
        base_url = enterprise_base_url or GITHUB_API_URL
        parsed = urlsplit(base_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ConfigurationError(f"cannot parse GitHub enterprise URL {base_url!r}")
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.client = client or httpx.Client()

    def _headers(self, accept: str, url: str | None = None) -> dict[str, str]:
        headers = {"Accept": accept, "User-Agent": USER_AGENT}
        if self.token and (url is None or can_use_token_for_domain(self.base_url, url)):
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def list_releases(self, ctx: Context, repository: Repository) -> list[SourceRelease]:
        owner, repo = repository.get_slug()
        url = urljoin(self.base_url, f"repos/{owner}/{repo}/releases")

        response = send(
            self.client,
            ctx,
            "GET",
            url,
            params={"per_page": 100},
            headers=self._headers("application/vnd.github+json"),
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            # Repository or releases not found: not an error here
            logger.debug("API returned 404. Repository or release not found")
            return []
        if response.status_code != httpx.codes.OK:
            raise SourceError(
                f"GitHub API returned status {response.status_code} for {owner}/{repo}: {response.text}"
            )

        return [SourceRelease.model_validate(item) for item in response.json()]

    def download_release_asset(self, ctx: Context, release: Release, asset_id: int) -> BinaryIO:
        if release is None:
            raise InvalidReleaseError()
        if release.repository is None:
            raise SourceError(f"release {release.name!r} has no repository")

        owner, repo = release.repository.get_slug()
        url = urljoin(self.base_url, f"repos/{owner}/{repo}/releases/assets/{asset_id}")

        response = send(
            self.client,
            ctx,
            "GET",
            url,
            headers=self._headers("application/octet-stream"),
            follow_redirects=False,
        )
        if response.is_redirect:
            location = urljoin(url, response.headers["location"])
            logger.debug("Asset %d redirected to %s", asset_id, location)
            return download(
                self.client,
                ctx,
                location,
                headers=self._headers("application/octet-stream", location),
            )
        if response.status_code != httpx.codes.OK:
            raise SourceError(
                f"failed to call GitHub Releases API for getting the asset ID {asset_id} "
                f"on repository '{owner}/{repo}': status {response.status_code}"
            )
        return io.BytesIO(response.content)
