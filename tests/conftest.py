"""Pytest configuration and fixtures."""

import io
import shutil
from typing import BinaryIO

import pytest

from selfupdate.context import Context
from selfupdate.domain.models import Release, SourceAsset, SourceRelease
from selfupdate.domain.repository import Repository
from selfupdate.errors import AssetNotFoundError


class MockSource:
    """In-memory release source.

    Releases are given as SourceRelease models; asset contents are looked
    up by asset ID.
    """

    def __init__(self, releases: list[SourceRelease], files: dict[int, bytes] | None = None):
        self.releases = releases
        self.files = files or {}
        self.list_calls = 0
        self.downloads: list[int] = []

    def list_releases(self, ctx: Context, repository: Repository) -> list[SourceRelease]:
        ctx.check()
        repository.get_slug()
        self.list_calls += 1
        return self.releases

    def download_release_asset(self, ctx: Context, release: Release, asset_id: int) -> BinaryIO:
        ctx.check()
        self.downloads.append(asset_id)
        if asset_id not in self.files:
            raise AssetNotFoundError(f"asset ID {asset_id}: asset not found")
        return io.BytesIO(self.files[asset_id])


def make_release(
    tag: str,
    assets: list[str],
    *,
    release_id: int = 1,
    first_asset_id: int | None = None,
    draft: bool = False,
    prerelease: bool = False,
) -> SourceRelease:
    """Build a SourceRelease whose asset IDs follow the release ID."""
    base = first_asset_id if first_asset_id is not None else release_id * 100
    return SourceRelease(
        id=release_id,
        tag_name=tag,
        name=tag,
        draft=draft,
        prerelease=prerelease,
        url=f"https://github.com/owner/repo/releases/tag/{tag}",
        assets=[
            SourceAsset(
                id=base + index,
                name=name,
                size=0,
                browser_download_url=f"https://github.com/owner/repo/releases/download/{tag}/{name}",
            )
            for index, name in enumerate(assets)
        ],
    )


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "gpg: mark test as requiring the gpg binary (skipped when it is not installed)",
    )


def pytest_collection_modifyitems(config, items):
    """Skip gpg tests when gpg is not installed."""
    if shutil.which("gpg"):
        return

    skip_gpg = pytest.mark.skip(reason="gpg binary not found")
    for item in items:
        if "gpg" in item.keywords:
            item.add_marker(skip_gpg)


@pytest.fixture
def ctx() -> Context:
    """A context that never expires."""
    return Context()


@pytest.fixture
def release_factory():
    """Build SourceRelease models: release_factory("v1.0.0", ["app_linux_amd64"])."""
    return make_release


@pytest.fixture
def source_factory():
    """Build in-memory sources: source_factory(releases, {asset_id: content})."""
    return MockSource
