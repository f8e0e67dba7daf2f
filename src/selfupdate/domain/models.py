"""Core domain models for self-update.

- SourceAsset / SourceRelease: what a release provider reports, read-only
- ValidationHop: one validation asset consumed to trust the previous payload
- Release: the selected (release, asset, version) triple for the target platform
- Detection: tagged result of a release lookup (found or not found)
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import semver
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from selfupdate.errors import InvalidVersionError


def parse_version(text: str) -> semver.Version:
    """Parse a semantic version, tolerating a leading ``v``.

    Raises:
        InvalidVersionError: If the text is not a semantic version.
    """
    candidate = text.strip()
    if candidate[:1] in ("v", "V"):
        candidate = candidate[1:]
    try:
        return semver.Version.parse(candidate, optional_minor_and_patch=True)
    except (ValueError, TypeError) as err:
        raise InvalidVersionError(f"incorrect version {text!r}: {err}") from err


class SourceAsset(BaseModel):
    """A downloadable file attached to a release."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: int
    name: str
    size: int = 0
    browser_download_url: str = Field(
        default="",
        validation_alias=AliasChoices("browser_download_url", "url"),
    )


class SourceRelease(BaseModel):
    """A tagged release as reported by a provider."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    id: int = 0
    tag_name: str
    name: str | None = None
    draft: bool = False
    prerelease: bool = False
    published_at: datetime | None = None
    release_notes: str | None = Field(
        default=None,
        validation_alias=AliasChoices("release_notes", "body"),
    )
    url: str = Field(
        default="",
        validation_alias=AliasChoices("html_url", "url"),
    )
    assets: list[SourceAsset] = Field(default_factory=list)

    def find_asset(self, name: str) -> SourceAsset | None:
        """Return the asset with exactly this name, if any."""
        for asset in self.assets:
            if asset.name == name:
                return asset
        return None


@dataclass(frozen=True)
class ValidationHop:
    """A validation asset consumed while trusting a release asset."""

    asset_id: int
    asset_name: str
    asset_url: str


@dataclass
class Release:
    """The release and asset selected for the current OS and arch."""

    parsed_version: semver.Version | None = None
    asset_url: str = ""
    asset_byte_size: int = 0
    asset_id: int = 0
    asset_name: str = ""
    release_id: int = 0
    # First hop of the validation chain, kept for sources that only know one
    validation_asset_id: int = -1
    validation_asset_url: str = ""
    validation_chain: list[ValidationHop] = field(default_factory=list)
    url: str = ""
    release_notes: str = ""
    name: str = ""
    published_at: datetime | None = None
    os: str = ""
    arch: str = ""
    # ARM sub-version: 0 (unknown), 5, 6 or 7
    arm: int = 0
    prerelease: bool = False
    repository: Any = None

    @property
    def version(self) -> str:
        """The version as text, without any tag prefix."""
        return str(self.parsed_version) if self.parsed_version is not None else ""

    def _compare(self, other: str) -> int:
        if self.parsed_version is None:
            raise InvalidVersionError("release has no version")
        return self.parsed_version.compare(parse_version(other))

    def equal(self, other: str) -> bool:
        return self._compare(other) == 0

    def less_than(self, other: str) -> bool:
        return self._compare(other) < 0

    def greater_than(self, other: str) -> bool:
        return self._compare(other) > 0

    def less_or_equal(self, other: str) -> bool:
        return self._compare(other) <= 0

    def greater_or_equal(self, other: str) -> bool:
        return self._compare(other) >= 0

    def find_asset_url(self, asset_id: int) -> str:
        """Return the download URL of the main asset or of a validation hop."""
        if asset_id == self.asset_id:
            return self.asset_url
        for hop in self.validation_chain:
            if hop.asset_id == asset_id:
                return hop.asset_url
        if asset_id == self.validation_asset_id:
            return self.validation_asset_url
        return ""


@dataclass(frozen=True)
class Detection:
    """Result of a release lookup: not finding a release is not an error."""

    release: Release | None = None

    @property
    def found(self) -> bool:
        return self.release is not None


NOT_FOUND = Detection()
