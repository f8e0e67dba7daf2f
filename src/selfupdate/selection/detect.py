"""Release and asset selection.

Assets are expected to be named after the command, the OS and the arch,
such as ``foo_linux_amd64`` (``-`` works as a separator too). They can be
compressed, in which case the name carries the format extension:
``foo_linux_amd64.tar.gz``. On Windows ``.exe`` may appear before the
extension: ``foo_windows_amd64.exe.zip``.

Selection walks the architecture candidates most specific first and
commits to the first one yielding any match, even when a more generic
candidate would find a newer version.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass

import semver

from selfupdate.domain.models import SourceAsset, SourceRelease
from selfupdate.selection.arch import generate_additional_arch

logger = logging.getLogger(__name__)

SEPARATORS = ("_", "-")

# Same order as the decompression table, plus uncompressed assets
EXTENSIONS = (".zip", ".tar.gz", ".tgz", ".gzip", ".gz", ".tar.xz", ".xz", ".bz2", "")

_VERSION_RUN = re.compile(r"\d+\.\d+\.\d+")


@dataclass(frozen=True)
class Selection:
    """The best (release, asset, version) triple found."""

    release: SourceRelease
    asset: SourceAsset
    version: semver.Version


def get_suffixes(os_name: str, arch: str) -> list[str]:
    """Return every asset name suffix accepted for this OS and arch."""
    suffixes: list[str] = []
    for sep in SEPARATORS:
        for ext in EXTENSIONS:
            suffixes.append(f"{os_name}{sep}{arch}{ext}")
            if os_name == "windows":
                suffixes.append(f"{os_name}{sep}{arch}.exe{ext}")
    return suffixes


def extract_version(tag_name: str) -> semver.Version | None:
    """Parse the semantic version embedded in a tag such as ``release-v1.2.3``.

    Returns None if the tag holds no ``X.Y.Z`` run or if the text from that
    run onwards is not a semantic version.
    """
    match = _VERSION_RUN.search(tag_name)
    if match is None:
        return None
    try:
        return semver.Version.parse(tag_name[match.start():])
    except ValueError:
        return None


class ReleaseSelector:
    """Picks the newest release with an asset for one OS/arch target."""

    def __init__(
        self,
        os_name: str,
        arch: str,
        arm: int = 0,
        universal_arch: str = "",
        filters: Sequence[re.Pattern[str]] = (),
        draft: bool = False,
        prerelease: bool = False,
        log: logging.Logger | None = None,
    ):
        self.os = os_name
        self.arch = arch
        self.arm = arm
        self.universal_arch = universal_arch
        self.filters = list(filters)
        self.draft = draft
        self.prerelease = prerelease
        self.logger = log or logger

    def arch_candidates(self) -> list[str]:
        """Arch tokens to try in order: specific ones, the arch, then universal."""
        candidates = generate_additional_arch(self.arch, self.arm)
        candidates.append(self.arch)
        if self.universal_arch and self.universal_arch not in candidates:
            candidates.append(self.universal_arch)
        return candidates

    def select(
        self,
        releases: Sequence[SourceRelease],
        target_version: str = "",
    ) -> Selection | None:
        """Return the best match for the target, or None.

        Args:
            releases: Releases in provider order.
            target_version: Exact tag name to look for; empty means latest.
        """
        for arch in self.arch_candidates():
            selection = self._select_for_arch(arch, releases, target_version)
            if selection is not None:
                return selection
        return None

    def _select_for_arch(
        self,
        arch: str,
        releases: Sequence[SourceRelease],
        target_version: str,
    ) -> Selection | None:
        self.logger.debug("Searching for a possible candidate for os %r and arch %r", self.os, arch)
        suffixes = get_suffixes(self.os, arch)
        best: Selection | None = None

        for release in releases:
            found = self._find_asset_from_release(release, suffixes, target_version)
            if found is None:
                continue
            asset, version = found
            # 0.0.1-beta sorts before 0.0.1
            if best is None or version > best.version:
                best = Selection(release=release, asset=asset, version=version)

        if best is None:
            self.logger.debug("Could not find any release for os %r and arch %r", self.os, arch)
        return best

    def _find_asset_from_release(
        self,
        release: SourceRelease,
        suffixes: list[str],
        target_version: str,
    ) -> tuple[SourceAsset, semver.Version] | None:
        tag = release.tag_name
        if target_version and target_version != tag:
            self.logger.debug("Skip %s not matching to specified version %s", tag, target_version)
            return None
        if not target_version and release.draft and not self.draft:
            self.logger.debug("Skip draft version %s", tag)
            return None
        if not target_version and release.prerelease and not self.prerelease:
            self.logger.debug("Skip pre-release version %s", tag)
            return None

        version = extract_version(tag)
        if version is None:
            self.logger.debug("Skip version not adopting semver: %s", tag)
            return None

        for asset in release.assets:
            if self._asset_matches(asset, suffixes):
                return asset, version

        self.logger.debug("No suitable asset was found in release %s", tag)
        return None

    def _asset_matches(self, asset: SourceAsset, suffixes: list[str]) -> bool:
        # Some hosts rename the visible asset but keep a meaningful URL
        names = [name for name in (asset.name, asset.browser_download_url) if name]

        if self.filters:
            for pattern in self.filters:
                if any(pattern.search(name) for name in names):
                    self.logger.debug("Selected filtered asset: %s", asset.name)
                    return True
            self.logger.debug("Skipping asset %r not matching any filter", asset.name)
            return False

        for name in names:
            lowered = name.lower()
            if any(lowered.endswith(suffix) for suffix in suffixes):
                return True
        return False
