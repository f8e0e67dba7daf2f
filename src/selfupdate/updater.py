"""Update orchestration.

The flow of an update is:
1. List releases from the source and select the newest matching asset
2. Download the asset
3. Validate it along the validation chain, if a validator is configured
4. Extract the executable from the asset
5. Swap it in place of the target executable

Every step raises on failure; nothing is retried.
"""

import io
import logging
import lzma
import re
import tarfile
import zipfile
import zlib
from pathlib import Path

from selfupdate.apply import ApplyOptions, apply
from selfupdate.config import UpdaterConfig
from selfupdate.context import Context
from selfupdate.decompress import FILE_TYPES, decompress_command
from selfupdate.domain.models import NOT_FOUND, Detection, Release, ValidationHop, parse_version
from selfupdate.domain.repository import Repository
from selfupdate.errors import (
    ApplyError,
    CannotDecompressFileError,
    ConfigurationError,
    InvalidReleaseError,
    SourceError,
)
from selfupdate.internal.platforms import detect_arch, detect_os, get_executable_path, resolve_path
from selfupdate.selection.detect import ReleaseSelector
from selfupdate.sources.github import GitHubSource
from selfupdate.validation.chain import build_validation_chain, validate_chain

logger = logging.getLogger(__name__)


def compile_filters(filters: list[str]) -> list[re.Pattern[str]]:
    """Compile asset filters, failing on the first invalid expression."""
    compiled: list[re.Pattern[str]] = []
    for expression in filters:
        try:
            compiled.append(re.compile(expression))
        except re.error as err:
            raise ConfigurationError(
                f"could not compile regular expression {expression!r} for filtering releases: {err}"
            ) from err
    return compiled


class Updater:
    """Detects releases and updates executables from them.

    Build one per configuration and reuse it; it holds no state between
    calls. Concurrent updates of the same executable must be serialized by
    the caller.
    """

    def __init__(self, config: UpdaterConfig | None = None, log: logging.Logger | None = None):
        config = config or UpdaterConfig()
        self.logger = log or logger

        filters = compile_filters(config.filters)
        self.source = config.source if config.source is not None else GitHubSource()
        self.validator = config.validator

        self.os = config.os or detect_os()
        host_arch, host_arm = detect_arch()
        self.arch = config.arch or host_arch
        self.arm = config.arm
        if self.arm == 0 and self.arch == "arm" and host_arch == "arm":
            self.arm = host_arm
        self.universal_arch = config.universal_arch if self.os == "darwin" else ""

        self.draft = config.draft
        self.prerelease = config.prerelease
        self.old_save_path = config.old_save_path

        self.selector = ReleaseSelector(
            os_name=self.os,
            arch=self.arch,
            arm=self.arm,
            universal_arch=self.universal_arch,
            filters=filters,
            draft=self.draft,
            prerelease=self.prerelease,
            log=self.logger,
        )

    # -------------------------------------------------------------------------
    # Detection
    # -------------------------------------------------------------------------

    def detect_latest(self, ctx: Context, repository: Repository) -> Detection:
        """Find the newest release with an asset for this OS/arch.

        Drafts and pre-releases are skipped unless the configuration admits
        them.
        """
        return self.detect_version(ctx, repository, "")

    def detect_version(self, ctx: Context, repository: Repository, version: str) -> Detection:
        """Find the release tagged ``version`` (the newest one if empty).

        Raises:
            ConfigurationError: If the repository reference is invalid.
            ValidationAssetNotFoundError: If a validation asset is missing.
            ValidationNestingTooDeepError: If the validation chain loops.
        """
        # Fails on an incomplete slug before any network call
        repository.get()

        releases = self.source.list_releases(ctx, repository)
        selection = self.selector.select(releases, version)
        if selection is None:
            return NOT_FOUND

        rel, asset = selection.release, selection.asset
        self.logger.info(
            "Successfully fetched release %s, name: %s, URL: %s, asset: %s",
            rel.tag_name,
            rel.name,
            rel.url,
            asset.browser_download_url,
        )

        release = Release(
            parsed_version=selection.version,
            asset_url=asset.browser_download_url,
            asset_byte_size=asset.size,
            asset_id=asset.id,
            asset_name=asset.name,
            release_id=rel.id,
            url=rel.url,
            release_notes=rel.release_notes or "",
            name=rel.name or "",
            published_at=rel.published_at,
            os=self.os,
            arch=self.arch,
            arm=self.arm,
            prerelease=rel.prerelease,
            repository=repository,
        )

        if self.validator is not None:
            release.validation_chain = build_validation_chain(
                self.validator, rel, asset.name, log=self.logger
            )
            first = release.validation_chain[0]
            release.validation_asset_id = first.asset_id
            release.validation_asset_url = first.asset_url

        return Detection(release=release)

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update_to(self, ctx: Context, release: Release, cmd_path: Path | str) -> None:
        """Download, validate and install ``release`` at ``cmd_path``."""
        if release is None:
            raise InvalidReleaseError()

        try:
            data = self._download(ctx, release, release.asset_id)
        except SourceError as err:
            raise SourceError(f"failed to read asset {release.asset_name!r}: {err}") from err

        if self.validator is not None:
            self._validate(ctx, release, data)

        ctx.check()
        self._decompress_and_update(ctx, data, release, Path(cmd_path))

    def update_command(
        self,
        ctx: Context,
        cmd_path: Path | str,
        current: str,
        repository: Repository,
    ) -> Release:
        """Update the executable at ``cmd_path`` to the latest release.

        Returns the installed release, the detected one when it is not newer
        than ``current``, or a release carrying only ``current`` when none
        was found.
        """
        version = parse_version(current)

        cmd_path = Path(cmd_path)
        if self.os == "windows" and not cmd_path.name.endswith(".exe"):
            cmd_path = cmd_path.with_name(cmd_path.name + ".exe")

        try:
            cmd_path.lstat()
            if cmd_path.is_symlink():
                cmd_path = resolve_path(cmd_path)
        except OSError as err:
            raise ApplyError(f"failed to stat {str(cmd_path)!r}. file may not exist: {err}") from err

        detection = self.detect_latest(ctx, repository)
        if not detection.found:
            self.logger.info("No release detected. Current version is considered up-to-date")
            return Release(parsed_version=version)

        release = detection.release
        if release.parsed_version <= version:
            self.logger.info("Current version %s is the latest. Update is not needed", version)
            return release

        self.logger.info("Will update %s to the latest version %s", cmd_path, release.version)
        self.update_to(ctx, release, cmd_path)
        return release

    def update_self(self, ctx: Context, current: str, repository: Repository) -> Release:
        """Update the running executable to the latest release."""
        return self.update_command(ctx, get_executable_path(), current, repository)

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _download(self, ctx: Context, release: Release, asset_id: int) -> bytes:
        stream = self.source.download_release_asset(ctx, release, asset_id)
        try:
            return stream.read()
        finally:
            stream.close()

    def _validate(self, ctx: Context, release: Release, data: bytes) -> None:
        chain = release.validation_chain
        if not chain and release.validation_asset_id >= 0:
            # Release built by hand with a single validation asset
            chain = [ValidationHop(release.validation_asset_id, "", release.validation_asset_url)]

        def fetch(asset_id: int) -> bytes:
            try:
                return self._download(ctx, release, asset_id)
            except SourceError as err:
                raise SourceError(f"failed reading validation data (asset ID {asset_id}): {err}") from err

        validate_chain(self.validator, release.asset_name, data, chain, fetch)

    def _decompress_and_update(self, ctx: Context, data: bytes, release: Release, cmd_path: Path) -> None:
        asset_name = release.asset_name
        if not any(asset_name.lower().endswith(ext) for ext, _ in FILE_TYPES) and release.asset_url:
            # The visible name may have lost its extension, the URL keeps it
            asset_name = release.asset_url

        cmd = cmd_path.name
        if self.os == "windows":
            cmd = cmd.removesuffix(".exe")

        stream = decompress_command(io.BytesIO(data), asset_name, cmd, self.os, self.arch)
        try:
            payload = stream.read()
        except (OSError, EOFError, lzma.LZMAError, zlib.error, zipfile.BadZipFile, tarfile.TarError) as err:
            raise CannotDecompressFileError(f"cannot decompress {release.asset_name!r}: {err}") from err

        self.logger.info("Will update %s to the latest downloaded from %s", cmd_path, release.asset_url)
        apply(
            payload,
            ApplyOptions(target_path=cmd_path, old_save_path=self.old_save_path),
            ctx=ctx,
        )
