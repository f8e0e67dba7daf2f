"""Tests for the update orchestrator."""

import bz2
import hashlib
import io
import logging
import random
import tarfile
import zipfile
from pathlib import Path
from unittest.mock import patch

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from selfupdate.config import UpdaterConfig
from selfupdate.context import Context
from selfupdate.domain.models import Release, parse_version
from selfupdate.domain.repository import RepositorySlug
from selfupdate.errors import (
    ApplyError,
    CannotDecompressFileError,
    ConfigurationError,
    ExecutableNotFoundInArchiveError,
    InvalidSlugError,
    InvalidVersionError,
    UpdateCancelledError,
    ValidationAssetNotFoundError,
    ValidationError,
)
from selfupdate.sources.github import GitHubSource
from selfupdate.updater import Updater
from selfupdate.validation.validators import ChecksumValidator, new_checksum_with_ecdsa_validator

REPO = RepositorySlug("owner", "tool")
OLD = b"#!/bin/sh\necho 1.0.0\n"
NEW = b"#!/bin/sh\necho 1.1.0\n"
ASSET = "tool_linux_amd64.tar.gz"


def tarball(members: dict[str, bytes], mode: str = "w:gz") -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode=mode) as archive:
        for name, content in members.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o755
            archive.addfile(info, io.BytesIO(content))
    return buf.getvalue()


@pytest.fixture
def cmd_path(tmp_path: Path) -> Path:
    path = tmp_path / "tool"
    path.write_bytes(OLD)
    path.chmod(0o755)
    return path


@pytest.fixture
def releases(release_factory):
    """v1.1.0 (assets 200, 201) and v1.0.0 (assets 100, 101)."""
    return [
        release_factory("v1.1.0", [ASSET, "checksums.txt"], release_id=2),
        release_factory("v1.0.0", [ASSET, "checksums.txt"], release_id=1),
    ]


@pytest.fixture
def archive() -> bytes:
    return tarball({"tool": NEW})


def linux_config(source, **kwargs) -> UpdaterConfig:
    return UpdaterConfig(source=source, os="linux", arch="amd64", **kwargs)


class TestUpdaterConfig:
    """Tests for Updater construction."""

    def test_invalid_filter(self, source_factory) -> None:
        """A bad pattern fails before any network call."""
        source = source_factory([])
        with pytest.raises(ConfigurationError, match="regular expression"):
            Updater(linux_config(source, filters=["(unclosed"]))
        assert source.list_calls == 0

    def test_default_source(self) -> None:
        assert isinstance(Updater(UpdaterConfig(os="linux", arch="amd64")).source, GitHubSource)

    def test_host_platform(self, source_factory) -> None:
        """Empty os and arch come from the host, with the ARM sub-version."""
        with (
            patch("selfupdate.updater.detect_os", return_value="linux"),
            patch("selfupdate.updater.detect_arch", return_value=("arm", 7)),
        ):
            updater = Updater(UpdaterConfig(source=source_factory([])))

        assert (updater.os, updater.arch, updater.arm) == ("linux", "arm", 7)
        assert updater.selector.arch_candidates() == ["armv7", "armv6", "armv5", "arm"]

    def test_explicit_arm_wins(self, source_factory) -> None:
        with patch("selfupdate.updater.detect_arch", return_value=("arm", 7)):
            updater = Updater(UpdaterConfig(source=source_factory([]), os="linux", arch="arm", arm=5))
        assert updater.arm == 5

    def test_universal_arch_only_on_darwin(self, source_factory) -> None:
        source = source_factory([])
        assert Updater(UpdaterConfig(source=source, os="linux", arch="amd64", universal_arch="all")).universal_arch == ""
        assert Updater(UpdaterConfig(source=source, os="darwin", arch="arm64", universal_arch="all")).universal_arch == "all"


class TestDetect:
    """Tests for detect_latest() and detect_version()."""

    def test_detect_latest(self, ctx, source_factory, release_factory) -> None:
        """The pre-release is skipped by default."""
        source = source_factory(
            [
                release_factory("v1.1.0-beta", ["app_linux_amd64.tar.gz"], release_id=2, prerelease=True),
                release_factory("v1.0.0", ["app_linux_amd64.tar.gz"], release_id=1),
            ]
        )
        detection = Updater(linux_config(source)).detect_latest(ctx, REPO)

        assert detection.found
        release = detection.release
        assert release.version == "1.0.0"
        assert release.asset_name == "app_linux_amd64.tar.gz"
        assert release.asset_id == 100
        assert release.release_id == 1
        assert release.asset_url.endswith("/v1.0.0/app_linux_amd64.tar.gz")
        assert release.url == "https://github.com/owner/repo/releases/tag/v1.0.0"
        assert (release.os, release.arch) == ("linux", "amd64")
        assert release.repository is REPO
        assert not release.prerelease
        assert release.validation_chain == []

    def test_detect_version(self, ctx, source_factory, release_factory) -> None:
        """An explicit pre-release tag is found."""
        source = source_factory(
            [
                release_factory("v1.1.0-beta", ["app_linux_amd64.tar.gz"], release_id=2, prerelease=True),
                release_factory("v1.0.0", ["app_linux_amd64.tar.gz"], release_id=1),
            ]
        )
        detection = Updater(linux_config(source)).detect_version(ctx, REPO, "v1.1.0-beta")

        assert detection.release.version == "1.1.0-beta"
        assert detection.release.prerelease

    def test_not_found(self, ctx, source_factory, releases) -> None:
        detection = Updater(UpdaterConfig(source=source_factory(releases), os="linux", arch="riscv64")).detect_latest(
            ctx, REPO
        )
        assert not detection.found
        assert detection.release is None

    def test_invalid_slug(self, ctx, source_factory, releases) -> None:
        """An incomplete slug fails before the source is asked."""
        source = source_factory(releases)
        with pytest.raises(InvalidSlugError):
            Updater(linux_config(source)).detect_latest(ctx, RepositorySlug("", ""))
        assert source.list_calls == 0

    def test_validation_chain_recorded(self, ctx, source_factory, releases) -> None:
        source = source_factory(releases)
        updater = Updater(linux_config(source, validator=ChecksumValidator("checksums.txt")))

        release = updater.detect_latest(ctx, REPO).release

        assert [hop.asset_name for hop in release.validation_chain] == ["checksums.txt"]
        assert release.validation_asset_id == 201
        assert release.validation_asset_url.endswith("/v1.1.0/checksums.txt")

    def test_missing_validation_asset(self, ctx, source_factory, release_factory) -> None:
        source = source_factory([release_factory("v1.1.0", [ASSET])])
        updater = Updater(linux_config(source, validator=ChecksumValidator("checksums.txt")))

        with pytest.raises(ValidationAssetNotFoundError):
            updater.detect_latest(ctx, REPO)

    def test_injected_logger(self, ctx, source_factory, releases, caplog) -> None:
        """Messages go to the logger given to the updater."""
        log = logging.getLogger("myapp.updates")
        with caplog.at_level(logging.DEBUG, logger="myapp.updates"):
            Updater(linux_config(source_factory(releases)), log=log).detect_latest(ctx, REPO)

        assert any(record.name == "myapp.updates" for record in caplog.records)


class TestUpdateCommand:
    """Tests for update_command()."""

    def test_updates(self, ctx, source_factory, releases, archive, cmd_path) -> None:
        """A newer release is downloaded and installed."""
        source = source_factory(releases, {200: archive})
        release = Updater(linux_config(source)).update_command(ctx, cmd_path, "1.0.0", REPO)

        assert release.version == "1.1.0"
        assert cmd_path.read_bytes() == NEW
        assert source.downloads == [200]
        assert {path.name for path in cmd_path.parent.iterdir()} == {"tool"}

    def test_up_to_date(self, ctx, source_factory, releases, archive, cmd_path) -> None:
        """Nothing is downloaded when the current version is the latest."""
        source = source_factory(releases, {200: archive})
        release = Updater(linux_config(source)).update_command(ctx, cmd_path, "v1.1.0", REPO)

        assert release.version == "1.1.0"
        assert cmd_path.read_bytes() == OLD
        assert source.downloads == []

    def test_newer_than_latest(self, ctx, source_factory, releases, archive, cmd_path) -> None:
        """A local build ahead of the releases is not downgraded."""
        source = source_factory(releases, {200: archive})
        Updater(linux_config(source)).update_command(ctx, cmd_path, "2.0.0", REPO)

        assert cmd_path.read_bytes() == OLD
        assert source.downloads == []

    def test_nothing_found(self, ctx, source_factory, cmd_path) -> None:
        """Without releases the current version is returned."""
        release = Updater(linux_config(source_factory([]))).update_command(ctx, cmd_path, "1.0.0", REPO)

        assert release.version == "1.0.0"
        assert release.asset_url == ""
        assert cmd_path.read_bytes() == OLD

    def test_invalid_current_version(self, ctx, source_factory, releases, cmd_path) -> None:
        source = source_factory(releases)
        with pytest.raises(InvalidVersionError):
            Updater(linux_config(source)).update_command(ctx, cmd_path, "dev", REPO)
        assert source.list_calls == 0

    def test_missing_command(self, ctx, source_factory, releases, tmp_path: Path) -> None:
        with pytest.raises(ApplyError, match="may not exist"):
            Updater(linux_config(source_factory(releases))).update_command(ctx, tmp_path / "nope", "1.0.0", REPO)

    def test_follows_symlink(self, ctx, source_factory, releases, tmp_path: Path) -> None:
        """The real file is replaced, the link is kept."""
        real_dir = tmp_path / "opt"
        real_dir.mkdir()
        real = real_dir / "tool"
        real.write_bytes(OLD)
        link = tmp_path / "tool"
        link.symlink_to(real)

        source = source_factory(releases, {200: tarball({"tool": NEW})})
        Updater(linux_config(source)).update_command(ctx, link, "1.0.0", REPO)

        assert link.is_symlink()
        assert real.read_bytes() == NEW

    def test_old_save_path(self, ctx, source_factory, releases, archive, cmd_path, tmp_path: Path) -> None:
        backup = tmp_path / "tool.previous"
        source = source_factory(releases, {200: archive})
        Updater(linux_config(source, old_save_path=backup)).update_command(ctx, cmd_path, "1.0.0", REPO)

        assert cmd_path.read_bytes() == NEW
        assert backup.read_bytes() == OLD

    def test_windows_exe_suffix(self, ctx, source_factory, release_factory, tmp_path: Path) -> None:
        """On Windows targets the command path gets its .exe suffix."""
        exe = tmp_path / "tool.exe"
        exe.write_bytes(OLD)
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w") as zf:
            zf.writestr("tool.exe", NEW)

        source = source_factory([release_factory("v1.1.0", ["tool_windows_amd64.exe.zip"])], {100: buf.getvalue()})
        updater = Updater(UpdaterConfig(source=source, os="windows", arch="amd64"))
        updater.update_command(ctx, tmp_path / "tool", "1.0.0", REPO)

        assert exe.read_bytes() == NEW

    def test_executable_not_in_archive(self, ctx, source_factory, releases, cmd_path) -> None:
        source = source_factory(releases, {200: tarball({"README.md": b"docs"})})
        with pytest.raises(ExecutableNotFoundInArchiveError):
            Updater(linux_config(source)).update_command(ctx, cmd_path, "1.0.0", REPO)
        assert cmd_path.read_bytes() == OLD

    def test_corrupt_bz2(self, ctx, source_factory, release_factory, cmd_path) -> None:
        """bzip2 errors raised while reading are decompression errors."""
        source = source_factory([release_factory("v1.1.0", ["tool_linux_amd64.bz2"])], {100: b"not bzip2"})
        with pytest.raises(CannotDecompressFileError):
            Updater(linux_config(source)).update_command(ctx, cmd_path, "1.0.0", REPO)
        assert cmd_path.read_bytes() == OLD

    @pytest.mark.parametrize(("asset", "mode"), [(ASSET, "w:gz"), ("tool_linux_amd64.tar.xz", "w:xz")])
    def test_truncated_tarball(self, ctx, source_factory, release_factory, cmd_path, asset: str, mode: str) -> None:
        """A tarball cut inside the executable's data is a decompression error."""
        data = tarball({"tool": random.Random(0).randbytes(300_000)}, mode)
        source = source_factory([release_factory("v1.1.0", [asset])], {100: data[: len(data) // 2]})
        with pytest.raises(CannotDecompressFileError):
            Updater(linux_config(source)).update_command(ctx, cmd_path, "1.0.0", REPO)
        assert cmd_path.read_bytes() == OLD

    def test_bz2(self, ctx, source_factory, release_factory, cmd_path) -> None:
        source = source_factory([release_factory("v1.1.0", ["tool_linux_amd64.bz2"])], {100: bz2.compress(NEW)})
        Updater(linux_config(source)).update_command(ctx, cmd_path, "1.0.0", REPO)
        assert cmd_path.read_bytes() == NEW

    def test_cancelled(self, source_factory, releases, archive, cmd_path) -> None:
        ctx = Context()
        ctx.cancel()
        with pytest.raises(UpdateCancelledError):
            Updater(linux_config(source_factory(releases, {200: archive}))).update_command(
                ctx, cmd_path, "1.0.0", REPO
            )
        assert cmd_path.read_bytes() == OLD

    def test_update_self(self, ctx, source_factory, releases, archive, cmd_path) -> None:
        """update_self() replaces the running executable."""
        source = source_factory(releases, {200: archive})
        with patch("selfupdate.updater.get_executable_path", return_value=cmd_path):
            release = Updater(linux_config(source)).update_self(ctx, "1.0.0", REPO)

        assert release.version == "1.1.0"
        assert cmd_path.read_bytes() == NEW


class TestValidatedUpdate:
    """Updates going through a validation chain."""

    def test_checksum(self, ctx, source_factory, releases, archive, cmd_path) -> None:
        checksums = f"{hashlib.sha256(archive).hexdigest()}  {ASSET}\n".encode()
        source = source_factory(releases, {200: archive, 201: checksums})
        updater = Updater(linux_config(source, validator=ChecksumValidator("checksums.txt")))

        updater.update_command(ctx, cmd_path, "1.0.0", REPO)

        assert cmd_path.read_bytes() == NEW
        assert source.downloads == [200, 201]

    def test_checksum_mismatch(self, ctx, source_factory, releases, archive, cmd_path) -> None:
        """A tampered asset is never installed."""
        checksums = f"{hashlib.sha256(b'something else').hexdigest()}  {ASSET}\n".encode()
        source = source_factory(releases, {200: archive, 201: checksums})
        updater = Updater(linux_config(source, validator=ChecksumValidator("checksums.txt")))

        with pytest.raises(ValidationError, match=ASSET):
            updater.update_command(ctx, cmd_path, "1.0.0", REPO)
        assert cmd_path.read_bytes() == OLD

    def test_signed_checksums(self, ctx, source_factory, release_factory, archive, cmd_path) -> None:
        """Asset -> checksums.txt -> checksums.txt.sig."""
        key = ec.generate_private_key(ec.SECP256R1())
        pem = key.public_key().public_bytes(
            serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        checksums = f"{hashlib.sha256(archive).hexdigest()}  {ASSET}\n".encode()
        signature = key.sign(checksums, ec.ECDSA(hashes.SHA256()))

        release = release_factory("v1.1.0", [ASSET, "checksums.txt", "checksums.txt.sig"])
        source = source_factory([release], {100: archive, 101: checksums, 102: signature})
        updater = Updater(linux_config(source, validator=new_checksum_with_ecdsa_validator("checksums.txt", pem)))

        result = updater.update_command(ctx, cmd_path, "1.0.0", REPO)

        assert [hop.asset_name for hop in result.validation_chain] == ["checksums.txt", "checksums.txt.sig"]
        assert source.downloads == [100, 101, 102]
        assert cmd_path.read_bytes() == NEW

    def test_forged_checksums(self, ctx, source_factory, release_factory, cmd_path) -> None:
        """Checksums matching a forged asset fail at the signature."""
        key = ec.generate_private_key(ec.SECP256R1())
        pem = key.public_key().public_bytes(
            serialization.Encoding.PEM, serialization.PublicFormat.SubjectPublicKeyInfo
        )
        genuine = f"{'0' * 64}  {ASSET}\n".encode()
        signature = key.sign(genuine, ec.ECDSA(hashes.SHA256()))
        forged_archive = tarball({"tool": b"malware"})
        forged = f"{hashlib.sha256(forged_archive).hexdigest()}  {ASSET}\n".encode()

        release = release_factory("v1.1.0", [ASSET, "checksums.txt", "checksums.txt.sig"])
        source = source_factory([release], {100: forged_archive, 101: forged, 102: signature})
        updater = Updater(linux_config(source, validator=new_checksum_with_ecdsa_validator("checksums.txt", pem)))

        with pytest.raises(ValidationError, match="hop 2"):
            updater.update_command(ctx, cmd_path, "1.0.0", REPO)
        assert cmd_path.read_bytes() == OLD

    def test_hand_built_release(self, ctx, source_factory, archive, cmd_path) -> None:
        """A release carrying only validation_asset_id is still validated."""
        checksums = f"{hashlib.sha256(archive).hexdigest()}  {ASSET}\n".encode()
        source = source_factory([], {5: archive, 6: checksums})
        updater = Updater(linux_config(source, validator=ChecksumValidator("checksums.txt")))
        release = Release(
            parsed_version=parse_version("1.1.0"),
            asset_id=5,
            asset_name=ASSET,
            asset_url=f"https://example.com/{ASSET}",
            validation_asset_id=6,
        )

        updater.update_to(ctx, release, cmd_path)

        assert source.downloads == [5, 6]
        assert cmd_path.read_bytes() == NEW
