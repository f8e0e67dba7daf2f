"""Tests for the command line interface."""

import io
import tarfile
from pathlib import Path
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from selfupdate.cli import build_source, cli
from selfupdate.domain.repository import RepositorySlug
from selfupdate.errors import ConfigurationError
from selfupdate.sources.github import GitHubSource
from selfupdate.sources.http import HttpSource

REPO = RepositorySlug("owner", "tool")


def tar_gz(name: str, content: bytes) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as archive:
        info = tarfile.TarInfo(name)
        info.size = len(content)
        archive.addfile(info, io.BytesIO(content))
    return buf.getvalue()


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


class TestBuildSource:
    """Tests for build_source()."""

    def test_github_slug(self) -> None:
        source, repository = build_source("owner/tool", "auto", None)
        assert isinstance(source, GitHubSource)
        assert source.base_url == "https://api.github.com/"
        assert repository == REPO

    def test_github_url(self) -> None:
        source, repository = build_source("https://github.com/owner/tool", "auto", None)
        assert source.base_url == "https://api.github.com/"
        assert repository == REPO

    def test_enterprise_url(self) -> None:
        """Other hosts are taken as GitHub Enterprise servers."""
        source, repository = build_source("https://ghe.example.com/owner/tool", "auto", None)
        assert source.base_url == "https://ghe.example.com/api/v3/"
        assert repository == REPO

    def test_http(self) -> None:
        source, repository = build_source("owner/tool", "http", "https://updates.example.com")
        assert isinstance(source, HttpSource)
        assert repository == REPO

    def test_http_needs_base_url(self) -> None:
        with pytest.raises(ConfigurationError):
            build_source("owner/tool", "http", None)


class TestDetectCommand:
    """Tests for `selfupdate detect`."""

    def test_shows_release(self, runner: CliRunner, source_factory, release_factory) -> None:
        source = source_factory([release_factory("v1.1.0", ["tool_linux_amd64.tar.gz"])])
        with patch("selfupdate.cli.build_source", return_value=(source, REPO)):
            result = runner.invoke(cli, ["detect", "owner/tool", "--os", "linux", "--arch", "amd64"])

        assert result.exit_code == 0, result.output
        assert "1.1.0" in result.output
        assert "tool_linux_amd64.tar.gz" in result.output

    def test_not_found(self, runner: CliRunner, source_factory) -> None:
        with patch("selfupdate.cli.build_source", return_value=(source_factory([]), REPO)):
            result = runner.invoke(cli, ["detect", "owner/tool", "--os", "linux", "--arch", "amd64"])

        assert result.exit_code == 1
        assert "No release found" in result.output

    def test_error(self, runner: CliRunner) -> None:
        """Errors are printed and exit with status 1."""
        result = runner.invoke(cli, ["detect", "owner/tool", "--source", "http"])

        assert result.exit_code == 1
        assert "--base-url is required" in result.output

    def test_invalid_filter(self, runner: CliRunner, source_factory) -> None:
        with patch("selfupdate.cli.build_source", return_value=(source_factory([]), REPO)):
            result = runner.invoke(cli, ["detect", "owner/tool", "--filter", "(oops"])

        assert result.exit_code == 1
        assert "regular expression" in result.output


class TestUpdateCommand:
    """Tests for `selfupdate update`."""

    def test_updates(self, runner: CliRunner, source_factory, release_factory, tmp_path: Path) -> None:
        cmd = tmp_path / "tool"
        cmd.write_bytes(b"old")
        source = source_factory(
            [release_factory("v1.1.0", ["tool_linux_amd64.tar.gz"])],
            {100: tar_gz("tool", b"new")},
        )

        with patch("selfupdate.cli.build_source", return_value=(source, REPO)):
            result = runner.invoke(
                cli,
                ["update", str(cmd), "1.0.0", "owner/tool", "--yes", "--os", "linux", "--arch", "amd64"],
            )

        assert result.exit_code == 0, result.output
        assert "Updated to" in result.output
        assert cmd.read_bytes() == b"new"

    def test_confirmation_declined(self, runner: CliRunner, source_factory, release_factory, tmp_path: Path) -> None:
        cmd = tmp_path / "tool"
        cmd.write_bytes(b"old")
        source = source_factory(
            [release_factory("v1.1.0", ["tool_linux_amd64.tar.gz"])],
            {100: tar_gz("tool", b"new")},
        )

        with patch("selfupdate.cli.build_source", return_value=(source, REPO)):
            result = runner.invoke(
                cli,
                ["update", str(cmd), "1.0.0", "owner/tool", "--os", "linux", "--arch", "amd64"],
                input="n\n",
            )

        assert result.exit_code == 0
        assert "Aborted" in result.output
        assert cmd.read_bytes() == b"old"

    def test_up_to_date(self, runner: CliRunner, source_factory, release_factory, tmp_path: Path) -> None:
        cmd = tmp_path / "tool"
        cmd.write_bytes(b"current")
        source = source_factory([release_factory("v1.1.0", ["tool_linux_amd64.tar.gz"])])

        with patch("selfupdate.cli.build_source", return_value=(source, REPO)):
            result = runner.invoke(
                cli,
                ["update", str(cmd), "1.1.0", "owner/tool", "--yes", "--os", "linux", "--arch", "amd64"],
            )

        assert result.exit_code == 0, result.output
        assert "Already up to date" in result.output
        assert cmd.read_bytes() == b"current"

    def test_failure(self, runner: CliRunner, source_factory, release_factory, tmp_path: Path) -> None:
        cmd = tmp_path / "tool"
        cmd.write_bytes(b"old")
        source = source_factory(
            [release_factory("v1.1.0", ["tool_linux_amd64.tar.gz"])],
            {100: tar_gz("README", b"no executable here")},
        )

        with patch("selfupdate.cli.build_source", return_value=(source, REPO)):
            result = runner.invoke(
                cli,
                ["update", str(cmd), "1.0.0", "owner/tool", "--yes", "--os", "linux", "--arch", "amd64"],
            )

        assert result.exit_code == 1
        assert "Update failed" in result.output
        assert cmd.read_bytes() == b"old"

    def test_missing_command(self, runner: CliRunner, tmp_path: Path) -> None:
        result = runner.invoke(cli, ["update", str(tmp_path / "nope"), "1.0.0", "owner/tool"])
        assert result.exit_code == 2
