"""Updater configuration."""

from dataclasses import dataclass, field
from pathlib import Path

from selfupdate.sources.base import Source
from selfupdate.validation.validators import Validator


@dataclass
class UpdaterConfig:
    """Configuration for an Updater.

    Empty ``os`` and ``arch`` default to the host platform.
    """

    # Where releases come from; GitHub when not set
    source: Source | None = None
    # Optional validation of downloaded assets
    validator: Validator | None = None

    # Regular expressions selecting assets by name or URL. When set, an
    # asset matching any of them is selected regardless of its suffix.
    filters: list[str] = field(default_factory=list)

    os: str = ""
    arch: str = ""
    # ARM 32 bit sub-version: 0 (unknown), 5, 6 or 7
    arm: int = 0
    # Fallback arch of universal (fat) binaries, honoured on darwin only
    universal_arch: str = ""

    draft: bool = False
    prerelease: bool = False

    # Keep the replaced executable here instead of deleting it
    old_save_path: Path | None = None
