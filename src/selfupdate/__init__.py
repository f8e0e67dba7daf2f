"""Self-update for executables published as release assets.

Typical use::

    from selfupdate import Updater, UpdaterConfig, background, parse_slug

    updater = Updater(UpdaterConfig())
    release = updater.update_self(background(), "1.2.3", parse_slug("owner/tool"))
"""

from selfupdate.config import UpdaterConfig
from selfupdate.context import Context, background, with_timeout
from selfupdate.domain import (
    NOT_FOUND,
    Detection,
    Release,
    RepositoryID,
    RepositorySlug,
    parse_slug,
    parse_version,
    split_domain_slug,
)
from selfupdate.errors import SelfUpdateError, rollback_error
from selfupdate.updater import Updater

__version__ = "0.1.0"

__all__ = [
    "NOT_FOUND",
    "Context",
    "Detection",
    "Release",
    "RepositoryID",
    "RepositorySlug",
    "SelfUpdateError",
    "Updater",
    "UpdaterConfig",
    "background",
    "parse_slug",
    "parse_version",
    "rollback_error",
    "split_domain_slug",
    "with_timeout",
]
