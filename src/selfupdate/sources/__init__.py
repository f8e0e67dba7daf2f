"""Release sources: where releases are listed and downloaded from."""

from selfupdate.sources.base import Source
from selfupdate.sources.github import GitHubSource
from selfupdate.sources.http import HttpSource
from selfupdate.sources.token import can_use_token_for_domain

__all__ = [
    "GitHubSource",
    "HttpSource",
    "Source",
    "can_use_token_for_domain",
]
