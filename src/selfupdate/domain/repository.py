"""Repository references understood by release sources.

A reference is either an ``owner/name`` slug or a numeric ID (some
providers address projects by ID). URLs and ``host/owner/name`` strings are
split into a domain and a slug with split_domain_slug().
"""

from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlsplit

from selfupdate.errors import (
    ConfigurationError,
    IncorrectOwnerError,
    IncorrectRepoError,
    InvalidRepositoryIDError,
    InvalidSlugError,
)


class Repository(Protocol):
    """Anything a Source can resolve into provider calls."""

    def get_slug(self) -> tuple[str, str]: ...

    def get(self) -> str | int: ...


@dataclass(frozen=True)
class RepositorySlug:
    """An ``owner/name`` repository reference."""

    owner: str = ""
    repo: str = ""

    def get_slug(self) -> tuple[str, str]:
        """Return (owner, repo), raising if either part is missing."""
        if not self.owner and not self.repo:
            raise InvalidSlugError()
        if not self.owner:
            raise IncorrectOwnerError()
        if not self.repo:
            raise IncorrectRepoError()
        return self.owner, self.repo

    def get(self) -> str:
        owner, repo = self.get_slug()
        return f"{owner}/{repo}"


@dataclass(frozen=True)
class RepositoryID:
    """A numeric repository reference."""

    id: int

    def get_slug(self) -> tuple[str, str]:
        raise InvalidRepositoryIDError()

    def get(self) -> int:
        return self.id


def parse_slug(slug: str) -> RepositorySlug:
    """Build a RepositorySlug from ``owner/repo`` (or ``owner%2Frepo``).

    Anything else yields an empty slug, which fails on get_slug().
    """
    couple = slug.split("/")
    if len(couple) != 2:
        couple = slug.split("%2F")
    if len(couple) == 2:
        return RepositorySlug(owner=couple[0], repo=couple[1])
    return RepositorySlug()


def split_domain_slug(repo: str) -> tuple[str, str]:
    """Split a repository string into a domain (possibly empty) and a slug.

    Accepted forms:
        - "owner/name"
        - "github.com/owner/name"
        - "https://github.com/owner/name"

    Raises:
        ConfigurationError: If the string cannot be understood.
    """
    parts = repo.split("/")
    if len(parts) == 2:
        if not parts[0] or not parts[1]:
            raise ConfigurationError(f"invalid slug or URL {repo!r}")
        return "", repo

    repo = repo.removesuffix("/")
    if not repo.startswith("http") and "://" not in repo and not repo.startswith("/"):
        repo = "https://" + repo

    url = urlsplit(repo)
    hostname = url.hostname or ""
    if "." not in hostname:
        raise ConfigurationError(f"invalid domain name {hostname!r}")

    slug = url.path.removeprefix("/")
    if not slug:
        raise ConfigurationError(f"invalid URL {repo!r}")
    return f"{url.scheme}://{url.netloc}", slug
