"""Domain models for self-update."""

from selfupdate.domain.models import (
    NOT_FOUND,
    Detection,
    Release,
    SourceAsset,
    SourceRelease,
    ValidationHop,
    parse_version,
)
from selfupdate.domain.repository import (
    Repository,
    RepositoryID,
    RepositorySlug,
    parse_slug,
    split_domain_slug,
)

__all__ = [
    "NOT_FOUND",
    "Detection",
    "Release",
    "Repository",
    "RepositoryID",
    "RepositorySlug",
    "SourceAsset",
    "SourceRelease",
    "ValidationHop",
    "parse_slug",
    "parse_version",
    "split_domain_slug",
]
