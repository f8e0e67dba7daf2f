"""Decide where an API token may be sent."""

from urllib.parse import urlsplit


def can_use_token_for_domain(origin: str, other: str) -> bool:
    """Return True if ``other`` is in the same domain as ``origin``.

    Asset downloads are often redirected to a storage host; the token of
    the API host must not leak there.
    """
    origin_host = urlsplit(origin).hostname or ""
    other_host = urlsplit(other).hostname or ""
    if not origin_host:
        return False
    return other_host == origin_host or other_host.endswith("." + origin_host)
