"""Host helpers: platform tokens and executable paths."""

from selfupdate.internal.platforms import (
    detect_arch,
    detect_os,
    get_executable_path,
    resolve_path,
)

__all__ = [
    "detect_arch",
    "detect_os",
    "get_executable_path",
    "resolve_path",
]
