"""Release and asset selection for a target OS/arch."""

from selfupdate.selection.arch import (
    MAX_ARM,
    MIN_ARM,
    generate_additional_arch,
    is_darwin_universal_binary,
)
from selfupdate.selection.detect import (
    EXTENSIONS,
    SEPARATORS,
    ReleaseSelector,
    Selection,
    extract_version,
    get_suffixes,
)

__all__ = [
    "EXTENSIONS",
    "MAX_ARM",
    "MIN_ARM",
    "SEPARATORS",
    "ReleaseSelector",
    "Selection",
    "extract_version",
    "generate_additional_arch",
    "get_suffixes",
    "is_darwin_universal_binary",
]
