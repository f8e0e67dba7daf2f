"""Architecture candidates for asset lookup."""

import struct
from pathlib import Path

MIN_ARM = 5
MAX_ARM = 7

# Mach-O universal binary magic numbers (32 and 64 bit offsets)
_FAT_MAGICS = (0xCAFEBABE, 0xCAFEBABF)
# Java class files share the 0xCAFEBABE magic; their next word is the class
# version (45 or more) where a fat header stores its architecture count.
_MAX_FAT_ARCHS = 44


def generate_additional_arch(arch: str, arm: int = 0) -> list[str]:
    """Return the extra arch tokens to try before ``arch`` itself.

    An ARMv7 build also runs on an ARMv7 board that asked for ARMv6 or
    ARMv5 assets, never the reverse, so the list walks down from the given
    sub-version. ``amd64`` is also published as ``x86_64``.

    The configured arch itself is not part of the result.
    """
    additional: list[str] = []
    if arch == "arm" and MIN_ARM <= arm <= MAX_ARM:
        for version in range(arm, MIN_ARM - 1, -1):
            additional.append(f"armv{version}")
    if arch == "amd64":
        additional.append("x86_64")
    return additional


def is_darwin_universal_binary(filename: Path | str) -> bool:
    """Return True if the file is a Mach-O universal (fat) binary."""
    try:
        with open(filename, "rb") as fp:
            header = fp.read(8)
            if len(header) < 8:
                return False
            magic, count = struct.unpack(">II", header)
            if magic not in _FAT_MAGICS or not 0 < count <= _MAX_FAT_ARCHS:
                return False
            entry_size = 20 if magic == _FAT_MAGICS[0] else 32
            return len(fp.read(entry_size * count)) == entry_size * count
    except OSError:
        return False
