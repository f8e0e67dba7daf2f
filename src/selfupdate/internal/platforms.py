"""Host platform detection and executable path resolution.

Release assets are conventionally named after the usual cross-compile tokens
(``linux``, ``darwin``, ``windows``; ``amd64``, ``arm64``, ``386``, ``arm``),
so the host values reported by the platform module are mapped onto those.
"""

import os
import platform
import re
import sys
from pathlib import Path

_OS_ALIASES = {
    "win32": "windows",
    "cygwin": "windows",
    "msys": "windows",
}

_ARCH_ALIASES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "x64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "i386": "386",
    "i486": "386",
    "i586": "386",
    "i686": "386",
    "x86": "386",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

_ARM_MACHINE = re.compile(r"^armv?(\d+)")


def detect_os() -> str:
    """Return the host OS as a release token."""
    system = sys.platform
    if system.startswith("linux"):
        return "linux"
    if system.startswith("freebsd"):
        return "freebsd"
    return _OS_ALIASES.get(system, system)


def detect_arch(machine: str | None = None) -> tuple[str, int]:
    """Return the host architecture token and its ARM sub-version.

    The sub-version is 0 unless the machine is a 32 bit ARM one, in which
    case it is read from the machine string (``armv7l`` gives 7).
    """
    machine = (machine if machine is not None else platform.machine()).lower()
    if machine in _ARCH_ALIASES:
        return _ARCH_ALIASES[machine], 0

    match = _ARM_MACHINE.match(machine)
    if match:
        return "arm", int(match.group(1))

    return machine, 0


def get_executable_path() -> Path:
    """Return the path of the running executable with symlinks resolved.

    Frozen applications report their own binary in sys.executable; for a
    plain interpreter this is the interpreter itself.
    """
    return resolve_path(Path(sys.executable))


def resolve_path(path: Path | str) -> Path:
    """Return ``path`` with every symlink resolved.

    Raises:
        OSError: If the path does not exist.
    """
    return Path(os.path.realpath(path, strict=True))
