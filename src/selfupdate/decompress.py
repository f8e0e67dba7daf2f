"""Locate the executable inside a downloaded release asset.

The format is sniffed from the asset name or URL. Archives (zip, tar.gz,
tar.xz) are scanned for a member named after the command; single-file
formats (gzip, xz, bzip2) are assumed to hold the executable, gzip
checking its embedded file name when it carries one. Anything else is
taken as the raw executable.
"""

import bz2
import gzip
import io
import logging
import lzma
import posixpath
import struct
import tarfile
import zipfile
import zlib
from collections.abc import Callable
from typing import BinaryIO

from selfupdate.errors import CannotDecompressFileError, ExecutableNotFoundInArchiveError

logger = logging.getLogger(__name__)

SEPARATORS = ("_", "-")

_GZIP_MAGIC = b"\x1f\x8b"
_XZ_MAGIC = b"\xfd7zXZ\x00"

# gzip header flags (RFC 1952)
_FEXTRA = 0x04
_FNAME = 0x08


def match_executable_name(cmd: str, os_name: str, arch: str, target: str) -> bool:
    """Return True if an archive member name designates the executable.

    Accepted names, with ``_`` or ``-`` as separator, compared lower-cased:
        - ``cmd`` and ``cmd.exe``
        - ``cmd_os_arch``
        - ``cmd_<version>_os_arch``
    with ``.exe`` appended to the last two on Windows.
    """
    cmd = cmd.lower()
    target = target.lower()
    if target in (cmd, f"{cmd}.exe"):
        return True

    exe = ".exe" if os_name == "windows" else ""
    for sep in SEPARATORS:
        tail = f"{sep}{os_name}{sep}{arch}{exe}".lower()
        if target == f"{cmd}{tail}":
            return True
        head = f"{cmd}{sep}"
        if target.startswith(head) and target.endswith(tail):
            infix = target[len(head) : len(target) - len(tail)]
            if infix and sep not in infix:
                return True
    return False


def _read_all(src: BinaryIO, kind: str) -> bytes:
    try:
        return src.read()
    except OSError as err:
        raise CannotDecompressFileError(f"cannot read {kind} file: {err}") from err


def _unzip(src: BinaryIO, cmd: str, os_name: str, arch: str) -> BinaryIO:
    logger.debug("Decompressing zip file")
    # The central directory sits at the end of the file
    data = _read_all(src, "zip")
    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as err:
        raise CannotDecompressFileError(f"cannot decompress zip file: {err}") from err

    for info in archive.infolist():
        if info.is_dir():
            continue
        name = posixpath.basename(info.filename)
        if match_executable_name(cmd, os_name, arch, name):
            logger.debug("Executable file %r was found in zip archive", info.filename)
            try:
                return archive.open(info)
            except (zipfile.BadZipFile, NotImplementedError, RuntimeError) as err:
                raise CannotDecompressFileError(f"cannot decompress zip member: {err}") from err

    raise ExecutableNotFoundInArchiveError(f"executable not found in zip file: {cmd!r}")


def _untar(src: BinaryIO, cmd: str, os_name: str, arch: str, mode: str, kind: str) -> BinaryIO:
    logger.debug("Decompressing %s file", kind)
    try:
        archive = tarfile.open(fileobj=src, mode=mode)
        for member in archive:
            if not member.isfile():
                continue
            name = posixpath.basename(member.name)
            if match_executable_name(cmd, os_name, arch, name):
                logger.debug("Executable file %r was found in tar archive", member.name)
                extracted = archive.extractfile(member)
                if extracted is not None:
                    # Member data only fails when read, the stream cannot seek back
                    return io.BytesIO(extracted.read())
    except (tarfile.TarError, OSError, EOFError, lzma.LZMAError, zlib.error) as err:
        raise CannotDecompressFileError(f"cannot decompress {kind} file: {err}") from err

    raise ExecutableNotFoundInArchiveError(f"executable not found in tar: {cmd!r}")


def _untar_gz(src: BinaryIO, cmd: str, os_name: str, arch: str) -> BinaryIO:
    return _untar(src, cmd, os_name, arch, "r|gz", "tar.gz")


def _untar_xz(src: BinaryIO, cmd: str, os_name: str, arch: str) -> BinaryIO:
    return _untar(src, cmd, os_name, arch, "r|xz", "tar.xz")


def gzip_member_name(header: bytes) -> str:
    """Return the original file name stored in a gzip header, or "".

    Raises:
        CannotDecompressFileError: If the data is not a gzip stream.
    """
    if len(header) < 10 or header[:2] != _GZIP_MAGIC:
        raise CannotDecompressFileError("cannot decompress gzip file: invalid header")

    flags = header[3]
    if not flags & _FNAME:
        return ""

    offset = 10
    if flags & _FEXTRA:
        if len(header) < offset + 2:
            raise CannotDecompressFileError("cannot decompress gzip file: truncated header")
        (extra_len,) = struct.unpack("<H", header[offset : offset + 2])
        offset += 2 + extra_len

    end = header.find(b"\x00", offset)
    if end < 0:
        raise CannotDecompressFileError("cannot decompress gzip file: truncated header")
    # RFC 1952 stores the name in ISO 8859-1
    return header[offset:end].decode("latin-1")


def _gunzip(src: BinaryIO, cmd: str, os_name: str, arch: str) -> BinaryIO:
    logger.debug("Decompressing gzip file")
    data = _read_all(src, "gzip")
    name = gzip_member_name(data)

    if name and not match_executable_name(cmd, os_name, arch, name):
        raise ExecutableNotFoundInArchiveError(
            f"executable not found in gzip file: expected {cmd!r} but found {name!r}"
        )

    logger.debug("Executable file %r was found in gzip file", name or cmd)
    return gzip.GzipFile(fileobj=io.BytesIO(data), mode="rb")


def _unxz(src: BinaryIO, cmd: str, os_name: str, arch: str) -> BinaryIO:
    logger.debug("Decompressing xz file")
    data = _read_all(src, "xz")
    if not data.startswith(_XZ_MAGIC):
        raise CannotDecompressFileError("cannot decompress xz file: invalid header")

    logger.debug("Decompressed file from xz is assumed to be an executable: %s", cmd)
    return lzma.LZMAFile(io.BytesIO(data), mode="rb")


def _unbz2(src: BinaryIO, cmd: str, os_name: str, arch: str) -> BinaryIO:
    logger.debug("Decompressing bzip2 file")
    # Errors only surface when the stream is read
    logger.debug("Decompressed file from bzip2 is assumed to be an executable: %s", cmd)
    return bz2.BZ2File(src, mode="rb")


# Checked in order: ".tar.gz" must come before ".gz"
FILE_TYPES: list[tuple[str, Callable[[BinaryIO, str, str, str], BinaryIO]]] = [
    (".zip", _unzip),
    (".tar.gz", _untar_gz),
    (".tgz", _untar_gz),
    (".gzip", _gunzip),
    (".gz", _gunzip),
    (".tar.xz", _untar_xz),
    (".xz", _unxz),
    (".bz2", _unbz2),
]


def decompress_command(src: BinaryIO, url: str, cmd: str, os_name: str, arch: str) -> BinaryIO:
    """Return a stream of the executable ``cmd`` held by ``src``.

    Args:
        src: The downloaded asset.
        url: Asset URL or file name, used to detect the format.
        cmd: Command (executable) name to look for.
        os_name: Target OS.
        arch: Target arch.

    Raises:
        CannotDecompressFileError: If the asset is corrupt.
        ExecutableNotFoundInArchiveError: If no member matches ``cmd``.
    """
    lowered = url.lower()
    for ext, decompress in FILE_TYPES:
        if lowered.endswith(ext):
            return decompress(src, cmd, os_name, arch)

    logger.debug("File is not compressed")
    return src
