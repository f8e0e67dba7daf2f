"""Replace an executable on disk with a new version.

The swap goes through sibling files in the target's directory so that
every step is a rename on the same filesystem:

1. Read the new executable, verify its checksum/signature if configured
2. Write it to ``.<name>.new`` with the target mode
3. Remove any stale ``.<name>.old`` left by a previous attempt
4. Rename ``<name>`` to ``.<name>.old`` (or to the requested backup path)
5. Rename ``.<name>.new`` to ``<name>``
6. Remove ``.<name>.old``; when that fails (Windows keeps the running
   binary locked) the file is hidden instead

If step 5 fails the old executable is renamed back. If that fails too,
RollbackError is raised: the target path is empty and the old binary sits
at the backup path, waiting for manual recovery.

Concurrent updates of the same target are not serialized here.
"""

import ctypes
import logging
import os
import sys
from pathlib import Path
from typing import BinaryIO

from selfupdate.apply.options import ApplyOptions
from selfupdate.context import Context
from selfupdate.errors import ApplyError, RollbackError
from selfupdate.internal.platforms import get_executable_path

logger = logging.getLogger(__name__)

_FILE_ATTRIBUTE_HIDDEN = 0x2


def hide_file(path: Path | str) -> None:
    """Mark a file hidden. Only Windows has such an attribute."""
    if sys.platform != "win32":
        return
    if not ctypes.windll.kernel32.SetFileAttributesW(str(path), _FILE_ATTRIBUTE_HIDDEN):
        raise ctypes.WinError()


def apply(update: BinaryIO | bytes, options: ApplyOptions | None = None, ctx: Context | None = None) -> None:
    """Write ``update`` in place of the target executable.

    Args:
        update: The new executable (stream or bytes).
        options: Target path, mode, verification and backup settings.
        ctx: Checked before the first filesystem change.

    Raises:
        ConfigurationError: Incomplete signature settings.
        ValidationError: Checksum or signature mismatch; nothing was touched.
        ApplyError: A filesystem step failed; the target is unchanged.
        RollbackError: The target could not be restored.
    """
    options = options or ApplyOptions()
    options.check()

    target = Path(options.target_path) if options.target_path else get_executable_path()

    new_bytes = update if isinstance(update, bytes) else update.read()

    if options.checksum is not None:
        options.verify_checksum(new_bytes)
    if options.signature is not None:
        options.verify_signature(new_bytes)

    if ctx is not None:
        ctx.check()

    update_dir = target.parent
    new_path = update_dir / f".{target.name}.new"

    try:
        fd = os.open(new_path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, options.target_mode)
        # The file must be closed before it can be renamed on Windows
        with os.fdopen(fd, "wb") as fp:
            fp.write(new_bytes)
            fp.flush()
            os.fsync(fp.fileno())
        # The umask may have stripped bits of the requested mode
        os.chmod(new_path, options.target_mode)
    except OSError as err:
        raise ApplyError(f"cannot write new executable {str(new_path)!r}: {err}") from err

    remove_old = options.old_save_path is None
    old_path = update_dir / f".{target.name}.old" if remove_old else Path(options.old_save_path)

    # Windows refuses to rename onto an existing file
    try:
        os.remove(old_path)
    except FileNotFoundError:
        pass
    except OSError as err:
        logger.debug("Cannot remove stale backup %s: %s", old_path, err)

    try:
        os.rename(target, old_path)
    except OSError as err:
        raise ApplyError(f"cannot move {str(target)!r} to {str(old_path)!r}: {err}") from err

    try:
        os.rename(new_path, target)
    except OSError as err:
        # No executable at the target path any more: put the old one back
        try:
            os.rename(old_path, target)
        except OSError as rollback_err:
            logger.error(
                "Rollback failed: %s is missing, previous executable left at %s",
                target,
                old_path,
            )
            raise RollbackError(err, rollback_err) from err
        raise ApplyError(f"cannot move new executable to {str(target)!r}: {err}") from err

    if remove_old:
        try:
            os.remove(old_path)
        except OSError as err:
            logger.debug("Cannot remove %s (%s), hiding it instead", old_path, err)
            try:
                hide_file(old_path)
            except OSError as hide_err:
                logger.debug("Cannot hide %s: %s", old_path, hide_err)

    logger.info("Updated %s", target)
