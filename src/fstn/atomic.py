"""Crash-safe local file writes.

Both helpers write to a temp file in the destination directory and
``os.replace`` it into place, so readers see either the old file or the
complete new one.
"""

from pathlib import Path
from typing import Callable, Optional
import logging
import os
import tempfile

logger = logging.getLogger(__name__)


def _fsync_dir(directory: Path) -> None:
    """Fsync a directory so a rename inside it is durable (best-effort)."""
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        dirfd = os.open(str(directory), flags)
        try:
            os.fsync(dirfd)
        finally:
            os.close(dirfd)
    except OSError:
        # Not supported on Windows and some filesystems
        logger.debug("Directory fsync not supported for %s", directory)


def atomic_write_bytes(path: Path, data: bytes, mode: Optional[int] = None) -> None:
    """Atomically replace path with data.

    Args:
        path: Target file path
        data: Full file contents
        mode: Optional permission bits applied before the rename
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    with tempfile.NamedTemporaryFile(
        mode="wb",
        delete=False,
        dir=path.parent,
        prefix=f".{path.name}.tmp-",
    ) as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
        tmp = Path(f.name)

    try:
        if mode is not None:
            os.chmod(tmp, mode)
        os.replace(tmp, path)
        _fsync_dir(path.parent)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def atomic_download(write_fn: Callable[[Path], None], final_path: Path) -> None:
    """Let write_fn fill a temp file, then move it over final_path.

    If write_fn raises (including on a failed integrity check), the temp
    file is removed and final_path is left untouched.

    Args:
        write_fn: Function that takes the temp file path and writes to it
        final_path: Final destination path
    """
    final_path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmpname = tempfile.mkstemp(
        prefix=f".{final_path.name}.partial-",
        dir=final_path.parent,
    )
    tmppath = Path(tmpname)

    try:
        os.close(fd)
        write_fn(tmppath)

        # Must open with write permission for fsync to work
        with open(tmppath, "r+b") as f:
            os.fsync(f.fileno())

        os.replace(tmppath, final_path)
        _fsync_dir(final_path.parent)
    except BaseException:
        tmppath.unlink(missing_ok=True)
        raise


__all__ = ["atomic_write_bytes", "atomic_download"]
