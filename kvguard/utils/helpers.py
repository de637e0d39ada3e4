"""Filesystem helpers."""

import os
import stat
import tempfile
from pathlib import Path

from loguru import logger


def ensure_dir(path: Path) -> Path:
    """Ensure a directory exists, return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_path() -> Path:
    """Get the kvguard data directory (~/.kvguard)."""
    return ensure_dir(Path.home() / ".kvguard")


def atomic_write_text(
    path: Path, data: str, encoding: str = "utf-8", errors: str = "strict",
) -> None:
    """Replace ``path`` with ``data`` in a single rename.

    The content goes to a uniquely named sibling temp file first, is fsynced,
    gets the permission bits of the existing file (when it exists), and is
    then moved over the target with ``os.replace``. Readers see either the
    old file or the new one, never a partial write.

    On failure the temp file is removed and the error re-raised; the target
    is left as it was because the rename never happened.
    """
    path = Path(path)

    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError:
        mode = None

    fd, tmp_name = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding=encoding, errors=errors, newline="") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        if mode is not None:
            os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except OSError as e:
            logger.debug(f"Could not remove temp file {tmp_name}: {e}")
        raise
