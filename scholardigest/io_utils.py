"""Filesystem helpers shared by the template stores, history and batch output."""

import os
from pathlib import Path


def write_atomically(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` as a single atomic replace.

    The text is written to ``<path>.tmp`` in the same directory, flushed and
    fsynced, then moved over ``path`` with ``os.replace``.  Readers see
    either the old file or the new one, never a partial write.  Parent
    directories are created automatically.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
