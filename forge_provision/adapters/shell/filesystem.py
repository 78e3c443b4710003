"""
Filesystem helpers — the few direct file mutations the provisioner makes.

Writes are atomic (write to a temp file in the same directory, then
rename over the target) so a crash mid-write never leaves a truncated
file behind.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def read_source(path: Path) -> str:
    """Read a text file without newline translation."""
    with path.open("r", encoding="utf-8", newline="") as f:
        return f.read()


def atomic_write_text(path: Path, content: str) -> None:
    """Replace ``path`` with ``content`` atomically, keeping its mode.

    ``content`` is written verbatim (no newline translation).
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = path.stat().st_mode & 0o7777 if path.exists() else None

    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
            f.write(content)
        if mode is not None:
            tmp.chmod(mode)
        os.replace(tmp, path)
        logger.debug("Wrote %s (%d bytes)", path, len(content))
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise


def ensure_symlink(link: Path, target: str) -> bool:
    """Make ``link`` a symlink pointing at ``target``.

    Whatever sits at ``link`` (file or stale symlink) is replaced.

    Returns:
        True if the link was (re)created, False if it was already right.
    """
    if link.is_symlink() and os.readlink(link) == target:
        return False
    if link.exists() or link.is_symlink():
        link.unlink()
    link.symlink_to(target)
    logger.debug("Linked %s -> %s", link, target)
    return True
