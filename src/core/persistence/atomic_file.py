"""
Atomic file writes — temp file in the same directory, then rename.

Writing next to the target keeps the final ``os.replace`` on one
filesystem, so readers see either the old file or the new one, never
a partial write.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def write_temp_sibling(
    target: Path,
    content: str,
    *,
    mode: int = 0o644,
    owner: str | None = None,
    group: str | None = None,
) -> Path:
    """Write ``content`` to a new temp file beside ``target``.

    The temp file is created 0600 by ``mkstemp``, so secrets in the
    content are never readable by others, even before ``mode`` applies.

    Returns:
        Path of the temp file. The caller replaces or removes it.
    """
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=target.parent,
        prefix=f".{target.name}.",
        suffix=".tmp",
    )
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp, mode)
        if owner or group:
            shutil.chown(tmp, user=owner, group=group)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
    return tmp


def atomic_write(
    target: Path,
    content: str,
    *,
    mode: int = 0o644,
    owner: str | None = None,
    group: str | None = None,
) -> None:
    """Write ``target`` atomically (temp sibling + ``os.replace``)."""
    tmp = write_temp_sibling(target, content, mode=mode, owner=owner, group=group)
    try:
        os.replace(tmp, target)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    logger.debug("Wrote %s (%d bytes)", target, len(content))
