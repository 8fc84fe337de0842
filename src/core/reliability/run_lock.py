"""
Run lock — one provisioner per host at a time.

An exclusive, non-blocking ``flock`` on a pid file. The kernel drops
the lock when the process exits, so a crashed run never leaves the host
locked.
"""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path

from src.core.errors import PreflightError, PreflightErrorKind

logger = logging.getLogger(__name__)


class RunLock:
    """Context manager holding the host-wide provisioner lock."""

    def __init__(self, path: Path):
        self.path = path
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        """Take the lock or raise ``PreflightError(ALREADY_RUNNING)``."""
        if self._fd is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            holder = os.read(fd, 32).decode(errors="replace").strip() or "unknown"
            os.close(fd)
            raise PreflightError(
                PreflightErrorKind.ALREADY_RUNNING,
                f"another provisioner run holds {self.path} (pid {holder})",
            ) from None
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug("Acquired run lock %s", self.path)

    def release(self) -> None:
        if self._fd is None:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None
        logger.debug("Released run lock %s", self.path)

    def __enter__(self) -> RunLock:
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
