"""
Filesystem adapter — file, directory and link operations.

Provides a receipt-returning interface for filesystem mutations so the
workflow can log and skip them like any other action.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from src.adapters.base import Adapter
from src.core.models.action import (
    DirectoryCreate,
    FileWrite,
    LinkCreate,
    PathRemove,
    Receipt,
    action_id,
)
from src.core.persistence.atomic_file import atomic_write

logger = logging.getLogger(__name__)

_HANDLED = (FileWrite, DirectoryCreate, LinkCreate, PathRemove)


class FilesystemAdapter(Adapter):
    """File and directory operations with receipts.

    Handles ``FileWrite`` (atomic, deterministic overwrite),
    ``DirectoryCreate``, ``LinkCreate`` and ``PathRemove``. Each one
    returns a skip receipt when the host already matches.
    """

    @property
    def name(self) -> str:
        return "filesystem"

    def is_available(self) -> bool:
        return True  # filesystem is always available

    def validate(self, action: object) -> tuple[bool, str]:
        if not isinstance(action, _HANDLED):
            return False, f"Unsupported action kind: {getattr(action, 'kind', action)}"
        if not action.path:
            return False, "Missing required param: 'path'"
        if not Path(action.path).is_absolute():
            return False, f"Path must be absolute: {action.path}"
        return True, ""

    def execute(self, action: object) -> Receipt:
        aid = action_id(action)
        target = Path(action.path)
        try:
            if isinstance(action, FileWrite):
                return self._write(aid, action, target)
            if isinstance(action, DirectoryCreate):
                return self._mkdir(aid, action, target)
            if isinstance(action, LinkCreate):
                return self._link(aid, action, target)
            if isinstance(action, PathRemove):
                return self._remove(aid, target)
            return Receipt.failure(
                adapter=self.name,
                action_id=aid,
                error=f"Unknown operation: {action}",
            )
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=aid,
                error=f"Filesystem error: {e}",
                metadata={"path": str(target)},
            )

    def _write(self, aid: str, action: FileWrite, target: Path) -> Receipt:
        if target.is_file() and target.read_text(encoding="utf-8") == action.content:
            return Receipt.skip(adapter=self.name, action_id=aid, reason=f"{target} up to date")
        atomic_write(
            target,
            action.content,
            mode=action.mode,
            owner=action.owner,
            group=action.group,
        )
        return Receipt.success(
            adapter=self.name,
            action_id=aid,
            output=f"Written {len(action.content)} bytes to {target}",
            metadata={"path": str(target), "size": len(action.content)},
        )

    def _mkdir(self, aid: str, action: DirectoryCreate, target: Path) -> Receipt:
        if target.is_dir():
            return Receipt.skip(adapter=self.name, action_id=aid, reason=f"{target} exists")
        target.mkdir(parents=True, exist_ok=True)
        os.chmod(target, action.mode)
        if action.owner or action.group:
            shutil.chown(target, user=action.owner, group=action.group)
        return Receipt.success(
            adapter=self.name,
            action_id=aid,
            output=f"Directory created: {target}",
            metadata={"path": str(target)},
        )

    def _link(self, aid: str, action: LinkCreate, target: Path) -> Receipt:
        if target.is_symlink() and os.readlink(target) == action.target:
            return Receipt.skip(adapter=self.name, action_id=aid, reason=f"{target} already linked")
        if target.is_symlink() or target.exists():
            target.unlink()
        target.parent.mkdir(parents=True, exist_ok=True)
        target.symlink_to(action.target)
        return Receipt.success(
            adapter=self.name,
            action_id=aid,
            output=f"Linked {target} → {action.target}",
            metadata={"path": str(target), "target": action.target},
        )

    def _remove(self, aid: str, target: Path) -> Receipt:
        if not target.is_symlink() and not target.exists():
            return Receipt.skip(adapter=self.name, action_id=aid, reason=f"{target} absent")
        if target.is_dir() and not target.is_symlink():
            shutil.rmtree(target)
        else:
            target.unlink()
        return Receipt.success(
            adapter=self.name,
            action_id=aid,
            output=f"Removed {target}",
            metadata={"path": str(target)},
        )
