"""
Step ledger — which steps completed for which install directory.

Steps with no host-side check (extracting a release, running the
application's own commands) consult the ledger instead: a name recorded
here counts as done on the next run.

File layout (``<state_dir>/steps.json``)::

    {
      "targets": {
        "/var/www/paymenter": {
          "completed": ["download-release", "migrate-database"],
          "updated_at": "2026-01-01T00:00:00+00:00"
        }
      }
    }
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from src.core.persistence.atomic_file import atomic_write

logger = logging.getLogger(__name__)

LEDGER_FILE = "steps.json"


class StepLedger:
    """Completed step names per target directory, persisted as JSON."""

    def __init__(self, state_dir: Path, target: Path):
        self.path = state_dir / LEDGER_FILE
        self._key = str(target)

    def _load(self) -> dict[str, Any]:
        if not self.path.is_file():
            return {"targets": {}}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (ValueError, OSError) as e:
            logger.warning("Ignoring unreadable step ledger %s: %s", self.path, e)
            return {"targets": {}}
        if not isinstance(data, dict) or not isinstance(data.get("targets"), dict):
            logger.warning("Ignoring malformed step ledger %s", self.path)
            return {"targets": {}}
        return data

    def _save(self, data: dict[str, Any]) -> None:
        atomic_write(self.path, json.dumps(data, indent=2) + "\n", mode=0o600)

    def completed(self) -> set[str]:
        entry = self._load()["targets"].get(self._key, {})
        return set(entry.get("completed", []))

    def is_completed(self, step_name: str) -> bool:
        return step_name in self.completed()

    def mark_completed(self, step_name: str) -> None:
        data = self._load()
        entry = data["targets"].setdefault(self._key, {"completed": []})
        if step_name not in entry["completed"]:
            entry["completed"].append(step_name)
        entry["updated_at"] = datetime.now(UTC).isoformat()
        self._save(data)

    def reset(self, keep: tuple[str, ...] = ()) -> None:
        """Forget completed steps (a fresh release was extracted).

        Args:
            keep: Step names to leave recorded.
        """
        data = self._load()
        entry = data["targets"].get(self._key)
        if not entry:
            return
        entry["completed"] = [name for name in entry.get("completed", []) if name in keep]
        entry["updated_at"] = datetime.now(UTC).isoformat()
        self._save(data)
        logger.debug("Step ledger reset for %s", self._key)
