"""
Execution log — the per-run record an operator reads after a failure.

Each install or upgrade run gets two files in the log directory:

    <flow>-YYYYmmdd-HHMMSS.log            full-detail text log of the run
    <flow>-YYYYmmdd-HHMMSS.results.json   ordered step results

The text log captures every logger in the process while the run is
open (with secrets redacted); the results file is written atomically
when the run closes.
"""

from __future__ import annotations

import json
import logging
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from src.core.models.step import ExecutionResult
from src.core.observability.logging_config import file_handler, redact
from src.core.persistence.atomic_file import atomic_write

logger = logging.getLogger(__name__)


class ExecutionLog:
    """Per-run log file plus the ordered list of step results.

    Use as a context manager::

        with ExecutionLog(settings.log_dir, "install") as log:
            ...
            log.record(result)
    """

    def __init__(self, log_dir: Path, flow: str):
        self.flow = flow
        self._log_dir = log_dir
        self._results: list[ExecutionResult] = []
        self._handler: logging.Handler | None = None
        self._saved_root_level: int | None = None
        self.path: Path | None = None
        self.results_path: Path | None = None

    @property
    def results(self) -> list[ExecutionResult]:
        return list(self._results)

    def _resolve_dir(self) -> Path:
        try:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            probe = tempfile.NamedTemporaryFile(dir=self._log_dir, prefix=".probe.", delete=True)
            probe.close()
            return self._log_dir
        except OSError as e:
            fallback = Path(tempfile.gettempdir())
            logger.warning("Log directory %s not writable (%s); using %s", self._log_dir, e, fallback)
            return fallback

    def open(self) -> ExecutionLog:
        directory = self._resolve_dir()
        stem = f"{self.flow}-{datetime.now().strftime('%Y%m%d-%H%M%S')}"
        self.path = directory / f"{stem}.log"
        self.results_path = directory / f"{stem}.results.json"

        self._handler = file_handler(str(self.path), logging.DEBUG)
        root = logging.getLogger()
        self._saved_root_level = root.level
        root.setLevel(logging.DEBUG)
        root.addHandler(self._handler)
        logger.info("Execution log: %s", self.path)
        return self

    def record(self, result: ExecutionResult) -> None:
        self._results.append(result)
        line = f"step {result.step_name}: {result.status} ({result.duration_ms} ms)"
        if result.error_detail:
            line += f" error: {result.error_detail}"
        if result.warning:
            line += f" warning: {result.warning}"
        logger.debug(line)

    def close(self, state: str = "", extra: dict[str, Any] | None = None) -> None:
        """Write the results file and detach from logging."""
        if self.results_path is not None:
            payload = {
                "flow": self.flow,
                "state": state,
                "log": str(self.path),
                "results": [_redacted(r) for r in self._results],
                **(extra or {}),
            }
            try:
                atomic_write(self.results_path, json.dumps(payload, indent=2) + "\n", mode=0o600)
            except OSError as e:
                logger.warning("Could not write %s: %s", self.results_path, e)

        if self._handler is not None:
            root = logging.getLogger()
            root.removeHandler(self._handler)
            self._handler.close()
            self._handler = None
            if self._saved_root_level is not None:
                root.setLevel(self._saved_root_level)

    def __enter__(self) -> ExecutionLog:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()


def _redacted(result: ExecutionResult) -> dict[str, Any]:
    data = result.model_dump(mode="json")
    for key in ("error_detail", "warning"):
        if data.get(key):
            data[key] = redact(data[key])
    return data
