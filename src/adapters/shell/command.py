"""
Shell command adapter — execute external commands.

This is the most fundamental adapter: it runs the application CLI,
the database client, the certificate client and every other opaque
tool the workflow drives.
"""

from __future__ import annotations

import logging
import shlex
import shutil
from pathlib import Path

from src.adapters.base import Adapter
from src.core.models.action import ProcessExecute, Receipt, action_id
from src.core.services.subprocess_runner import describe_failure, run_subprocess

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Run ``ProcessExecute`` actions and capture their output.

    A non-zero exit fails the receipt, unless the action is marked
    ``allowed_to_fail``: then the receipt is ok and carries a warning.
    """

    @property
    def name(self) -> str:
        return "shell"

    def is_available(self) -> bool:
        return shutil.which("sh") is not None

    def validate(self, action: ProcessExecute) -> tuple[bool, str]:
        if not isinstance(action, ProcessExecute):
            return False, f"Unsupported action kind: {action.kind}"
        if not action.command:
            return False, "Missing required param: 'command'"
        if action.working_dir and not Path(action.working_dir).is_dir():
            return False, f"Working directory does not exist: {action.working_dir}"
        return True, ""

    def execute(self, action: ProcessExecute) -> Receipt:
        aid = action_id(action)
        printable = shlex.join(action.command)
        logger.info("Running: %s", printable)

        try:
            result = run_subprocess(
                action.command,
                cwd=action.working_dir,
                env_overrides=action.env or None,
                stdin=action.stdin,
                interactive=action.interactive,
            )
        except Exception as e:
            return Receipt.failure(
                adapter=self.name,
                action_id=aid,
                error=f"Command execution error: {e}",
                metadata={"command": printable},
            )

        metadata = {"command": printable, "return_code": result.get("returncode")}
        if result["ok"]:
            return Receipt.success(
                adapter=self.name,
                action_id=aid,
                output=result.get("stdout", "").strip(),
                duration_ms=result.get("elapsed_ms", 0),
                metadata=metadata,
            )

        diagnostic = describe_failure(result)
        if action.allowed_to_fail:
            logger.warning("%s failed but is allowed to fail: %s", printable, diagnostic)
            return Receipt.success(
                adapter=self.name,
                action_id=aid,
                output=result.get("stdout", "").strip(),
                warning=f"{printable}: {diagnostic}",
                duration_ms=result.get("elapsed_ms", 0),
                metadata=metadata,
            )

        return Receipt.failure(
            adapter=self.name,
            action_id=aid,
            error=f"{printable}: {diagnostic}",
            duration_ms=result.get("elapsed_ms", 0),
            metadata=metadata,
        )
