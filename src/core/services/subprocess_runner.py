"""
Subprocess runner — the single place where ``subprocess.run`` is called
for host mutations and probes. All logging and error handling is
centralised here.
"""

from __future__ import annotations

import logging
import os
import shlex
import subprocess
import time
from typing import Any

from pydantic import SecretStr

logger = logging.getLogger(__name__)

# Keep receipts and logs readable when a tool is chatty.
_OUTPUT_TAIL = 2000


def run_subprocess(
    cmd: list[str],
    *,
    cwd: str | None = None,
    env_overrides: dict[str, str] | None = None,
    secret_env: dict[str, SecretStr] | None = None,
    stdin: SecretStr | None = None,
    interactive: bool = False,
    timeout: float | None = None,
) -> dict[str, Any]:
    """Run a command and report the outcome as a dict.

    Security invariants:
    - Secret payloads travel via stdin or ``secret_env`` only
    - They are never logged and never appear in the command args

    No timeout is applied unless the caller asks for one: a hung
    package manager or certificate client blocks the workflow.

    Args:
        cmd: Command list for ``subprocess.run()``.
        cwd: Working directory for the command.
        env_overrides: Extra (non-secret) env vars.
        secret_env: Env vars holding secrets (e.g. ``MYSQL_PWD``).
        stdin: Payload piped to the command's stdin.
        interactive: Attach to the terminal instead of capturing output.
        timeout: Seconds before ``TimeoutExpired`` (None = wait forever).

    Returns:
        ``{"ok": True, "returncode": 0, "stdout": "...", "stderr": "...",
        "elapsed_ms": N}`` or ``{"ok": False, "error": "...", ...}``.
    """
    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)
    if secret_env:
        env.update({key: value.get_secret_value() for key, value in secret_env.items()})

    logger.debug("Executing: %s (cwd=%s)", shlex.join(cmd), cwd)
    start = time.monotonic()
    try:
        if interactive:
            result = subprocess.run(cmd, cwd=cwd, env=env, timeout=timeout)
            stdout = stderr = ""
        else:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                env=env,
                capture_output=True,
                text=True,
                input=stdin.get_secret_value() if stdin is not None else None,
                timeout=timeout,
            )
            stdout = (result.stdout or "")[-_OUTPUT_TAIL:]
            stderr = (result.stderr or "")[-_OUTPUT_TAIL:]
    except subprocess.TimeoutExpired:
        return {"ok": False, "returncode": None, "error": f"Command timed out ({timeout}s)"}
    except FileNotFoundError:
        return {"ok": False, "returncode": None, "error": f"Command not found: {cmd[0]}"}
    except OSError as e:
        logger.exception("Subprocess error: %s", cmd[0])
        return {"ok": False, "returncode": None, "error": str(e)}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    if result.returncode == 0:
        return {
            "ok": True,
            "returncode": 0,
            "stdout": stdout,
            "stderr": stderr,
            "elapsed_ms": elapsed_ms,
        }

    logger.debug("Command %s exited %d: %s", cmd[0], result.returncode, stderr.strip())
    return {
        "ok": False,
        "returncode": result.returncode,
        "error": f"Command failed (exit {result.returncode})",
        "stdout": stdout,
        "stderr": stderr,
        "elapsed_ms": elapsed_ms,
    }


def describe_failure(result: dict[str, Any]) -> str:
    """Best one-paragraph diagnostic for a failed run."""
    detail = (result.get("stderr") or result.get("stdout") or "").strip()
    error = result.get("error", "Command failed")
    if detail:
        return f"{error}: {detail.splitlines()[-1]}"
    return error
