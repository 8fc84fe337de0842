"""
Service adapter — systemd units.

``systemctl enable --now`` is idempotent by systemd's own contract, so
``ServiceEnable`` simply re-issues it. ``ServiceControl`` covers the
one-off operations the workflow needs (stop the web server for the
certificate challenge, restart it afterwards, daemon-reload after a
unit file changes). With ``only_if_active`` an operation is skipped when
the unit is not running, so a first install never starts a consumer
early.
"""

from __future__ import annotations

import logging
import shutil

from src.adapters.base import Adapter
from src.core.models.action import Receipt, ServiceControl, ServiceEnable, action_id
from src.core.services.subprocess_runner import describe_failure, run_subprocess

logger = logging.getLogger(__name__)


class SystemdServiceAdapter(Adapter):
    """Apply ``ServiceEnable`` and ``ServiceControl`` actions."""

    @property
    def name(self) -> str:
        return "service"

    def is_available(self) -> bool:
        return shutil.which("systemctl") is not None

    def validate(self, action: ServiceEnable | ServiceControl) -> tuple[bool, str]:
        if not isinstance(action, (ServiceEnable, ServiceControl)):
            return False, f"Unsupported action kind: {action.kind}"
        needs_name = isinstance(action, ServiceEnable) or action.operation != "daemon-reload"
        if needs_name and not action.name:
            return False, "Missing required param: 'name'"
        return True, ""

    def execute(self, action: ServiceEnable | ServiceControl) -> Receipt:
        aid = action_id(action)
        if isinstance(action, ServiceEnable):
            cmd = ["systemctl", "enable", action.name]
            if action.start:
                cmd.insert(2, "--now")
        elif action.operation == "daemon-reload":
            cmd = ["systemctl", "daemon-reload"]
        else:
            cmd = ["systemctl", action.operation, action.name]
            probe = ["systemctl", "is-active", "--quiet", action.name]
            if action.only_if_active and not run_subprocess(probe)["ok"]:
                logger.debug("%s not active; skipping %s", action.name, action.operation)
                return Receipt.skip(adapter=self.name, action_id=aid, reason=f"{action.name} is not active")

        logger.info("%s", " ".join(cmd))
        result = run_subprocess(cmd)
        if result["ok"]:
            return Receipt.success(
                adapter=self.name,
                action_id=aid,
                output=result.get("stdout", "").strip(),
                duration_ms=result.get("elapsed_ms", 0),
                metadata={"command": " ".join(cmd)},
            )
        return Receipt.failure(
            adapter=self.name,
            action_id=aid,
            error=f"{' '.join(cmd)}: {describe_failure(result)}",
            metadata={"command": " ".join(cmd)},
        )
