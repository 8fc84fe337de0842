"""
Adapter registry — central dispatch for all host mutations.

The registry is the single point of adapter management. It handles
registration, lookup, mock mode, and action execution. The workflow
never talks to adapters directly — always through the registry.

``execute_action`` never raises and returns a Receipt. ``apply`` is the
variant steps use: it raises ``MutationError`` on a failed receipt so
the step runner can stop the workflow.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from src.adapters.base import Adapter
from src.core.errors import MutationError, MutationErrorKind
from src.core.models.action import Action, Receipt, action_id

logger = logging.getLogger(__name__)

_ERROR_KINDS = {
    "packages": MutationErrorKind.PACKAGE_MANAGER_FAILURE,
    "service": MutationErrorKind.SERVICE_ACTIVATION_FAILURE,
    "filesystem": MutationErrorKind.FILE_WRITE_FAILURE,
    "shell": MutationErrorKind.COMMAND_FAILURE,
}


class AdapterRegistry:
    """Central registry and dispatcher for adapters.

    Features:
        - Register adapters by name
        - Mock mode: route every action to one mock adapter
        - Execute actions through the adapter their kind names
        - Query adapter availability
    """

    def __init__(self, mock_mode: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode
        self._mock_adapter: Adapter | None = None

    @property
    def mock_mode(self) -> bool:
        return self._mock_mode

    def set_mock_mode(self, enabled: bool, mock_adapter: Adapter | None = None) -> None:
        """Enable or disable mock mode.

        Args:
            enabled: Whether to use mock mode.
            mock_adapter: Adapter receiving every action. If None, each
                action returns a plain success receipt.
        """
        self._mock_mode = enabled
        self._mock_adapter = mock_adapter

    def register(self, adapter: Adapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def unregister(self, name: str) -> None:
        self._adapters.pop(name, None)

    def get(self, name: str) -> Adapter | None:
        return self._adapters.get(name)

    def list_adapters(self) -> list[str]:
        return list(self._adapters.keys())

    def adapter_status(self) -> dict[str, dict[str, Any]]:
        """Availability of all registered adapters."""
        status = {}
        for name, adapter in self._adapters.items():
            try:
                available = adapter.is_available()
            except Exception:
                available = False
            status[name] = {
                "name": name,
                "available": available,
                "type": adapter.__class__.__name__,
            }
        return status

    def execute_action(self, action: Action) -> Receipt:
        """Execute an action through the appropriate adapter.

        1. Resolves the adapter (or mock)
        2. Validates the action
        3. Executes
        4. Returns a Receipt (never raises)
        """
        start_time = time.monotonic()
        aid = action_id(action)

        adapter: Adapter | None
        if self._mock_mode and self._mock_adapter:
            adapter = self._mock_adapter
        elif self._mock_mode:
            return Receipt.success(
                adapter=action.adapter,
                action_id=aid,
                output=f"[mock] {action.adapter}:{aid} executed",
                metadata={"mock": True},
            )
        else:
            adapter = self._adapters.get(action.adapter)

        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=aid,
                error=f"No adapter registered for '{action.adapter}'",
            )

        try:
            is_valid, error_msg = adapter.validate(action)
            if not is_valid:
                return Receipt.failure(
                    adapter=action.adapter,
                    action_id=aid,
                    error=f"Validation failed: {error_msg}",
                )
        except Exception as e:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=aid,
                error=f"Validation error: {e}",
            )

        try:
            receipt = adapter.execute(action)
        except Exception as e:
            logger.error("Adapter %s raised during execution: %s", action.adapter, e)
            receipt = Receipt.failure(
                adapter=action.adapter,
                action_id=aid,
                error=f"Unexpected error: {e}",
            )

        if not receipt.duration_ms:
            receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt

    def apply(self, action: Action) -> Receipt:
        """Execute ``action`` and raise on failure.

        Raises:
            MutationError: The receipt failed. The error kind follows
                the adapter (package manager, service, file, command).
        """
        receipt = self.execute_action(action)
        if receipt.failed:
            raise MutationError(
                _ERROR_KINDS.get(action.adapter, MutationErrorKind.COMMAND_FAILURE),
                receipt.error or "action failed",
                action_id=receipt.action_id,
            )
        if receipt.warning:
            logger.warning("%s: %s", receipt.action_id, receipt.warning)
        return receipt


def default_registry() -> AdapterRegistry:
    """Registry wired with the real host adapters."""
    from src.adapters.shell.command import ShellCommandAdapter
    from src.adapters.shell.filesystem import FilesystemAdapter
    from src.adapters.system.packages import AptPackageAdapter
    from src.adapters.system.services import SystemdServiceAdapter

    registry = AdapterRegistry()
    for adapter in (
        AptPackageAdapter(),
        SystemdServiceAdapter(),
        FilesystemAdapter(),
        ShellCommandAdapter(),
    ):
        registry.register(adapter)
    return registry
