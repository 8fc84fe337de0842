"""
Mock adapter — universal test double for all host mutations.

Used in mock mode to run whole workflows without touching the host.
Returns success by default; individual actions can be made to fail,
return a custom receipt, or run a side effect (for example create the
files a real command would have produced).
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from src.adapters.base import Adapter
from src.core.models.action import ProcessExecute, Receipt, action_id


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    Responses and side effects are keyed by action id (see
    ``action_id``), so ``"certbot"`` or ``"service_enable:nginx"``.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        available: bool = True,
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._available = available
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._side_effects: dict[str, Callable[[Any], None]] = {}
        self._call_log: list[Any] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[Any]:
        """Every action this mock has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    @property
    def commands(self) -> list[list[str]]:
        """Command lines of the ``ProcessExecute`` actions received."""
        return [a.command for a in self._call_log if isinstance(a, ProcessExecute)]

    def ids(self) -> list[str]:
        return [action_id(a) for a in self._call_log]

    def is_available(self) -> bool:
        return self._available

    def set_response(self, action_id: str, receipt: Receipt) -> None:
        self._responses[action_id] = receipt

    def set_failure(self, action_id: str, error: str = "Mock failure") -> None:
        """Configure a specific action to fail."""
        self._responses[action_id] = Receipt.failure(
            adapter=self._name,
            action_id=action_id,
            error=error,
        )

    def set_side_effect(self, action_id: str, effect: Callable[[Any], None]) -> None:
        """Run ``effect(action)`` whenever the action executes successfully."""
        self._side_effects[action_id] = effect

    def validate(self, action: Any) -> tuple[bool, str]:
        return True, ""

    def execute(self, action: Any) -> Receipt:
        self._call_log.append(action)
        aid = action_id(action)

        if aid in self._responses:
            return self._responses[aid]

        effect = self._side_effects.get(aid)
        if effect is not None:
            effect(action)

        return Receipt.success(
            adapter=self._name,
            action_id=aid,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log, custom responses and side effects."""
        self._call_log.clear()
        self._responses.clear()
        self._side_effects.clear()
