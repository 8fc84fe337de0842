"""
Host adapters — the only code that changes the machine.

Each adapter owns one family of system mutation actions (packages,
services, files, commands) and answers every action with a ``Receipt``:

    ok        the host now matches the action
    skipped   the host already matched; nothing was touched
    failed    the mutation did not happen; ``error`` says why

Adapters report, they do not raise. Turning a failed receipt into a
``MutationError`` is the registry's job (``AdapterRegistry.apply``), so
one adapter can be swapped for a ``MockAdapter`` without the workflow
noticing.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.core.models.action import Action, Receipt


class Adapter(ABC):
    """One family of host mutations behind a receipt-returning interface.

    Subclasses route on ``action.kind`` and must keep ``execute`` total:
    a missing binary, a non-zero exit or an ``OSError`` all end up in a
    failed receipt. When the host already satisfies an action the
    adapter returns ``Receipt.skip`` instead of mutating again.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Registry key; matches the ``adapter`` ClassVar of the actions it handles."""

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the backing tool (apt-get, systemctl, ...) exists on this host."""

    @abstractmethod
    def validate(self, action: Action) -> tuple[bool, str]:
        """Reject actions this adapter cannot apply, before anything runs.

        Returns:
            ``(True, "")`` or ``(False, reason)``.
        """

    @abstractmethod
    def execute(self, action: Action) -> Receipt:
        """Apply ``action`` and describe the result. Never raises."""

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"
