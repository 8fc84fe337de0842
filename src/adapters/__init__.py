"""Adapters — bindings to the host's package manager, service manager,
filesystem and external commands.

Public re-exports for convenient access.
"""

from src.adapters.base import Adapter
from src.adapters.mock import MockAdapter
from src.adapters.registry import AdapterRegistry, default_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "MockAdapter",
    "default_registry",
]
