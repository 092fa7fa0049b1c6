"""Adapters — bindings to the external tools a run drives.

Public re-exports for convenient access.
"""

from provisioner.adapters.base import Adapter, ExecutionContext
from provisioner.adapters.mock import MockAdapter
from provisioner.adapters.registry import AdapterRegistry, default_registry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
    "default_registry",
]
