"""infragraph: dependency graph and deferred-value engine for infrastructure programs."""

from infragraph.engine import (
    MISSING,
    ExecutionState,
    ResourceHandle,
    ResourceId,
    RunContext,
    RunReport,
    ValueCell,
    apply,
    combine,
)
from infragraph.providers import InMemoryProvider, ProviderAdapter, ProviderRegistry

__version__ = "0.1.0"

__all__ = [
    "MISSING",
    "ExecutionState",
    "InMemoryProvider",
    "ProviderAdapter",
    "ProviderRegistry",
    "ResourceHandle",
    "ResourceId",
    "RunContext",
    "RunReport",
    "ValueCell",
    "apply",
    "combine",
]
