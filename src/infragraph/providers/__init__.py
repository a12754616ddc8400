"""Provider adapter contract, registry and the in-memory adapter."""

from infragraph.providers.base import ProviderAdapter
from infragraph.providers.memory import InMemoryProvider, ProvisionCall
from infragraph.providers.registry import ProviderRegistry, ProviderSpec

__all__ = [
    "InMemoryProvider",
    "ProviderAdapter",
    "ProviderRegistry",
    "ProviderSpec",
    "ProvisionCall",
]
