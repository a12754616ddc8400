from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List

from infragraph.core.errors import MissingProviderError
from infragraph.providers.base import ProviderAdapter


@dataclass(frozen=True)
class ProviderSpec:
    """Metadata describing a registered provider adapter."""

    key: str
    adapter: ProviderAdapter
    description: str | None = None


class ProviderRegistry:
    """
    In-memory registry mapping resource kinds to provider adapters.

    Lookup tries the exact kind first, then the package prefix before the
    first ``:`` (``aws`` serves ``aws:ec2/securityGroup:SecurityGroup``),
    then the default adapter if one was set.
    """

    def __init__(self, default: ProviderAdapter | None = None) -> None:
        self._providers: Dict[str, ProviderSpec] = {}
        self._default = default

    def register(
        self,
        key: str,
        adapter: ProviderAdapter,
        *,
        description: str | None = None,
    ) -> None:
        if not key:
            raise ValueError("Provider key is required")
        self._providers[key] = ProviderSpec(key=key, adapter=adapter, description=description)

    def set_default(self, adapter: ProviderAdapter | None) -> None:
        self._default = adapter

    def resolve(self, kind: str) -> ProviderAdapter | None:
        spec = self._providers.get(kind)
        if spec is None and ":" in kind:
            spec = self._providers.get(kind.split(":", 1)[0])
        if spec is not None:
            return spec.adapter
        return self._default

    def get(self, kind: str) -> ProviderAdapter:
        adapter = self.resolve(kind)
        if adapter is None:
            raise MissingProviderError([kind])
        return adapter

    def check(self, kinds: Iterable[str]) -> None:
        """Raise MissingProviderError naming every kind without an adapter."""
        missing = sorted({kind for kind in kinds if self.resolve(kind) is None})
        if missing:
            raise MissingProviderError(missing)

    def list(self) -> List[ProviderSpec]:
        return list(self._providers.values())
