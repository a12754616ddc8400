from __future__ import annotations

from typing import Any, Mapping, Protocol, runtime_checkable


@runtime_checkable
class ProviderAdapter(Protocol):
    """
    Contract for the collaborator that actually provisions resources.

    ``create`` receives fully resolved literal inputs and returns the
    resource's outputs. Adapters signal retryable failures (network errors,
    throttling) with TransientProviderError; anything else, including
    PermanentProviderError for validation problems, is never retried.
    Implementations must be safe to call concurrently for independent
    resources and idempotent under retry.
    """

    async def create(self, kind: str, inputs: Mapping[str, Any]) -> Mapping[str, Any]:
        ...
