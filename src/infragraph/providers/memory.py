"""
In-memory provider adapter for local runs, demos and tests.

Fabricates outputs instead of calling a cloud API, records every call, and
can be scripted to fail or to take time so retry, timeout and concurrency
behaviour can be exercised without real infrastructure.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Mapping

import structlog

logger = structlog.get_logger()

OutputFactory = Callable[[Mapping[str, Any]], Mapping[str, Any]]
InputMatcher = Callable[[Mapping[str, Any]], bool]


@dataclass
class ProvisionCall:
    """A single ``create`` invocation seen by the provider."""

    kind: str
    inputs: Dict[str, Any]
    started_at: float
    finished_at: float | None = None
    error: BaseException | None = None


@dataclass
class _ScriptedFailure:
    error: BaseException
    remaining: int
    when: InputMatcher | None = None


@dataclass
class InMemoryProvider:
    """Asyncio-friendly fake provider keyed by resource kind."""

    factories: Dict[str, OutputFactory] = field(default_factory=dict)
    latency: float = 0.0
    latencies: Dict[str, float] = field(default_factory=dict)
    calls: List[ProvisionCall] = field(default_factory=list)
    max_active: int = 0

    def __post_init__(self) -> None:
        self._failures: Dict[str, Deque[_ScriptedFailure]] = {}
        self._active = 0
        self._ids = itertools.count(1)

    def on(self, kind: str, factory: OutputFactory) -> InMemoryProvider:
        """Use ``factory(inputs)`` to build outputs for ``kind``."""
        self.factories[kind] = factory
        return self

    def fail(
        self,
        kind: str,
        error: BaseException,
        *,
        times: int = 1,
        when: InputMatcher | None = None,
    ) -> InMemoryProvider:
        """Raise ``error`` for the next ``times`` matching calls of ``kind``."""
        self._failures.setdefault(kind, deque()).append(
            _ScriptedFailure(error=error, remaining=times, when=when)
        )
        return self

    def delay(self, kind: str, seconds: float) -> InMemoryProvider:
        self.latencies[kind] = seconds
        return self

    def calls_for(self, kind: str) -> List[ProvisionCall]:
        return [call for call in self.calls if call.kind == kind]

    async def create(self, kind: str, inputs: Mapping[str, Any]) -> Mapping[str, Any]:
        call = ProvisionCall(kind=kind, inputs=dict(inputs), started_at=time.monotonic())
        self.calls.append(call)
        self._active += 1
        self.max_active = max(self.max_active, self._active)
        try:
            wait = self.latencies.get(kind, self.latency)
            if wait:
                await asyncio.sleep(wait)

            failure = self._take_failure(kind, inputs)
            if failure is not None:
                call.error = failure
                logger.debug("memory_provider_failure", kind=kind, error=str(failure))
                raise failure

            factory = self.factories.get(kind)
            if factory is not None:
                outputs = dict(factory(inputs))
            else:
                outputs = dict(inputs)
            outputs.setdefault("id", f"{kind.rsplit(':', 1)[-1].lower()}-{next(self._ids)}")
            return outputs
        finally:
            self._active -= 1
            call.finished_at = time.monotonic()

    def _take_failure(self, kind: str, inputs: Mapping[str, Any]) -> BaseException | None:
        queue = self._failures.get(kind)
        if not queue:
            return None
        for scripted in list(queue):
            if scripted.when is not None and not scripted.when(inputs):
                continue
            scripted.remaining -= 1
            if scripted.remaining <= 0:
                queue.remove(scripted)
            return scripted.error
        return None
