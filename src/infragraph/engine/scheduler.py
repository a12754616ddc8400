"""
Topological scheduler.

Drives every node of a DependencyGraph from NOT_STARTED to a terminal
state. A single coordinating coroutine owns the in-degree counters and is
the only place that dispatches work, so bookkeeping needs no locks. Each
dispatched node runs as its own asyncio task and only touches its own
execution record and output cells.

Dispatch rules:
- a node whose predecessors have all Succeeded is dispatched immediately,
  without waiting on unrelated branches
- when a node Fails, every descendant is marked SKIPPED and never reaches
  its provider
- after ``cancel()`` no new node is dispatched; in-flight nodes finish and
  everything left over is SKIPPED
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from infragraph.config.settings import Settings, get_settings
from infragraph.core.errors import (
    DependencyFailure,
    InputResolutionError,
    PermanentProviderError,
    ProviderError,
    ProviderTimeoutError,
    StateTransitionError,
    TransientProviderError,
)
from infragraph.engine.cell import resolve_nested
from infragraph.engine.descriptor import ResourceHandle, ResourceId
from infragraph.engine.graph import DependencyGraph
from infragraph.providers.base import ProviderAdapter
from infragraph.providers.registry import ProviderRegistry

logger = structlog.get_logger()


class ExecutionState(Enum):
    """Per-node execution state."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (ExecutionState.SUCCEEDED, ExecutionState.FAILED, ExecutionState.SKIPPED)


_TRANSITIONS: dict[ExecutionState, frozenset[ExecutionState]] = {
    ExecutionState.NOT_STARTED: frozenset({ExecutionState.RUNNING, ExecutionState.SKIPPED}),
    ExecutionState.RUNNING: frozenset({ExecutionState.SUCCEEDED, ExecutionState.FAILED}),
}


@dataclass
class NodeExecution:
    """Mutable execution record for one node."""

    resource: ResourceId
    state: ExecutionState = ExecutionState.NOT_STARTED
    attempts: int = 0
    outputs: Mapping[str, Any] | None = None
    error: BaseException | None = None
    skipped_because: ResourceId | None = None
    skip_reason: str | None = None
    started_at: float | None = None
    finished_at: float | None = None

    def transition(self, new_state: ExecutionState) -> None:
        if new_state not in _TRANSITIONS.get(self.state, frozenset()):
            raise StateTransitionError(
                f"{self.resource}: cannot move from {self.state.value} to {new_state.value}",
                details={"resource": str(self.resource)},
            )
        self.state = new_state
        now = time.monotonic()
        if new_state is ExecutionState.RUNNING:
            self.started_at = now
        elif new_state.terminal:
            self.finished_at = now

    @property
    def duration(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return self.finished_at - self.started_at


@dataclass(frozen=True)
class NodeEvent:
    """Notification emitted on every node state change."""

    resource: ResourceId
    state: ExecutionState
    attempt: int = 0
    error: BaseException | None = None


NodeListener = Callable[[NodeEvent], None]


class Scheduler:
    """Runs a dependency graph to completion against a provider registry."""

    def __init__(
        self,
        graph: DependencyGraph,
        registry: ProviderRegistry,
        settings: Settings | None = None,
        *,
        handles: Mapping[ResourceId, ResourceHandle] | None = None,
        listeners: Iterable[NodeListener] = (),
    ) -> None:
        self._graph = graph
        self._registry = registry
        self._settings = settings or get_settings()
        self._listeners = list(listeners)
        self._handles: dict[ResourceId, ResourceHandle] = dict(handles or {})
        for rid, descriptor in graph.nodes.items():
            self._handles.setdefault(rid, ResourceHandle(descriptor))
        self.executions: dict[ResourceId, NodeExecution] = {
            rid: NodeExecution(rid) for rid in graph.nodes
        }
        self._cancel_reason: str | None = None
        self._started = False

    @property
    def cancelled(self) -> bool:
        return self._cancel_reason is not None

    def cancel(self, reason: str = "cancelled") -> None:
        """Stop dispatching new nodes; in-flight nodes run to completion."""
        if self._cancel_reason is None:
            self._cancel_reason = reason
            logger.warning("run_cancelled", reason=reason)

    def handle(self, resource: ResourceId) -> ResourceHandle:
        return self._handles[resource]

    # ------------------------------------------------------------------
    # Coordinator
    # ------------------------------------------------------------------

    async def run(self) -> dict[ResourceId, NodeExecution]:
        """Drive every node to a terminal state and return the execution records."""
        if self._started:
            raise StateTransitionError("Scheduler can only run once")
        self._started = True

        # Every kind must have an adapter before anything is provisioned
        self._registry.check(rid.kind for rid in self._graph.nodes)

        semaphore = (
            asyncio.Semaphore(self._settings.max_parallelism)
            if self._settings.max_parallelism
            else None
        )
        in_degree = {rid: len(self._graph.predecessors(rid)) for rid in self._graph.nodes}
        running: dict[asyncio.Task[None], ResourceId] = {}

        def dispatch(rid: ResourceId) -> None:
            execution = self.executions[rid]
            execution.transition(ExecutionState.RUNNING)
            self._emit(execution)
            logger.debug("node_dispatched", resource=str(rid))
            task = asyncio.create_task(self._provision(rid, semaphore), name=str(rid))
            running[task] = rid

        for rid in self._graph.nodes:
            if in_degree[rid] == 0 and not self.cancelled:
                dispatch(rid)

        try:
            while running:
                done, _ = await asyncio.wait(running, return_when=asyncio.FIRST_COMPLETED)
                for task in self._in_declaration_order(done, running):
                    rid = running.pop(task)
                    if self.executions[rid].state is ExecutionState.SUCCEEDED:
                        for succ in self._graph.successors(rid):
                            in_degree[succ] -= 1
                            ready = (
                                in_degree[succ] == 0
                                and self.executions[succ].state is ExecutionState.NOT_STARTED
                            )
                            if ready and not self.cancelled:
                                dispatch(succ)
                    else:
                        self._skip_descendants(rid)
                        if self._settings.fail_fast:
                            self.cancel("fail_fast")
        except asyncio.CancelledError:
            self.cancel("interrupted")
            if running:
                for task in running:
                    task.cancel()
                await asyncio.gather(*running, return_exceptions=True)
                for task, rid in running.items():
                    execution = self.executions[rid]
                    # A task cancelled before its first step never reaches its handlers
                    if execution.state is ExecutionState.RUNNING:
                        self._fail(
                            execution,
                            ProviderError(f"Provisioning of {rid} was cancelled"),
                            logger.bind(resource=str(rid)),
                        )
                    if execution.state is not ExecutionState.SUCCEEDED:
                        self._skip_descendants(rid)
            self._skip_undispatched()
            raise

        self._skip_undispatched()
        return self.executions

    def _in_declaration_order(
        self,
        done: Iterable[asyncio.Task[None]],
        running: Mapping[asyncio.Task[None], ResourceId],
    ) -> list[asyncio.Task[None]]:
        position = {rid: i for i, rid in enumerate(self._graph.nodes)}
        return sorted(done, key=lambda task: position[running[task]])

    def _skip_descendants(self, failed: ResourceId) -> None:
        for rid in self._graph.descendants(failed):
            execution = self.executions[rid]
            if execution.state is ExecutionState.NOT_STARTED:
                self._skip(execution, cause=failed, reason="dependency_failed")

    def _skip_undispatched(self) -> None:
        reason = self._cancel_reason or "not_reached"
        for execution in self.executions.values():
            if execution.state is ExecutionState.NOT_STARTED:
                self._skip(execution, cause=None, reason=reason)

    def _skip(self, execution: NodeExecution, cause: ResourceId | None, reason: str) -> None:
        execution.transition(ExecutionState.SKIPPED)
        execution.skipped_because = cause
        execution.skip_reason = reason
        failure = DependencyFailure(cause, reason)
        execution.error = failure
        self._handles[execution.resource].outputs.reject(failure)
        logger.info(
            "node_skipped",
            resource=str(execution.resource),
            cause=str(cause) if cause else None,
            reason=reason,
        )
        self._emit(execution)

    # ------------------------------------------------------------------
    # Per-node task
    # ------------------------------------------------------------------

    async def _provision(self, rid: ResourceId, semaphore: asyncio.Semaphore | None) -> None:
        execution = self.executions[rid]
        descriptor = self._graph.nodes[rid]
        log = logger.bind(resource=str(rid))

        try:
            inputs = await resolve_nested(dict(descriptor.inputs))
        except asyncio.CancelledError:
            self._fail(execution, ProviderError(f"Provisioning of {rid} was cancelled"), log)
            raise
        except Exception as e:
            self._fail(execution, InputResolutionError(rid, e), log)
            return

        adapter = self._registry.get(rid.kind)
        timeout = descriptor.timeout
        if timeout is None:
            timeout = self._settings.provider_timeout_seconds

        try:
            if semaphore is not None:
                async with semaphore:
                    outputs = await self._call_with_deadline(adapter, execution, inputs, timeout)
            else:
                outputs = await self._call_with_deadline(adapter, execution, inputs, timeout)
        except asyncio.CancelledError:
            self._fail(execution, ProviderError(f"Provisioning of {rid} was cancelled"), log)
            raise
        except Exception as e:
            self._fail(execution, e, log)
            return

        if not isinstance(outputs, Mapping):
            error = PermanentProviderError(
                f"Provider returned {type(outputs).__name__} for {rid}, expected a mapping",
                details={"resource": str(rid)},
            )
            self._fail(execution, error, log)
            return

        execution.outputs = dict(outputs)
        execution.transition(ExecutionState.SUCCEEDED)
        log.info("node_succeeded", attempts=execution.attempts, duration=round(execution.duration, 3))
        self._handles[rid].outputs.resolve(execution.outputs)
        self._emit(execution)

    async def _call_with_deadline(
        self,
        adapter: ProviderAdapter,
        execution: NodeExecution,
        inputs: dict[str, Any],
        timeout: float | None,
    ) -> Mapping[str, Any]:
        if timeout is None:
            return await self._call_with_retry(adapter, execution, inputs)
        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                return await self._call_with_retry(adapter, execution, inputs)
        except TimeoutError as e:
            # Only the node deadline becomes a provider timeout
            if deadline.expired():
                raise ProviderTimeoutError(execution.resource, timeout) from e
            raise

    async def _call_with_retry(
        self,
        adapter: ProviderAdapter,
        execution: NodeExecution,
        inputs: dict[str, Any],
    ) -> Mapping[str, Any]:
        settings = self._settings
        rid = execution.resource

        def _before_sleep(retry_state: Any) -> None:
            logger.warning(
                "node_retrying",
                resource=str(rid),
                attempt=retry_state.attempt_number,
                error=str(retry_state.outcome.exception()),
            )

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientProviderError),
            stop=stop_after_attempt(settings.retry_max_attempts),
            wait=wait_exponential(
                multiplier=settings.retry_backoff_multiplier,
                min=settings.retry_backoff_min_seconds,
                max=settings.retry_backoff_max_seconds,
            ),
            before_sleep=_before_sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                execution.attempts += 1
                if execution.attempts > 1:
                    self._emit(execution)
                return await adapter.create(rid.kind, inputs)
        raise AssertionError("unreachable")  # pragma: no cover

    def _fail(self, execution: NodeExecution, error: BaseException, log: Any) -> None:
        execution.error = error
        execution.transition(ExecutionState.FAILED)
        log.error(
            "node_failed",
            error_type=type(error).__name__,
            error_kind=getattr(error, "kind", None),
            error=str(error),
            attempts=execution.attempts,
        )
        self._handles[execution.resource].outputs.reject(error)
        self._emit(execution)

    def _emit(self, execution: NodeExecution) -> None:
        event = NodeEvent(
            resource=execution.resource,
            state=execution.state,
            attempt=execution.attempts,
            error=execution.error,
        )
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("node_listener_error", resource=str(execution.resource))
