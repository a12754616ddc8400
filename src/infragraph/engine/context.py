"""
Run context: the declaration interface exposed to infrastructure programs.

A RunContext is created per invocation, collects descriptors and export
bindings while the program runs, then drives them through the builder,
scheduler and reporter exactly once. There is no process-wide current
run; programs receive the context explicitly.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Iterable, Mapping

import structlog

from infragraph.config.settings import Settings, get_settings
from infragraph.core.errors import DeclarationError
from infragraph.engine.descriptor import (
    ResourceDescriptor,
    ResourceHandle,
    ResourceId,
    dependency_ids,
)
from infragraph.engine.graph import DependencyGraph, GraphBuilder
from infragraph.engine.reporter import ConvergenceReporter, RunReport
from infragraph.engine.scheduler import NodeListener, Scheduler
from infragraph.providers.registry import ProviderRegistry

logger = structlog.get_logger()


class RunContext:
    """Collects resource declarations and exports for a single run."""

    def __init__(self, stack: str = "dev", settings: Settings | None = None) -> None:
        self.stack = stack
        self._settings = settings
        self._descriptors: list[ResourceDescriptor] = []
        self._handles: dict[ResourceId, ResourceHandle] = {}
        self._exports: dict[str, Any] = {}
        self._scheduler: Scheduler | None = None
        self._ran = False

    # === Declaration interface ===

    def declare(
        self,
        name: str,
        kind: str,
        inputs: Mapping[str, Any] | None = None,
        depends_on: Iterable[ResourceHandle | ResourceId] = (),
        *,
        timeout: float | None = None,
    ) -> ResourceHandle:
        """Register a resource and return a handle whose fields are value cells."""
        if self._ran:
            raise DeclarationError(
                f"Cannot declare {kind}::{name} after the run has started",
                details={"stack": self.stack},
            )
        if not name or not kind:
            raise DeclarationError("Resources need both a name and a kind")
        if timeout is not None and timeout <= 0:
            raise DeclarationError(
                f"Timeout for {kind}::{name} must be positive, got {timeout}",
                details={"resource": f"{kind}::{name}"},
            )

        descriptor = ResourceDescriptor(
            id=ResourceId(kind=kind, name=name),
            inputs=dict(inputs or {}),
            depends_on=dependency_ids(depends_on),
            timeout=timeout,
        )
        handle = ResourceHandle(descriptor)
        self._descriptors.append(descriptor)
        # Duplicates are reported by the graph builder; the first handle wins
        self._handles.setdefault(descriptor.id, handle)
        logger.debug("resource_declared", resource=str(descriptor.id))
        return handle

    def export(self, name: str, value: Any) -> None:
        """Bind an export name to a value cell (or literal)."""
        if name in self._exports:
            raise DeclarationError(f"Duplicate export '{name}'", details={"export": name})
        self._exports[name] = value

    @property
    def descriptors(self) -> list[ResourceDescriptor]:
        return list(self._descriptors)

    @property
    def exports(self) -> dict[str, Any]:
        return dict(self._exports)

    def handle(self, resource: ResourceId) -> ResourceHandle:
        return self._handles[resource]

    def build_graph(self) -> DependencyGraph:
        return GraphBuilder().build(self._descriptors)

    # === Execution ===

    async def run(
        self,
        registry: ProviderRegistry,
        *,
        listeners: Iterable[NodeListener] = (),
    ) -> RunReport:
        """Build the graph, provision everything, and report convergence."""
        if self._ran:
            raise DeclarationError(
                "Run context has already been run", details={"stack": self.stack}
            )
        self._ran = True
        settings = self._settings or get_settings()

        with structlog.contextvars.bound_contextvars(stack=self.stack):
            graph = self.build_graph()
            scheduler = Scheduler(
                graph,
                registry,
                settings,
                handles=self._handles,
                listeners=listeners,
            )
            self._scheduler = scheduler
            logger.info("run_started", resources=len(graph), edges=len(graph.edges))

            start = time.monotonic()
            try:
                executions = await scheduler.run()
            finally:
                self._scheduler = None

            report = ConvergenceReporter(graph, executions).build(
                self.stack,
                self._exports,
                duration=time.monotonic() - start,
                cancelled=scheduler.cancelled,
            )
            logger.info(
                "run_completed",
                status=report.status.value,
                duration=round(report.duration_seconds, 3),
                **report.counts,
            )
        return report

    def up(
        self,
        registry: ProviderRegistry,
        *,
        listeners: Iterable[NodeListener] = (),
    ) -> RunReport:
        """Synchronous wrapper around ``run`` for scripts and the CLI."""
        return asyncio.run(self.run(registry, listeners=listeners))

    def cancel(self, reason: str = "cancelled") -> None:
        """Stop dispatching new resources in the active run."""
        if self._scheduler is not None:
            self._scheduler.cancel(reason)
