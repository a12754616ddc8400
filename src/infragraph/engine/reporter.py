"""Convergence reporting: run summary and exported values."""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, Iterator, List, Mapping

from infragraph.engine.cell import ValueCell, find_cells
from infragraph.engine.descriptor import ResourceHandle, ResourceId
from infragraph.engine.graph import DependencyGraph
from infragraph.engine.scheduler import ExecutionState, NodeExecution


class _Missing:
    """Marker for an export whose source resource did not succeed."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "<missing>"


MISSING = _Missing()


class RunStatus(StrEnum):
    """Overall outcome of a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ExportMap(MappingABC):
    """Exported values by name; unavailable exports map to ``MISSING``."""

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values: Dict[str, Any] = dict(values or {})

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def is_missing(self, name: str) -> bool:
        return self._values[name] is MISSING

    def missing(self) -> List[str]:
        """Names of exports without a value."""
        return [name for name, value in self._values.items() if value is MISSING]

    def resolved(self) -> Dict[str, Any]:
        """Only the exports that carry a value."""
        return {name: value for name, value in self._values.items() if value is not MISSING}

    def __repr__(self) -> str:
        return f"ExportMap({self._values!r})"


@dataclass
class NodeOutcome:
    """Final state of one resource."""

    resource: ResourceId
    state: ExecutionState
    attempts: int = 0
    duration_seconds: float = 0.0
    error: BaseException | None = None
    skipped_because: ResourceId | None = None
    skip_reason: str | None = None

    @property
    def error_kind(self) -> str | None:
        if self.error is None:
            return None
        return getattr(self.error, "kind", type(self.error).__name__)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "resource": str(self.resource),
            "kind": self.resource.kind,
            "name": self.resource.name,
            "state": self.state.value,
            "attempts": self.attempts,
            "duration_seconds": round(self.duration_seconds, 3),
        }
        if self.state is ExecutionState.FAILED:
            data["error"] = str(self.error)
            data["error_kind"] = self.error_kind
        if self.state is ExecutionState.SKIPPED:
            data["skipped_because"] = str(self.skipped_because) if self.skipped_because else None
            data["skip_reason"] = self.skip_reason
        return data


@dataclass
class FailureChain:
    """A failed resource and the dependents skipped because of it."""

    failed: ResourceId
    error: BaseException | None
    skipped: List[ResourceId] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failed": str(self.failed),
            "error": str(self.error),
            "skipped": [str(rid) for rid in self.skipped],
        }


@dataclass
class RunReport:
    """Result of driving a dependency graph to convergence."""

    stack: str
    outcomes: Dict[ResourceId, NodeOutcome] = field(default_factory=dict)
    exports: ExportMap = field(default_factory=ExportMap)
    failures: List[FailureChain] = field(default_factory=list)
    duration_seconds: float = 0.0
    cancelled: bool = False

    def _with_state(self, state: ExecutionState) -> List[ResourceId]:
        return [rid for rid, outcome in self.outcomes.items() if outcome.state is state]

    @property
    def succeeded(self) -> List[ResourceId]:
        return self._with_state(ExecutionState.SUCCEEDED)

    @property
    def failed(self) -> List[ResourceId]:
        return self._with_state(ExecutionState.FAILED)

    @property
    def skipped(self) -> List[ResourceId]:
        return self._with_state(ExecutionState.SKIPPED)

    @property
    def counts(self) -> Dict[str, int]:
        return {
            "succeeded": len(self.succeeded),
            "failed": len(self.failed),
            "skipped": len(self.skipped),
        }

    @property
    def status(self) -> RunStatus:
        if all(outcome.state is ExecutionState.SUCCEEDED for outcome in self.outcomes.values()):
            return RunStatus.SUCCEEDED
        return RunStatus.FAILED

    @property
    def success(self) -> bool:
        return self.status is RunStatus.SUCCEEDED

    @property
    def first_failure(self) -> FailureChain | None:
        return self.failures[0] if self.failures else None

    def state_of(self, resource: ResourceId) -> ExecutionState:
        return self.outcomes[resource].state

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stack": self.stack,
            "status": self.status.value,
            "cancelled": self.cancelled,
            "duration_seconds": round(self.duration_seconds, 3),
            "counts": self.counts,
            "resources": [outcome.to_dict() for outcome in self.outcomes.values()],
            "failures": [chain.to_dict() for chain in self.failures],
            "exports": {
                name: (None if value is MISSING else value) for name, value in self.exports.items()
            },
            "missing_exports": self.exports.missing(),
        }


class ConvergenceReporter:
    """Builds the RunReport from the scheduler's execution records."""

    def __init__(self, graph: DependencyGraph, executions: Mapping[ResourceId, NodeExecution]) -> None:
        self._graph = graph
        self._executions = executions

    def build(
        self,
        stack: str,
        exports: Mapping[str, Any],
        *,
        duration: float = 0.0,
        cancelled: bool = False,
    ) -> RunReport:
        outcomes = {
            rid: NodeOutcome(
                resource=rid,
                state=execution.state,
                attempts=execution.attempts,
                duration_seconds=execution.duration,
                error=execution.error,
                skipped_because=execution.skipped_because,
                skip_reason=execution.skip_reason,
            )
            for rid, execution in self._executions.items()
        }
        return RunReport(
            stack=stack,
            outcomes=outcomes,
            exports=self.build_exports(exports),
            failures=self._failure_chains(),
            duration_seconds=duration,
            cancelled=cancelled,
        )

    def build_exports(self, bindings: Mapping[str, Any]) -> ExportMap:
        return ExportMap({name: self._materialize(value) for name, value in bindings.items()})

    def _materialize(self, value: Any) -> Any:
        cells = find_cells(value)
        for cell in cells:
            if not cell.is_resolved or not self._sources_succeeded(cell):
                return MISSING
        return _substitute(value)

    def _sources_succeeded(self, cell: ValueCell[Any]) -> bool:
        for rid in cell.sources:
            execution = self._executions.get(rid)
            if execution is None or execution.state is not ExecutionState.SUCCEEDED:
                return False
        return True

    def _failure_chains(self) -> List[FailureChain]:
        failed = [
            execution
            for execution in self._executions.values()
            if execution.state is ExecutionState.FAILED
        ]
        failed.sort(key=lambda execution: execution.finished_at or 0.0)

        order = self._graph.topological_order()
        chains = []
        for execution in failed:
            skipped = [
                rid
                for rid in order
                if self._executions[rid].skipped_because == execution.resource
            ]
            chains.append(
                FailureChain(failed=execution.resource, error=execution.error, skipped=skipped)
            )
        return chains


def _substitute(value: Any) -> Any:
    if isinstance(value, ValueCell):
        return value.value
    if isinstance(value, ResourceHandle):
        return dict(value.outputs.value)
    if isinstance(value, MappingABC):
        return {key: _substitute(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_substitute(item) for item in value)
    if isinstance(value, (set, frozenset)):
        return type(value)(_substitute(item) for item in value)
    return value
