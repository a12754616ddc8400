"""Engine package: value cells, the dependency graph and its scheduler."""

from infragraph.engine.cell import CellState, ValueCell, apply, combine
from infragraph.engine.context import RunContext
from infragraph.engine.descriptor import ResourceDescriptor, ResourceHandle, ResourceId
from infragraph.engine.graph import DependencyGraph, EdgeKind, GraphBuilder
from infragraph.engine.reporter import (
    MISSING,
    ConvergenceReporter,
    ExportMap,
    FailureChain,
    NodeOutcome,
    RunReport,
    RunStatus,
)
from infragraph.engine.scheduler import ExecutionState, NodeEvent, NodeExecution, Scheduler

__all__ = [
    "MISSING",
    "CellState",
    "ConvergenceReporter",
    "DependencyGraph",
    "EdgeKind",
    "ExecutionState",
    "ExportMap",
    "FailureChain",
    "GraphBuilder",
    "NodeEvent",
    "NodeExecution",
    "NodeOutcome",
    "ResourceDescriptor",
    "ResourceHandle",
    "ResourceId",
    "RunContext",
    "RunReport",
    "RunStatus",
    "Scheduler",
    "ValueCell",
    "apply",
    "combine",
]
