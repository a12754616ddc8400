"""Tests for convergence reporting."""

import json

import pytest
from infragraph.core.errors import PermanentProviderError
from infragraph.engine.cell import ValueCell
from infragraph.engine.descriptor import ResourceDescriptor, ResourceId
from infragraph.engine.graph import GraphBuilder
from infragraph.engine.reporter import (
    MISSING,
    ConvergenceReporter,
    ExportMap,
    RunStatus,
)
from infragraph.engine.scheduler import ExecutionState, NodeExecution

A = ResourceId("test:Thing", "a")
B = ResourceId("test:Thing", "b")
C = ResourceId("test:Thing", "c")


class TestMissing:
    """The MISSING marker."""

    def test_is_singleton_and_falsy(self):
        assert type(MISSING)() is MISSING
        assert not MISSING
        assert repr(MISSING) == "<missing>"


class TestExportMap:
    """Tests for ExportMap."""

    def test_mapping_behaviour(self):
        exports = ExportMap({"url": "https://x", "name": MISSING})
        assert len(exports) == 2
        assert set(exports) == {"url", "name"}
        assert exports["url"] == "https://x"

    def test_missing_and_resolved(self):
        exports = ExportMap({"url": "https://x", "name": MISSING})
        assert exports.is_missing("name")
        assert not exports.is_missing("url")
        assert exports.missing() == ["name"]
        assert exports.resolved() == {"url": "https://x"}


def _executions(graph, states):
    executions = {}
    for rid in graph.nodes:
        execution = NodeExecution(rid)
        state = states.get(rid, ExecutionState.SUCCEEDED)
        if state is ExecutionState.SKIPPED:
            execution.transition(ExecutionState.SKIPPED)
        else:
            execution.transition(ExecutionState.RUNNING)
            execution.attempts = 1
            execution.transition(state)
        executions[rid] = execution
    return executions


class TestConvergenceReporter:
    """Tests for ConvergenceReporter.build."""

    @pytest.fixture
    def graph(self):
        return GraphBuilder().build(
            [
                ResourceDescriptor(id=A),
                ResourceDescriptor(id=B, depends_on=frozenset({A})),
                ResourceDescriptor(id=C, depends_on=frozenset({B})),
            ]
        )

    def test_all_succeeded(self, graph):
        executions = _executions(graph, {})
        report = ConvergenceReporter(graph, executions).build("dev", {"literal": 42})

        assert report.status is RunStatus.SUCCEEDED
        assert report.success
        assert report.counts == {"succeeded": 3, "failed": 0, "skipped": 0}
        assert report.exports["literal"] == 42
        assert report.failures == []
        assert report.first_failure is None

    def test_failure_chain_lists_skipped_in_order(self, graph):
        executions = _executions(
            graph,
            {B: ExecutionState.FAILED, C: ExecutionState.SKIPPED},
        )
        executions[B].error = PermanentProviderError("denied")
        executions[C].skipped_because = B

        report = ConvergenceReporter(graph, executions).build("prod", {})

        assert report.status is RunStatus.FAILED
        chain = report.first_failure
        assert chain.failed == B
        assert chain.skipped == [C]
        assert report.outcomes[B].error_kind == "permanent"

    def test_export_from_failed_source_is_missing(self, graph):
        executions = _executions(graph, {C: ExecutionState.FAILED})
        good = ValueCell({A})
        good.resolve("value-a")
        bad = ValueCell({C})
        bad.reject(PermanentProviderError("denied"))

        report = ConvergenceReporter(graph, executions).build(
            "dev", {"good": good, "bad": bad, "nested": {"a": good, "c": bad}}
        )

        assert report.exports["good"] == "value-a"
        assert report.exports["bad"] is MISSING
        assert report.exports["nested"] is MISSING

    def test_nested_exports_materialize(self, graph):
        executions = _executions(graph, {})
        first = ValueCell.of("x").map(str.upper)
        report = ConvergenceReporter(graph, executions).build(
            "dev", {"bundle": {"names": [first, "y"], "pair": (first, 1)}}
        )
        assert report.exports["bundle"] == {"names": ["X", "y"], "pair": ("X", 1)}

    def test_all_skipped_run_is_not_a_success(self, graph):
        executions = _executions(
            graph,
            {A: ExecutionState.SKIPPED, B: ExecutionState.SKIPPED, C: ExecutionState.SKIPPED},
        )
        report = ConvergenceReporter(graph, executions).build("dev", {})
        assert report.status is RunStatus.FAILED

    def test_to_dict_is_json_serializable(self, graph):
        executions = _executions(graph, {B: ExecutionState.FAILED, C: ExecutionState.SKIPPED})
        executions[B].error = PermanentProviderError("denied")
        executions[C].skipped_because = B
        executions[C].skip_reason = "dependency_failed"
        bad = ValueCell({B})
        bad.reject(executions[B].error)

        report = ConvergenceReporter(graph, executions).build("dev", {"b": bad}, duration=1.5)
        data = json.loads(json.dumps(report.to_dict()))

        assert data["status"] == "failed"
        assert data["counts"] == {"succeeded": 1, "failed": 1, "skipped": 1}
        assert data["exports"] == {"b": None}
        assert data["missing_exports"] == ["b"]
        skipped = [r for r in data["resources"] if r["state"] == "skipped"][0]
        assert skipped["skipped_because"] == "test:Thing::b"
        assert data["failures"][0]["skipped"] == ["test:Thing::c"]
