"""Tests for graph serializers."""

import json

import pytest
from infragraph.engine.cell import ValueCell
from infragraph.engine.descriptor import ResourceDescriptor, ResourceId
from infragraph.engine.graph import GraphBuilder
from infragraph.engine.scheduler import ExecutionState
from infragraph.engine.serializers import (
    STATE_COLORS,
    serialize_dot,
    serialize_json,
    serialize_mermaid,
    serialize_text,
)

NET = ResourceId("aws:ec2:Vpc", "net")
CLUSTER = ResourceId("eks:index:Cluster", "cluster")
PROVIDER = ResourceId("pulumi:providers:kubernetes", "k8s")


@pytest.fixture
def graph():
    return GraphBuilder().build(
        [
            ResourceDescriptor(id=NET),
            ResourceDescriptor(id=CLUSTER, inputs={"vpc": ValueCell({NET})}),
            ResourceDescriptor(id=PROVIDER, depends_on=frozenset({CLUSTER})),
        ]
    )


def test_text(graph):
    assert serialize_text(graph).splitlines() == [
        "net (aws:ec2:Vpc)",
        "cluster (eks:index:Cluster) ← net",
        "k8s (pulumi:providers:kubernetes) ← cluster",
    ]


def test_json(graph):
    data = json.loads(serialize_json(graph))
    assert [node["name"] for node in data["nodes"]] == ["net", "cluster", "k8s"]
    assert [edge["kind"] for edge in data["edges"]] == ["inferred", "explicit"]


def test_mermaid_edge_styles(graph):
    output = serialize_mermaid(graph)
    assert output.startswith("graph LR")
    assert "aws_ec2_Vpc__net --> eks_index_Cluster__cluster" in output
    assert "eks_index_Cluster__cluster -.-> pulumi_providers_kubernetes__k8s" in output


def test_mermaid_with_states(graph):
    output = serialize_mermaid(
        graph,
        states={
            NET: ExecutionState.SUCCEEDED,
            CLUSTER: ExecutionState.FAILED,
            PROVIDER: ExecutionState.SKIPPED,
        },
    )
    assert f"classDef failed fill:{STATE_COLORS['failed']}" in output
    assert "class eks_index_Cluster__cluster failed" in output


def test_dot(graph):
    output = serialize_dot(graph, states={CLUSTER: ExecutionState.FAILED})
    assert output.startswith("digraph resources {")
    assert output.endswith("}")
    assert f'fillcolor="{STATE_COLORS["failed"]}"' in output
    assert "eks_index_Cluster__cluster -> pulumi_providers_kubernetes__k8s [style=dashed];" in output
