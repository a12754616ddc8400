"""Tests for descriptors and dependency graph construction."""

import pytest
from infragraph.core.errors import (
    CycleError,
    DeclarationError,
    DuplicateResourceError,
    MissingOutputError,
    UnknownDependencyError,
)
from infragraph.engine.cell import ValueCell
from infragraph.engine.descriptor import (
    ResourceDescriptor,
    ResourceHandle,
    ResourceId,
    dependency_ids,
)
from infragraph.engine.graph import EdgeKind, GraphBuilder, find_cycle


def rid(name, kind="test:Thing"):
    return ResourceId(kind=kind, name=name)


def ref(*names):
    """A pending cell derived from the named resources."""
    return ValueCell({rid(name) for name in names})


def descriptor(name, inputs=None, depends_on=()):
    return ResourceDescriptor(
        id=rid(name),
        inputs=inputs or {},
        depends_on=frozenset(rid(dep) for dep in depends_on),
    )


class TestResourceDescriptor:
    """Tests for descriptor immutability and reference scanning."""

    def test_inputs_are_frozen(self):
        inputs = {"cidr": "10.0.0.0/16"}
        desc = ResourceDescriptor(id=rid("net"), inputs=inputs)
        inputs["cidr"] = "changed"

        assert desc.inputs["cidr"] == "10.0.0.0/16"
        with pytest.raises(TypeError):
            desc.inputs["cidr"] = "again"

    def test_referenced_resources_scans_nested_inputs(self):
        desc = descriptor(
            "svc",
            inputs={
                "vpc": ref("net"),
                "subnets": [ref("net"), "literal"],
                "meta": {"cluster": ref("cluster")},
            },
        )
        assert desc.referenced_resources() == frozenset({rid("net"), rid("cluster")})

    def test_handle_input_references_its_resource(self):
        net = ResourceHandle(descriptor("net"))
        desc = descriptor("cluster", inputs={"network": net, "peers": [net]})
        assert desc.referenced_resources() == frozenset({rid("net")})

    def test_literals_reference_nothing(self):
        assert descriptor("x", inputs={"a": 1, "b": [2, {"c": 3}]}).referenced_resources() == set()

    def test_resource_id_str(self):
        assert str(ResourceId("aws:ec2:SecurityGroup", "web")) == "aws:ec2:SecurityGroup::web"


class TestResourceHandle:
    """Tests for handle output cells."""

    def test_field_cells_are_cached_and_sourced(self):
        handle = ResourceHandle(descriptor("cluster"))
        assert handle.kubeconfig is handle.output("kubeconfig")
        assert handle["kubeconfig"] is handle.output("kubeconfig")
        assert handle.kubeconfig.sources == frozenset({rid("cluster")})

    def test_fields_settle_together(self):
        handle = ResourceHandle(descriptor("cluster"))
        name = handle.name
        endpoint = handle.endpoint
        assert name.is_pending and endpoint.is_pending

        handle.outputs.resolve({"name": "eks", "endpoint": "https://k8s"})

        assert name.value == "eks"
        assert endpoint.value == "https://k8s"

    def test_absent_field_fails_with_missing_output(self):
        handle = ResourceHandle(descriptor("cluster"))
        handle.outputs.resolve({"name": "eks"})
        assert isinstance(handle.output("arn").error, MissingOutputError)

    def test_private_attributes_are_not_fields(self):
        handle = ResourceHandle(descriptor("cluster"))
        with pytest.raises(AttributeError):
            handle._nope

    def test_dependency_ids_accepts_handles_and_ids(self):
        handle = ResourceHandle(descriptor("a"))
        assert dependency_ids([handle, rid("b")]) == frozenset({rid("a"), rid("b")})

    def test_dependency_ids_rejects_other_values(self):
        with pytest.raises(TypeError):
            dependency_ids(["a"])


class TestGraphBuilder:
    """Tests for GraphBuilder.build."""

    def test_inferred_edges(self):
        graph = GraphBuilder().build(
            [
                descriptor("net"),
                descriptor("cluster", inputs={"vpc": ref("net")}),
                descriptor("svc", inputs={"kubeconfig": ref("cluster")}),
            ]
        )
        assert graph.edges == [(rid("net"), rid("cluster")), (rid("cluster"), rid("svc"))]
        assert graph.edge_kinds[(rid("net"), rid("cluster"))] is EdgeKind.INFERRED

    def test_handle_input_is_an_inferred_edge(self):
        net = descriptor("net")
        graph = GraphBuilder().build(
            [net, descriptor("cluster", inputs={"network": ResourceHandle(net)})]
        )
        assert graph.predecessors(rid("cluster")) == [rid("net")]
        assert graph.edge_kinds[(rid("net"), rid("cluster"))] is EdgeKind.INFERRED

    def test_explicit_edges(self):
        graph = GraphBuilder().build([descriptor("a"), descriptor("b", depends_on=["a"])])
        assert graph.edge_kinds == {(rid("a"), rid("b")): EdgeKind.EXPLICIT}

    def test_explicit_and_inferred_edges_deduplicate(self):
        graph = GraphBuilder().build(
            [
                descriptor("a"),
                descriptor("b", inputs={"x": ref("a"), "y": ref("a")}, depends_on=["a"]),
            ]
        )
        assert graph.edges == [(rid("a"), rid("b"))]
        assert graph.edge_kinds[(rid("a"), rid("b"))] is EdgeKind.BOTH
        assert graph.predecessors(rid("b")) == [rid("a")]

    def test_combined_cell_contributes_every_source(self):
        graph = GraphBuilder().build(
            [descriptor("a"), descriptor("b"), descriptor("c", inputs={"ab": ref("a", "b")})]
        )
        assert sorted(graph.predecessors(rid("c"))) == [rid("a"), rid("b")]

    def test_duplicate_identity(self):
        with pytest.raises(DuplicateResourceError) as exc_info:
            GraphBuilder().build([descriptor("a"), descriptor("a")])
        assert exc_info.value.resource == rid("a")
        assert isinstance(exc_info.value, DeclarationError)

    def test_same_name_different_kind_is_allowed(self):
        graph = GraphBuilder().build(
            [
                ResourceDescriptor(id=ResourceId("aws:ec2:Vpc", "main")),
                ResourceDescriptor(id=ResourceId("aws:eks:Cluster", "main")),
            ]
        )
        assert len(graph) == 2

    def test_unknown_explicit_dependency(self):
        with pytest.raises(UnknownDependencyError) as exc_info:
            GraphBuilder().build([descriptor("a", depends_on=["ghost"])])
        assert exc_info.value.missing == rid("ghost")
        assert "ghost" in str(exc_info.value)

    def test_unknown_inferred_dependency(self):
        with pytest.raises(UnknownDependencyError):
            GraphBuilder().build([descriptor("a", inputs={"x": ref("ghost")})])

    def test_two_node_cycle_names_both_members(self):
        with pytest.raises(CycleError) as exc_info:
            GraphBuilder().build(
                [descriptor("a", depends_on=["b"]), descriptor("b", depends_on=["a"])]
            )
        cycle = exc_info.value.cycle
        assert set(cycle) == {rid("a"), rid("b")}
        assert cycle[0] == cycle[-1]
        assert "test:Thing::a" in str(exc_info.value)
        assert "test:Thing::b" in str(exc_info.value)

    def test_cycle_through_inferred_edges(self):
        with pytest.raises(CycleError) as exc_info:
            GraphBuilder().build(
                [
                    descriptor("a", inputs={"x": ref("c")}),
                    descriptor("b", inputs={"x": ref("a")}),
                    descriptor("c", inputs={"x": ref("b")}),
                ]
            )
        assert set(exc_info.value.cycle) == {rid("a"), rid("b"), rid("c")}

    def test_self_dependency_is_a_cycle(self):
        with pytest.raises(CycleError) as exc_info:
            GraphBuilder().build([descriptor("a", depends_on=["a"])])
        assert exc_info.value.cycle == [rid("a"), rid("a")]

    def test_deep_chain_does_not_hit_recursion_limit(self):
        depth = 5000
        descriptors = [descriptor("n0")]
        descriptors += [descriptor(f"n{i}", depends_on=[f"n{i - 1}"]) for i in range(1, depth)]
        graph = GraphBuilder().build(descriptors)
        assert find_cycle(graph) is None
        assert len(graph.topological_order()) == depth


class TestDependencyGraph:
    """Tests for graph queries."""

    @pytest.fixture
    def diamond(self):
        return GraphBuilder().build(
            [
                descriptor("root"),
                descriptor("left", depends_on=["root"]),
                descriptor("right", depends_on=["root"]),
                descriptor("join", depends_on=["left", "right"]),
                descriptor("lonely"),
            ]
        )

    def test_roots_in_declaration_order(self, diamond):
        assert diamond.roots() == [rid("root"), rid("lonely")]

    def test_topological_order_is_stable(self, diamond):
        assert diamond.topological_order() == [
            rid("root"),
            rid("left"),
            rid("right"),
            rid("join"),
            rid("lonely"),
        ]

    def test_descendants(self, diamond):
        assert set(diamond.descendants(rid("root"))) == {rid("left"), rid("right"), rid("join")}
        assert diamond.descendants(rid("join")) == []

    def test_to_dict(self, diamond):
        data = diamond.to_dict()
        assert len(data["nodes"]) == 5
        assert {"source": "test:Thing::left", "target": "test:Thing::join", "kind": "explicit"} in (
            data["edges"]
        )
