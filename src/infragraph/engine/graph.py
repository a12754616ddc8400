"""
Dependency graph construction.

Edges come from two sources, treated as equally valid and deduplicated:

- explicit: the descriptor's ``depends_on`` set
- inferred: every value cell found in the descriptor's inputs contributes
  an edge from each resource the cell is derived from

Inference is a scan over declared input bindings, done once at build time.
Construction fails with a DeclarationError before anything is provisioned
if identities collide, a reference points outside the declared set, or
the edges form a cycle.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable

import structlog

from infragraph.core.errors import CycleError, DuplicateResourceError, UnknownDependencyError
from infragraph.engine.descriptor import ResourceDescriptor, ResourceId

logger = structlog.get_logger()


class EdgeKind(Enum):
    """How an edge was discovered."""

    EXPLICIT = "explicit"
    INFERRED = "inferred"
    BOTH = "both"


@dataclass
class DependencyGraph:
    """DAG of descriptors; an edge ``a → b`` means ``b`` needs ``a`` first."""

    nodes: dict[ResourceId, ResourceDescriptor] = field(default_factory=dict)
    edge_kinds: dict[tuple[ResourceId, ResourceId], EdgeKind] = field(default_factory=dict)
    _successors: dict[ResourceId, list[ResourceId]] = field(default_factory=dict)
    _predecessors: dict[ResourceId, list[ResourceId]] = field(default_factory=dict)

    def add_node(self, descriptor: ResourceDescriptor) -> None:
        self.nodes[descriptor.id] = descriptor
        self._successors.setdefault(descriptor.id, [])
        self._predecessors.setdefault(descriptor.id, [])

    def add_edge(self, source: ResourceId, target: ResourceId, kind: EdgeKind) -> None:
        """Add ``source → target``; a repeated edge only upgrades its kind."""
        key = (source, target)
        existing = self.edge_kinds.get(key)
        if existing is None:
            self.edge_kinds[key] = kind
            self._successors[source].append(target)
            self._predecessors[target].append(source)
        elif existing is not kind:
            self.edge_kinds[key] = EdgeKind.BOTH

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, resource: object) -> bool:
        return resource in self.nodes

    @property
    def edges(self) -> list[tuple[ResourceId, ResourceId]]:
        return list(self.edge_kinds)

    def successors(self, resource: ResourceId) -> list[ResourceId]:
        return list(self._successors[resource])

    def predecessors(self, resource: ResourceId) -> list[ResourceId]:
        return list(self._predecessors[resource])

    def roots(self) -> list[ResourceId]:
        """Nodes without predecessors, in declaration order."""
        return [rid for rid in self.nodes if not self._predecessors[rid]]

    def descendants(self, resource: ResourceId) -> list[ResourceId]:
        """Every node reachable from ``resource`` (BFS order, excluding itself)."""
        seen: set[ResourceId] = set()
        order: list[ResourceId] = []
        queue = deque(self._successors[resource])
        while queue:
            rid = queue.popleft()
            if rid in seen:
                continue
            seen.add(rid)
            order.append(rid)
            queue.extend(self._successors[rid])
        return order

    def topological_order(self) -> list[ResourceId]:
        """Kahn's algorithm, stable with respect to declaration order."""
        position = {rid: i for i, rid in enumerate(self.nodes)}
        in_degree = {rid: len(preds) for rid, preds in self._predecessors.items()}
        ready = [rid for rid in self.nodes if in_degree[rid] == 0]
        order: list[ResourceId] = []
        while ready:
            ready.sort(key=position.__getitem__)
            rid = ready.pop(0)
            order.append(rid)
            for succ in self._successors[rid]:
                in_degree[succ] -= 1
                if in_degree[succ] == 0:
                    ready.append(succ)
        return order

    def to_dict(self) -> dict:
        return {
            "nodes": [
                {"kind": rid.kind, "name": rid.name, "id": str(rid)} for rid in self.nodes
            ],
            "edges": [
                {"source": str(src), "target": str(tgt), "kind": kind.value}
                for (src, tgt), kind in self.edge_kinds.items()
            ],
        }


class GraphBuilder:
    """Assembles a DependencyGraph from descriptors declared in program order."""

    def build(self, descriptors: Iterable[ResourceDescriptor]) -> DependencyGraph:
        graph = DependencyGraph()
        declared = list(descriptors)

        for descriptor in declared:
            if descriptor.id in graph:
                raise DuplicateResourceError(descriptor.id)
            graph.add_node(descriptor)

        for descriptor in declared:
            for ref in sorted(descriptor.referenced_resources()):
                self._check_known(graph, descriptor.id, ref)
                graph.add_edge(ref, descriptor.id, EdgeKind.INFERRED)
            for dep in sorted(descriptor.depends_on):
                self._check_known(graph, descriptor.id, dep)
                graph.add_edge(dep, descriptor.id, EdgeKind.EXPLICIT)

        cycle = find_cycle(graph)
        if cycle is not None:
            raise CycleError(cycle)

        logger.debug("graph_built", nodes=len(graph), edges=len(graph.edge_kinds))
        return graph

    @staticmethod
    def _check_known(graph: DependencyGraph, resource: ResourceId, ref: ResourceId) -> None:
        if ref not in graph:
            raise UnknownDependencyError(resource, ref)


_WHITE, _GRAY, _BLACK = 0, 1, 2


def find_cycle(graph: DependencyGraph) -> list[ResourceId] | None:
    """
    Three-colour depth-first search for a cycle.

    Returns the cycle as a path that starts and ends on the same node
    (``[a, b, a]``), or None when the graph is acyclic. Iterative, so deep
    chains do not hit the recursion limit.
    """
    color = {rid: _WHITE for rid in graph.nodes}

    for start in graph.nodes:
        if color[start] != _WHITE:
            continue
        path: list[ResourceId] = [start]
        iterators = [iter(graph.successors(start))]
        color[start] = _GRAY

        while iterators:
            nxt = next(iterators[-1], None)
            if nxt is None:
                color[path.pop()] = _BLACK
                iterators.pop()
                continue
            if color[nxt] == _GRAY:
                return path[path.index(nxt):] + [nxt]
            if color[nxt] == _WHITE:
                color[nxt] = _GRAY
                path.append(nxt)
                iterators.append(iter(graph.successors(nxt)))

    return None
