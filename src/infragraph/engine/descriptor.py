"""
Resource descriptors and handles.

A ResourceDescriptor is the immutable declaration of one resource: its
identity, its inputs (literals or value cells) and its explicit
predecessors. A ResourceHandle is what a program gets back from
``declare``; its fields are value cells that other resources can use as
inputs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from infragraph.core.errors import MissingOutputError
from infragraph.engine.cell import ValueCell, find_cells


@dataclass(frozen=True, order=True)
class ResourceId:
    """Unique identity of a declared resource."""

    kind: str
    name: str

    def __str__(self) -> str:
        return f"{self.kind}::{self.name}"


@dataclass(frozen=True, eq=False)
class ResourceDescriptor:
    """Immutable declaration of a resource to provision."""

    id: ResourceId
    inputs: Mapping[str, Any] = field(default_factory=dict)
    depends_on: frozenset[ResourceId] = frozenset()
    timeout: float | None = None

    def __post_init__(self) -> None:
        # Freeze the caller's mapping so later mutation cannot change the graph
        object.__setattr__(self, "inputs", MappingProxyType(dict(self.inputs)))
        object.__setattr__(self, "depends_on", frozenset(self.depends_on))

    @property
    def name(self) -> str:
        return self.id.name

    @property
    def kind(self) -> str:
        return self.id.kind

    def referenced_resources(self) -> frozenset[ResourceId]:
        """Resources whose outputs flow into this descriptor's inputs."""
        refs: set[ResourceId] = set()
        for cell in find_cells(self.inputs):
            refs.update(cell.sources)
        return frozenset(refs)


class ResourceHandle:
    """
    Program-facing reference to a declared resource.

    Output fields are exposed as value cells created on first access, so
    ``cluster.kubeconfig`` can be passed to another resource before the
    cluster exists. All fields settle together when the resource finishes.
    """

    def __init__(self, descriptor: ResourceDescriptor) -> None:
        self._descriptor = descriptor
        self._outputs: ValueCell[Mapping[str, Any]] = ValueCell(
            {descriptor.id}, label=f"{descriptor.id}"
        )
        self._fields: dict[str, ValueCell[Any]] = {}

    @property
    def descriptor(self) -> ResourceDescriptor:
        return self._descriptor

    @property
    def id(self) -> ResourceId:
        return self._descriptor.id

    @property
    def outputs(self) -> ValueCell[Mapping[str, Any]]:
        """Cell holding the resource's full output mapping."""
        return self._outputs

    def output(self, name: str) -> ValueCell[Any]:
        """Cell holding a single output field."""
        cell = self._fields.get(name)
        if cell is None:
            rid = self.id

            def _pick(outputs: Mapping[str, Any]) -> Any:
                if name not in outputs:
                    raise MissingOutputError(rid, name)
                return outputs[name]

            cell = self._outputs.map(_pick, label=f"{rid}.{name}")
            self._fields[name] = cell
        return cell

    def __getitem__(self, name: str) -> ValueCell[Any]:
        return self.output(name)

    def __getattr__(self, name: str) -> ValueCell[Any]:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.output(name)

    def __repr__(self) -> str:
        return f"<ResourceHandle {self.id} {self._outputs.state.value}>"


def dependency_ids(depends_on: Iterable[ResourceHandle | ResourceId]) -> frozenset[ResourceId]:
    """Normalize explicit dependencies given as handles or identities."""
    ids: set[ResourceId] = set()
    for dep in depends_on:
        if isinstance(dep, ResourceHandle):
            ids.add(dep.id)
        elif isinstance(dep, ResourceId):
            ids.add(dep)
        else:
            raise TypeError(f"depends_on entries must be handles or ResourceIds, got {dep!r}")
    return frozenset(ids)
