"""
Write-once value cells.

A ValueCell stands for a value that only exists once some resource has been
provisioned. Cells are settled exactly once (resolved or failed) by their
producer and may be read by any number of consumers through continuations
(``map``, ``combine``, ``on_settle``) or by awaiting them.

Continuations run synchronously at the moment the cell settles, so chains of
``map`` calls settle deterministically without an event loop. Awaiting a
cell is the only operation that needs one.

Each cell also records ``sources``: the identities of the resources whose
outputs it is derived from. Derived cells inherit the union of their inputs'
sources, which is how the graph builder discovers implicit dependencies.
"""

from __future__ import annotations

import asyncio
from collections.abc import Mapping
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Generic, Iterable, TypeVar

import structlog

from infragraph.core.errors import CellStateError

if TYPE_CHECKING:
    from infragraph.engine.descriptor import ResourceId

logger = structlog.get_logger()

T = TypeVar("T")
U = TypeVar("U")


class CellState(Enum):
    """Lifecycle of a value cell."""

    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"


class ValueCell(Generic[T]):
    """Container for a result that becomes known after an asynchronous operation."""

    def __init__(
        self,
        sources: Iterable[ResourceId] = (),
        label: str | None = None,
    ) -> None:
        self.sources: frozenset[ResourceId] = frozenset(sources)
        self.label = label
        self._state = CellState.PENDING
        self._value: Any = None
        self._error: BaseException | None = None
        self._continuations: list[Callable[[ValueCell[T]], None]] = []

    @classmethod
    def of(cls, value: T) -> ValueCell[T]:
        """Return a cell that is already resolved with ``value``."""
        cell: ValueCell[T] = cls()
        cell.resolve(value)
        return cell

    @classmethod
    def rejected(cls, error: BaseException) -> ValueCell[Any]:
        """Return a cell that has already failed with ``error``."""
        cell: ValueCell[Any] = cls()
        cell.reject(error)
        return cell

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> CellState:
        return self._state

    @property
    def is_pending(self) -> bool:
        return self._state is CellState.PENDING

    @property
    def is_resolved(self) -> bool:
        return self._state is CellState.RESOLVED

    @property
    def is_failed(self) -> bool:
        return self._state is CellState.FAILED

    @property
    def value(self) -> T:
        """The resolved value; raises CellStateError unless resolved."""
        if self._state is not CellState.RESOLVED:
            raise CellStateError(f"{self._describe()} is {self._state.value}, not resolved")
        return self._value

    @property
    def error(self) -> BaseException:
        """The failure; raises CellStateError unless failed."""
        if self._state is not CellState.FAILED or self._error is None:
            raise CellStateError(f"{self._describe()} is {self._state.value}, not failed")
        return self._error

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    def resolve(self, value: T) -> None:
        """Transition pending → resolved. Settling twice is an error."""
        self._ensure_pending("resolve")
        self._state = CellState.RESOLVED
        self._value = value
        self._dispatch()

    def reject(self, error: BaseException) -> None:
        """Transition pending → failed. Settling twice is an error."""
        self._ensure_pending("reject")
        self._state = CellState.FAILED
        self._error = error
        self._dispatch()

    def _ensure_pending(self, action: str) -> None:
        if self._state is not CellState.PENDING:
            raise CellStateError(
                f"Cannot {action} {self._describe()}: already {self._state.value}",
                details={"label": self.label},
            )

    def _dispatch(self) -> None:
        continuations, self._continuations = self._continuations, []
        for continuation in continuations:
            try:
                continuation(self)
            except Exception:
                logger.exception("cell_continuation_error", cell=self._describe())

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    def on_settle(self, callback: Callable[[ValueCell[T]], None]) -> None:
        """Run ``callback(cell)`` once the cell settles (immediately if it has)."""
        if self._state is CellState.PENDING:
            self._continuations.append(callback)
        else:
            callback(self)

    def map(self, fn: Callable[[T], U], label: str | None = None) -> ValueCell[U]:
        """
        Derive a cell resolving to ``fn(value)``.

        Failures propagate untouched; an exception raised by ``fn`` fails the
        derived cell. ``fn`` runs exactly once, when this cell resolves.
        """
        derived: ValueCell[U] = ValueCell(self.sources, label=label)

        def _forward(cell: ValueCell[T]) -> None:
            if cell._state is CellState.FAILED:
                derived.reject(cell._error)  # type: ignore[arg-type]
                return
            try:
                result = fn(cell._value)
            except Exception as e:
                derived.reject(e)
                return
            derived.resolve(result)

        self.on_settle(_forward)
        return derived

    async def wait(self) -> T:
        """Suspend until the cell settles; return its value or raise its error."""
        if self._state is CellState.PENDING:
            future: asyncio.Future[None] = asyncio.get_running_loop().create_future()

            def _wake(_: ValueCell[T]) -> None:
                if not future.done():
                    future.set_result(None)

            self.on_settle(_wake)
            await future

        if self._state is CellState.FAILED:
            raise self._error  # type: ignore[misc]
        return self._value

    def __await__(self):
        return self.wait().__await__()

    def _describe(self) -> str:
        return f"cell '{self.label}'" if self.label else "cell"

    def __repr__(self) -> str:
        if self._state is CellState.RESOLVED:
            detail = f"value={self._value!r}"
        elif self._state is CellState.FAILED:
            detail = f"error={self._error!r}"
        else:
            detail = "pending"
        label = f" {self.label}" if self.label else ""
        return f"<ValueCell{label} {detail}>"


def combine(*cells: ValueCell[Any], label: str | None = None) -> ValueCell[tuple[Any, ...]]:
    """
    Combine cells into one resolving to the tuple of their values.

    If any input fails, the combined cell fails with the error of the first
    input to fail, but only once every input has reached a terminal state.
    """
    sources: set[ResourceId] = set()
    for cell in cells:
        sources.update(cell.sources)
    combined: ValueCell[tuple[Any, ...]] = ValueCell(sources, label=label)

    if not cells:
        combined.resolve(())
        return combined

    remaining = len(cells)
    first_error: BaseException | None = None

    def _settled(cell: ValueCell[Any]) -> None:
        nonlocal remaining, first_error
        if cell.is_failed and first_error is None:
            first_error = cell.error
        remaining -= 1
        if remaining:
            return
        if first_error is not None:
            combined.reject(first_error)
        else:
            combined.resolve(tuple(c.value for c in cells))

    for cell in cells:
        cell.on_settle(_settled)
    return combined


def apply(fn: Callable[..., U], *cells: ValueCell[Any], label: str | None = None) -> ValueCell[U]:
    """Combine ``cells`` and map the resulting values through ``fn(*values)``."""
    return combine(*cells).map(lambda values: fn(*values), label=label)


def find_cells(value: Any) -> list[ValueCell[Any]]:
    """
    Collect every ValueCell nested inside lists, tuples, sets and dicts.

    A resource handle counts as its full output mapping cell.
    """
    from infragraph.engine.descriptor import ResourceHandle

    found: list[ValueCell[Any]] = []
    stack = [value]
    while stack:
        item = stack.pop()
        if isinstance(item, ValueCell):
            found.append(item)
        elif isinstance(item, ResourceHandle):
            found.append(item.outputs)
        elif isinstance(item, Mapping):
            stack.extend(item.values())
        elif isinstance(item, (list, tuple, set, frozenset)):
            stack.extend(item)
    return found


async def resolve_nested(value: Any) -> Any:
    """Return ``value`` with every nested cell replaced by its resolved value."""
    from infragraph.engine.descriptor import ResourceHandle

    if isinstance(value, ValueCell):
        return await value
    if isinstance(value, ResourceHandle):
        return dict(await value.outputs)
    if isinstance(value, Mapping):
        return {key: await resolve_nested(item) for key, item in value.items()}
    if isinstance(value, list):
        return [await resolve_nested(item) for item in value]
    if isinstance(value, tuple):
        return tuple([await resolve_nested(item) for item in value])
    if isinstance(value, (set, frozenset)):
        return type(value)([await resolve_nested(item) for item in value])
    return value
