"""
Dependency Graph - Lazy, Memoized Recomputation with Push Invalidation
======================================================================

Nodes are declared by name with their upstream dependencies stated up front,
then the graph is sealed. Sealing resolves names, rejects unknown names and
dependency cycles, and wires every node to its upstream and downstream
neighbours. Nothing can be pulled from an unsealed graph.

Three node kinds share one pull/cache protocol:

- ``InputNode``: reads one field of an external input object. Holds no cache;
  invalidating it pushes staleness to its dependents.
- ``ReactiveNode``: recomputes from its upstream values when pulled while
  Dirty, then stays Clean until an upstream invalidation reaches it.
- ``EventNode``: recomputes only when its trigger counter has moved since its
  last recompute. Data-dependency changes alone leave it Clean; the next
  triggered recompute reads their current values through the ordinary pull
  protocol.

Example:
    inputs = {"x": 2}
    graph = DependencyGraph()
    graph.input("x", lambda: inputs["x"])
    graph.derive("double", lambda x: x * 2, deps=["x"])
    graph.derive("label", lambda d: f"double is {d}", deps=["double"])
    graph.seal()

    graph.value("label")    # computes double, then label
    inputs["x"] = 5
    graph.invalidate("x")   # double and label become Dirty
    graph.value("label")    # 'double is 10'

Recompute functions must be pure in their arguments; the graph does not
detect impurity.
"""

import logging
from collections import defaultdict
from enum import Enum
from types import TracebackType
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)

from injuryflow.errors import (
    DuplicateNode,
    GraphNotSealed,
    InvalidArgument,
    UnknownDependency,
)
from injuryflow.util.cycle_detector import IncrementalTopoSort

_MISSING = object()


class NodeKind(Enum):
    INPUT = "input"
    DERIVED = "derived"
    EVENT = "event"


class Node(Protocol):
    """What the graph needs from every node kind."""

    name: str
    kind: NodeKind

    @property
    def dependencies(self) -> Tuple[str, ...]: ...

    @property
    def is_dirty(self) -> bool: ...

    def value(self) -> Any: ...

    def invalidate(self, source: Optional["Node"] = None) -> List[str]: ...

    def bind(self, upstream: Sequence["Node"]) -> None: ...

    def add_dependent(self, node: "Node") -> None: ...


class _Cache:
    """Memoized result of a node: a value or an error, plus a validity flag."""

    __slots__ = ("value", "error", "traceback", "is_dirty", "compute_count", "last_value")

    def __init__(self):
        self.value: Any = _MISSING
        self.error: Optional[BaseException] = None
        self.traceback: Optional[TracebackType] = None
        self.is_dirty = True
        self.compute_count = 0
        self.last_value: Any = _MISSING

    @property
    def is_empty(self) -> bool:
        return self.value is _MISSING and self.error is None

    def store(self, value: Any) -> Any:
        self.value = value
        self.last_value = value
        self.error = None
        self.traceback = None
        self.is_dirty = False
        return value

    def fail(self, error: BaseException) -> None:
        # last_value survives so callers can keep showing it
        self.value = _MISSING
        self.error = error
        self.traceback = error.__traceback__
        self.is_dirty = False

    def read(self) -> Any:
        if self.error is not None:
            # Reset to the original traceback so repeated raises don't grow it
            raise self.error.with_traceback(self.traceback)
        return self.value

    def mark_dirty(self) -> bool:
        """Return True if this call moved the cache from Clean to Dirty."""
        if self.is_dirty:
            return False
        self.is_dirty = True
        return True

    def compute(self, fn: Callable[..., Any], args: Sequence[Any]) -> Any:
        self.compute_count += 1
        try:
            result = fn(*args)
        except Exception as e:
            self.fail(e)
            raise
        return self.store(result)


def _push(node: Node, dependents: Iterable[Node]) -> List[str]:
    changed = []
    for dependent in dependents:
        changed.extend(dependent.invalidate(node))
    return changed


class InputNode:
    """Root node exposing one field of the external input state."""

    kind = NodeKind.INPUT

    def __init__(self, name: str, reader: Callable[[], Any]):
        self.name = name
        self._reader = reader
        self._downstream: List[Node] = []

    @property
    def dependencies(self) -> Tuple[str, ...]:
        return ()

    @property
    def is_dirty(self) -> bool:
        return False

    @property
    def compute_count(self) -> int:
        return 0

    def value(self) -> Any:
        return self._reader()

    def invalidate(self, source: Optional[Node] = None) -> List[str]:
        return _push(self, self._downstream)

    def bind(self, upstream: Sequence[Node]) -> None:
        pass

    def add_dependent(self, node: Node) -> None:
        self._downstream.append(node)

    def __repr__(self) -> str:
        return f"InputNode({self.name!r})"


class ReactiveNode:
    """Derived value recomputed lazily from its upstream values."""

    kind = NodeKind.DERIVED

    def __init__(self, name: str, fn: Callable[..., Any], deps: Sequence[str]):
        self.name = name
        self._fn = fn
        self._deps = tuple(deps)
        self._upstream: Optional[Tuple[Node, ...]] = None
        self._downstream: List[Node] = []
        self._cache = _Cache()

    @property
    def dependencies(self) -> Tuple[str, ...]:
        return self._deps

    @property
    def is_dirty(self) -> bool:
        return self._cache.is_dirty

    @property
    def compute_count(self) -> int:
        return self._cache.compute_count

    @property
    def last_value(self) -> Any:
        return self._cache.last_value

    def value(self) -> Any:
        cache = self._cache
        if not cache.is_dirty:
            return cache.read()
        if self._upstream is None:
            raise GraphNotSealed(f"Node '{self.name}' is not part of a sealed graph")

        args = [node.value() for node in self._upstream]
        logging.debug(f"Recomputing '{self.name}'")
        return cache.compute(self._fn, args)

    def invalidate(self, source: Optional[Node] = None) -> List[str]:
        if not self._cache.mark_dirty():
            return []
        return [self.name] + _push(self, self._downstream)

    def bind(self, upstream: Sequence[Node]) -> None:
        self._upstream = tuple(upstream)

    def add_dependent(self, node: Node) -> None:
        self._downstream.append(node)

    def __repr__(self) -> str:
        state = "dirty" if self.is_dirty else "clean"
        return f"ReactiveNode({self.name!r}, {state})"


class EventNode:
    """
    Derived value recomputed only when its trigger counter advances.

    The trigger is an ordinary node (normally an input) whose value is a
    monotonic counter. Data dependencies are pulled at recompute time, so a
    triggered recompute always sees current data, but a data change on its
    own only sets ``data_stale``.
    """

    kind = NodeKind.EVENT

    def __init__(
        self,
        name: str,
        fn: Callable[..., Any],
        trigger: str,
        deps: Sequence[str],
    ):
        self.name = name
        self._fn = fn
        self._trigger_name = trigger
        self._deps = tuple(deps)
        self._trigger: Optional[Node] = None
        self._data: Optional[Tuple[Node, ...]] = None
        self._downstream: List[Node] = []
        self._cache = _Cache()
        self._last_trigger: Any = _MISSING
        self.data_stale = False

    @property
    def dependencies(self) -> Tuple[str, ...]:
        return (self._trigger_name,) + self._deps

    @property
    def trigger(self) -> str:
        return self._trigger_name

    @property
    def is_dirty(self) -> bool:
        return self._cache.is_dirty

    @property
    def compute_count(self) -> int:
        return self._cache.compute_count

    @property
    def last_value(self) -> Any:
        return self._cache.last_value

    def value(self) -> Any:
        cache = self._cache
        if not cache.is_dirty:
            return cache.read()
        if self._trigger is None or self._data is None:
            raise GraphNotSealed(f"Node '{self.name}' is not part of a sealed graph")

        counter = self._trigger.value()
        if not cache.is_empty and counter == self._last_trigger:
            logging.debug(f"Trigger for '{self.name}' unchanged, keeping cached value")
            cache.is_dirty = False
            return cache.read()

        args = [node.value() for node in self._data]
        logging.debug(f"Recomputing event node '{self.name}' at trigger {counter!r}")
        self._last_trigger = counter
        self.data_stale = False
        return cache.compute(self._fn, args)

    def invalidate(self, source: Optional[Node] = None) -> List[str]:
        if source is not None and source is not self._trigger:
            self.data_stale = True
            return []
        if not self._cache.mark_dirty():
            return []
        return [self.name] + _push(self, self._downstream)

    def bind(self, upstream: Sequence[Node]) -> None:
        self._trigger = upstream[0]
        self._data = tuple(upstream[1:])

    def add_dependent(self, node: Node) -> None:
        self._downstream.append(node)

    def __repr__(self) -> str:
        state = "dirty" if self.is_dirty else "clean"
        return f"EventNode({self.name!r}, trigger={self._trigger_name!r}, {state})"


class DependencyGraph:
    """
    Owns a set of named nodes and the edges between them.

    Declare nodes with ``input``, ``derive`` and ``event``, then call
    ``seal``. Dependencies may name nodes declared later; they are resolved
    when sealing.
    """

    def __init__(self):
        self._nodes: Dict[str, Node] = {}
        self._order: Optional[List[str]] = None
        self._topology: Optional[IncrementalTopoSort[str]] = None
        self._observers: Dict[str, List[Callable[[str], None]]] = defaultdict(list)

    # ========================================================================
    # DECLARATION
    # ========================================================================

    def _declare(self, node: Node) -> Node:
        if self._order is not None:
            raise InvalidArgument(f"Cannot declare '{node.name}': graph is sealed")
        if node.name in self._nodes:
            raise DuplicateNode(f"Node '{node.name}' is already declared")
        self._nodes[node.name] = node
        return node

    def input(self, name: str, reader: Callable[[], Any]) -> InputNode:
        """Declare a root node whose value is read from external state."""
        return self._declare(InputNode(name, reader))

    def derive(
        self, name: str, fn: Callable[..., Any], deps: Sequence[str] = ()
    ) -> ReactiveNode:
        """Declare a derived node; ``fn`` receives upstream values in ``deps`` order."""
        return self._declare(ReactiveNode(name, fn, deps))

    def event(
        self,
        name: str,
        fn: Callable[..., Any],
        trigger: str,
        deps: Sequence[str] = (),
    ) -> EventNode:
        """Declare a node recomputed only when ``trigger`` advances."""
        return self._declare(EventNode(name, fn, trigger, deps))

    def seal(self) -> "DependencyGraph":
        """
        Validate declarations and wire the nodes together.

        Raises:
            UnknownDependency: If a node names a dependency never declared
            CyclicDependency: If a node depends on itself, directly or not
        """
        if self._order is not None:
            return self

        topology: IncrementalTopoSort[str] = IncrementalTopoSort()
        for name in self._nodes:
            topology.add_node(name)
        for name, node in self._nodes.items():
            for dep in node.dependencies:
                if dep not in self._nodes:
                    raise UnknownDependency(
                        f"Node '{name}' depends on undeclared node '{dep}'"
                    )
                topology.add_edge(dep, name)

        for name, node in self._nodes.items():
            upstream = [self._nodes[dep] for dep in node.dependencies]
            node.bind(upstream)
            for dep in upstream:
                dep.add_dependent(node)

        self._topology = topology
        self._order = topology.topological_sort()
        logging.debug(
            f"Sealed graph with {len(self._nodes)} nodes: {' -> '.join(self._order)}"
        )
        return self

    @property
    def sealed(self) -> bool:
        return self._order is not None

    # ========================================================================
    # PULL / PUSH
    # ========================================================================

    def node(self, name: str) -> Node:
        if self._order is None:
            raise GraphNotSealed("Graph must be sealed before use")
        try:
            return self._nodes[name]
        except KeyError:
            raise UnknownDependency(f"Unknown node '{name}'") from None

    def value(self, name: str) -> Any:
        """Current value of a node, recomputing stale nodes as needed."""
        return self.node(name).value()

    def invalidate(self, name: str) -> List[str]:
        """
        Mark everything downstream of ``name`` stale and notify observers.

        Returns the names that moved from Clean to Dirty, in propagation order.
        """
        changed = self.node(name).invalidate()
        if changed:
            logging.debug(f"Invalidation from '{name}' reached: {', '.join(changed)}")
        for dirty in changed:
            for callback in list(self._observers.get(dirty, ())):
                callback(dirty)
        return changed

    def on_invalidate(
        self, name: str, callback: Callable[[str], None]
    ) -> Callable[[], None]:
        """Call ``callback(name)`` whenever the node goes from Clean to Dirty."""
        self.node(name)
        self._observers[name].append(callback)

        def unsubscribe():
            if callback in self._observers[name]:
                self._observers[name].remove(callback)

        return unsubscribe

    # ========================================================================
    # INTROSPECTION
    # ========================================================================

    def is_dirty(self, name: str) -> bool:
        return self.node(name).is_dirty

    def compute_count(self, name: str) -> int:
        return getattr(self.node(name), "compute_count", 0)

    def last_value(self, name: str, default: Any = None) -> Any:
        """Most recent successfully computed value, ignoring later errors."""
        value = getattr(self.node(name), "last_value", _MISSING)
        return default if value is _MISSING else value

    def dependencies(self, name: str) -> List[str]:
        self.node(name)
        return self._topology.get_dependencies(name)

    def dependents(self, name: str) -> List[str]:
        self.node(name)
        return self._topology.get_dependents(name)

    def order(self) -> List[str]:
        """Node names in topological order."""
        if self._order is None:
            raise GraphNotSealed("Graph must be sealed before use")
        return list(self._order)

    def names(self) -> List[str]:
        return list(self._nodes)

    def stats(self) -> Dict[str, Any]:
        kinds = defaultdict(int)
        for node in self._nodes.values():
            kinds[node.kind.value] += 1
        return {
            "nodes": len(self._nodes),
            "inputs": kinds[NodeKind.INPUT.value],
            "derived": kinds[NodeKind.DERIVED.value],
            "events": kinds[NodeKind.EVENT.value],
            "dirty": sum(1 for n in self._nodes.values() if n.is_dirty),
            "recomputes": sum(
                getattr(n, "compute_count", 0) for n in self._nodes.values()
            ),
            "edges": sum(len(n.dependencies) for n in self._nodes.values()),
            "observers": sum(len(obs) for obs in self._observers.values()),
        }

    def __contains__(self, name: str) -> bool:
        return name in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        state = "sealed" if self.sealed else "open"
        return f"DependencyGraph(nodes={len(self._nodes)}, {state})"


__all__ = [
    "NodeKind",
    "Node",
    "InputNode",
    "ReactiveNode",
    "EventNode",
    "DependencyGraph",
]
