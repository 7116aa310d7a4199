"""
Exceptions raised by the injuryflow engine.

Population lookup misses are not represented here: an age/sex group without
reference population gets a ``None`` rate instead of an error.
"""

from typing import List, Optional


class InjuryflowError(Exception):
    """Base class for all engine errors."""

    pass


class InvalidArgument(InjuryflowError, ValueError):
    """Raised when an aggregation parameter or session input is rejected."""

    pass


class EmptySelection(InjuryflowError):
    """Raised when sampling from an empty record set."""

    pass


class CyclicDependency(InjuryflowError):
    """Raised when node declarations form a dependency cycle."""

    def __init__(self, message: str, cycle: Optional[List[str]] = None):
        super().__init__(message)
        self.cycle = cycle or []


class UnknownDependency(InjuryflowError, KeyError):
    """Raised when a node declares a dependency that was never declared."""

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else ""


class DuplicateNode(InjuryflowError):
    """Raised when two nodes are declared under the same name."""

    pass


class GraphNotSealed(InjuryflowError):
    """Raised when a graph is read before it has been sealed."""

    pass


__all__ = [
    "InjuryflowError",
    "InvalidArgument",
    "EmptySelection",
    "CyclicDependency",
    "UnknownDependency",
    "DuplicateNode",
    "GraphNotSealed",
]
