"""
injuryflow - Incremental Dataflow for Injury-Record Exploration

A small reactive engine: a product selection filters the injury records,
derived nodes aggregate them into weighted top-N tables and an age/sex rate
table, and an event node samples a narrative when its trigger advances.
Only stale nodes are recomputed, and only when pulled.
"""

from .aggregation import (
    BODY_PART,
    DIAGNOSIS,
    LOCATION,
    OTHER,
    TOP_N_GROUPINGS,
    AgeSexRow,
    AggregationSpec,
    YAxisMode,
    age_sex_summary,
    plot_series,
    sample_narrative,
    weighted_top_n,
)
from .config import EngineConfig
from .errors import (
    CyclicDependency,
    DuplicateNode,
    EmptySelection,
    GraphNotSealed,
    InjuryflowError,
    InvalidArgument,
    UnknownDependency,
)
from .graph import DependencyGraph, EventNode, InputNode, NodeKind, ReactiveNode
from .session import Session, SessionInputs, build_graph
from .tables import Record, TabularStore

__all__ = [
    # Tables
    "Record",
    "TabularStore",
    # Aggregation
    "weighted_top_n",
    "age_sex_summary",
    "plot_series",
    "sample_narrative",
    "AgeSexRow",
    "AggregationSpec",
    "YAxisMode",
    "DIAGNOSIS",
    "BODY_PART",
    "LOCATION",
    "TOP_N_GROUPINGS",
    "OTHER",
    # Graph
    "DependencyGraph",
    "ReactiveNode",
    "EventNode",
    "InputNode",
    "NodeKind",
    # Session
    "Session",
    "SessionInputs",
    "EngineConfig",
    "build_graph",
    # Exceptions
    "InjuryflowError",
    "InvalidArgument",
    "EmptySelection",
    "CyclicDependency",
    "UnknownDependency",
    "DuplicateNode",
    "GraphNotSealed",
]
