"""
Session - One User's Reactive View Over a Shared Store
======================================================

A ``Session`` owns the mutable input state for one user and the dependency
graph computed from it. The presentation layer writes inputs through the
session and pulls outputs from it; the session serializes both, so no
recompute ever overlaps another recompute or an input change.

Graph layout (inputs in brackets):

    [product_code] -> filtered -> diagnosis / body_part / location  <- [table_rows]
                               -> summary -> plot                   <- [y_axis]
                               -> narrative (event)                 <- [story]
    products (no dependencies)

Sessions never share graphs, only the read-only ``TabularStore``.

Example:
    session = Session(store, EngineConfig(seed=7))
    session.select_product(1842)
    session["diagnosis"]        # [(label, weighted_count), ..., ("Other", ...)]
    session.set_y_axis("rate")
    session["plot"]             # [(age, sex, rate), ...]
    session.tell_story()
    session["narrative"]
"""

import logging
import threading
from dataclasses import dataclass, fields
from functools import partial
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from injuryflow.aggregation import (
    TOP_N_GROUPINGS,
    AggregationSpec,
    YAxisMode,
    age_sex_summary,
    plot_series,
    sample_narrative,
)
from injuryflow.config import EngineConfig
from injuryflow.errors import InvalidArgument
from injuryflow.graph import DependencyGraph
from injuryflow.tables import TabularStore

OUTPUTS = ("products", "diagnosis", "body_part", "location", "summary", "plot", "narrative")


@dataclass
class SessionInputs:
    """Input state written by the presentation layer, read by input nodes."""

    product_code: Optional[int] = None
    y_axis: YAxisMode = YAxisMode.COUNT
    table_rows: int = 5
    story: int = 0


def _top_n_node(spec: AggregationSpec) -> Callable[..., Any]:
    def compute(records, rows):
        return spec.apply(records, rows)

    compute.__name__ = f"top_{spec.name}"
    return compute


def build_graph(
    store: TabularStore, inputs: SessionInputs, rng: np.random.Generator
) -> DependencyGraph:
    """Declare and seal the injury pipeline over ``store`` and ``inputs``."""
    graph = DependencyGraph()

    for field in fields(SessionInputs):
        graph.input(field.name, partial(getattr, inputs, field.name))

    graph.derive("products", store.product_titles)
    graph.derive(
        "filtered",
        lambda code: () if code is None else store.filter_by_product(code),
        deps=["product_code"],
    )
    for spec in TOP_N_GROUPINGS:
        graph.derive(spec.name, _top_n_node(spec), deps=["filtered", "table_rows"])
    graph.derive(
        "summary",
        lambda records: age_sex_summary(records, store.lookup_population),
        deps=["filtered"],
    )
    graph.derive("plot", plot_series, deps=["summary", "y_axis"])
    graph.event(
        "narrative",
        lambda records: sample_narrative(records, rng),
        trigger="story",
        deps=["filtered"],
    )

    return graph.seal()


class Session:
    """
    Applies input mutations and exposes current outputs for one user.

    Args:
        store: Shared, read-only tables
        config: Initial inputs and the narrative sampling seed
    """

    def __init__(self, store: TabularStore, config: Optional[EngineConfig] = None):
        self.store = store
        self.config = config or EngineConfig()

        product = self.config.initial_product
        if product is None:
            titles = store.product_titles()
            product = titles[0][0] if titles else None

        self.inputs = SessionInputs(
            product_code=product,
            y_axis=self.config.y_axis,
            table_rows=self.config.table_rows,
        )
        self._rng = np.random.default_rng(self.config.seed)
        self._lock = threading.RLock()
        self.graph = build_graph(store, self.inputs, self._rng)

        logging.info(
            f"Session started: product={product}, y_axis={self.inputs.y_axis.value}, "
            f"rows={self.inputs.table_rows}, seed={self.config.seed}"
        )

    # ========================================================================
    # INPUTS
    # ========================================================================

    def _coerce(self, name: str, value: Any) -> Any:
        if name == "y_axis":
            try:
                return YAxisMode(value)
            except ValueError:
                raise InvalidArgument(f"Unknown y axis mode: {value!r}") from None

        if name == "product_code" and value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
            raise InvalidArgument(f"Input '{name}' must be an integer, got {value!r}")
        value = int(value)

        if name == "table_rows" and value < 1:
            raise InvalidArgument(f"table_rows must be at least 1, got {value}")
        if name == "story" and value < self.inputs.story:
            raise InvalidArgument(
                f"Trigger counter cannot go backwards ({self.inputs.story} -> {value})"
            )
        return value

    def set(self, name: str, value: Any) -> List[str]:
        """
        Write one input and invalidate its dependents.

        Writing the current value again is a no-op. Returns the names of the
        nodes that became Dirty.

        Raises:
            InvalidArgument: If the input name or value is rejected
        """
        if name not in SessionInputs.__dataclass_fields__:
            raise InvalidArgument(f"Unknown input: {name!r}")
        with self._lock:
            value = self._coerce(name, value)
            if getattr(self.inputs, name) == value:
                return []
            setattr(self.inputs, name, value)
            return self.graph.invalidate(name)

    def select_product(self, code: Optional[int]) -> List[str]:
        return self.set("product_code", code)

    def set_y_axis(self, mode: Any) -> List[str]:
        return self.set("y_axis", mode)

    def set_table_rows(self, rows: int) -> List[str]:
        return self.set("table_rows", rows)

    def tell_story(self) -> int:
        """Advance the narrative trigger; returns the new counter value."""
        with self._lock:
            counter = self.inputs.story + 1
            self.set("story", counter)
            return counter

    # ========================================================================
    # OUTPUTS
    # ========================================================================

    def value(self, name: str) -> Any:
        with self._lock:
            return self.graph.value(name)

    def __getitem__(self, name: str) -> Any:
        return self.value(name)

    def last_value(self, name: str, default: Any = None) -> Any:
        with self._lock:
            return self.graph.last_value(name, default)

    def is_dirty(self, name: str) -> bool:
        with self._lock:
            return self.graph.is_dirty(name)

    def on_invalidate(
        self, name: str, callback: Callable[[str], None]
    ) -> Callable[[], None]:
        with self._lock:
            return self.graph.on_invalidate(name, callback)

    def product_title(self) -> Optional[str]:
        code = self.inputs.product_code
        return None if code is None else self.store.product_title(code)

    def snapshot(self) -> Dict[str, Any]:
        """All outputs at once; errors from any node propagate."""
        with self._lock:
            result = {"product_code": self.inputs.product_code}
            for name in OUTPUTS:
                result[name] = self.graph.value(name)
            return result

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return self.graph.stats()

    def __repr__(self) -> str:
        return (
            f"Session(product={self.inputs.product_code}, "
            f"y_axis={self.inputs.y_axis.value}, story={self.inputs.story})"
        )


__all__ = ["OUTPUTS", "SessionInputs", "Session", "build_graph"]
