"""
Immutable in-memory tables for injury records and their reference data.

A ``TabularStore`` holds three tables:

- injury records, one ``Record`` per row, with the product
  code column mirrored into a typed numpy array for indexing;
- the product catalog (``product_code -> title``);
- the population reference (``(age, sex) -> population``, ages 0-80).

The store has no mutating operations. Because of that, it can be shared by
any number of sessions (and threads) without coordination; the only mutable
piece is the filter cache, which is guarded by its own lock.

Example:
    store = TabularStore(records, products, population)
    rows = store.filter_by_product(1842)
    store.lookup_population(34, "female")  # -> int, or None past age 80
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
from cachetools import LRUCache


@dataclass(frozen=True, slots=True)
class Record:
    """One injury row. ``weight`` scales the row to national incidence."""

    treatment_date: Any
    age: Optional[int]
    sex: str
    race: str
    body_part: str
    diagnosis: str
    location: str
    product_code: int
    weight: float
    narrative: str


class TabularStore:
    """
    Read-only container for the injury, product and population tables.

    Filtering by product uses a row index built once at construction; the
    materialized record tuples are memoized in an LRU cache, which is always
    valid since the underlying data never changes.
    """

    def __init__(
        self,
        records: Iterable[Record],
        products: Iterable[Tuple[int, str]],
        population: Mapping[Tuple[int, str], int],
        filter_cache_size: int = 64,
    ):
        self._records: Tuple[Record, ...] = tuple(records)
        self._titles: Dict[int, str] = {int(code): str(title) for code, title in products}
        self._population: Dict[Tuple[int, str], int] = {
            (int(age), str(sex)): int(pop) for (age, sex), pop in population.items()
        }

        # Typed column backing the product index
        self.product_codes = np.fromiter(
            (r.product_code for r in self._records), dtype=np.int64, count=len(self._records)
        )
        self.product_codes.setflags(write=False)

        self._index = self._build_index(self.product_codes)

        self._cache: LRUCache = LRUCache(maxsize=max(1, filter_cache_size))
        self._cache_lock = threading.Lock()
        self._stats = {"filter_calls": 0, "cache_hits": 0, "cache_misses": 0}

        logging.debug(
            f"TabularStore built: {len(self._records)} records, "
            f"{len(self._titles)} products, {len(self._population)} population rows"
        )

    @staticmethod
    def _build_index(codes: np.ndarray) -> Dict[int, np.ndarray]:
        """Map each product code to the row positions holding it, in row order."""
        if codes.size == 0:
            return {}
        # Stable sort keeps original row order within each code
        order = np.argsort(codes, kind="stable")
        sorted_codes = codes[order]
        boundaries = np.flatnonzero(np.diff(sorted_codes)) + 1
        index = {}
        for rows in np.split(order, boundaries):
            rows.setflags(write=False)
            index[int(codes[rows[0]])] = rows
        return index

    # ========================================================================
    # QUERIES
    # ========================================================================

    def filter_by_product(self, code: int) -> Tuple[Record, ...]:
        """All records with the given product code, in original order."""
        code = int(code)
        with self._cache_lock:
            self._stats["filter_calls"] += 1
            cached = self._cache.get(code)
            if cached is not None:
                self._stats["cache_hits"] += 1
                return cached
            self._stats["cache_misses"] += 1

        rows = self._index.get(code)
        if rows is None:
            selected: Tuple[Record, ...] = ()
        else:
            selected = tuple(self._records[i] for i in rows)
        logging.debug(f"Filtered product {code}: {len(selected)} records")

        with self._cache_lock:
            self._cache[code] = selected
        return selected

    def lookup_population(self, age: Optional[int], sex: str) -> Optional[int]:
        """Reference population for (age, sex), or None when not covered."""
        if age is None:
            return None
        return self._population.get((int(age), sex))

    def product_titles(self) -> List[Tuple[int, str]]:
        """(code, title) pairs sorted by title, then code."""
        return sorted(self._titles.items(), key=lambda item: (item[1], item[0]))

    def product_title(self, code: int) -> Optional[str]:
        return self._titles.get(int(code))

    @property
    def records(self) -> Tuple[Record, ...]:
        return self._records

    def stats(self) -> Dict[str, int]:
        with self._cache_lock:
            return {
                "records": len(self._records),
                "products": len(self._titles),
                "population_rows": len(self._population),
                "cached_filters": len(self._cache),
                **self._stats,
            }

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return (
            f"TabularStore(records={len(self._records)}, "
            f"products={len(self._titles)})"
        )


__all__ = ["Record", "TabularStore"]
