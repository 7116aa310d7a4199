"""
Pure aggregation functions over injury records.

Everything here is stateless and deterministic given its inputs: weighted
top-N frequency tables, the age/sex rate table, the plot series derived from
it, and narrative sampling (deterministic given the random generator).
"""

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from operator import attrgetter
from typing import Callable, Dict, Hashable, List, Optional, Sequence, Tuple, Union

import numpy as np

from injuryflow.errors import EmptySelection, InvalidArgument
from injuryflow.tables import Record

OTHER = "Other"
RATE_SCALE = 10_000

KeySelector = Union[str, Callable[[Record], Hashable]]
PopulationLookup = Callable[[Optional[int], str], Optional[int]]


class YAxisMode(Enum):
    """What the age/sex plot shows on its y axis."""

    COUNT = "count"
    RATE = "rate"


@dataclass(frozen=True, slots=True)
class AgeSexRow:
    age: int
    sex: str
    weighted_count: float
    population: Optional[int]
    rate: Optional[float]


@dataclass(frozen=True)
class AggregationSpec:
    """A named top-N grouping of records by one key.

    ``label`` is the column heading shown by the presentation layer.
    """

    name: str
    key: KeySelector
    label: str

    def apply(self, records: Sequence[Record], n: int) -> List[Tuple[Hashable, float]]:
        return weighted_top_n(records, self.key, n)


DIAGNOSIS = AggregationSpec("diagnosis", "diagnosis", "Diagnosis")
BODY_PART = AggregationSpec("body_part", "body_part", "Body part")
LOCATION = AggregationSpec("location", "location", "Location")

TOP_N_GROUPINGS = (DIAGNOSIS, BODY_PART, LOCATION)


def _selector(key_selector: KeySelector) -> Callable[[Record], Hashable]:
    if isinstance(key_selector, str):
        if key_selector not in Record.__dataclass_fields__:
            raise InvalidArgument(f"Unknown record field: {key_selector!r}")
        return attrgetter(key_selector)
    if not callable(key_selector):
        raise InvalidArgument("Key selector must be a field name or callable")
    return key_selector


def weighted_top_n(
    records: Sequence[Record], key_selector: KeySelector, n: int
) -> List[Tuple[Hashable, float]]:
    """
    Weighted frequency table of the ``n`` largest groups plus an "Other" row.

    Groups are ranked by the sum of their records' weights, descending.
    Equal weights keep the order in which each group was first seen, which
    makes the cut between rank n and n+1 reproducible. The remaining groups
    are merged into a single ``"Other"`` row; if there is nothing to merge,
    no such row is produced.

    Args:
        records: Records to aggregate
        key_selector: Record field name, or a callable returning the group key
        n: Number of groups to keep, at least 1

    Raises:
        InvalidArgument: If ``n`` is not a positive integer or the key
            selector is unusable
    """
    if isinstance(n, bool) or not isinstance(n, (int, np.integer)) or n < 1:
        raise InvalidArgument(f"n must be a positive integer, got {n!r}")
    select = _selector(key_selector)

    # dict preserves first-encountered order
    totals: Dict[Hashable, float] = {}
    for record in records:
        key = select(record)
        totals[key] = totals.get(key, 0.0) + record.weight

    ranked = sorted(totals.items(), key=lambda item: -item[1])
    top = ranked[:n]
    rest = ranked[n:]
    if rest:
        top.append((OTHER, sum(count for _, count in rest)))
    return top


def age_sex_summary(
    records: Sequence[Record], lookup_population: PopulationLookup
) -> List[AgeSexRow]:
    """
    Weighted counts per (age, sex), joined to the population reference.

    ``rate`` is injuries per 10,000 people. Groups the reference does not
    cover (ages past 80) keep their weighted count with ``population`` and
    ``rate`` set to None. Records without an age are left out.
    """
    totals: Dict[Tuple[int, str], float] = defaultdict(float)
    for record in records:
        if record.age is None:
            continue
        totals[(record.age, record.sex)] += record.weight

    rows = []
    for (age, sex), count in sorted(totals.items(), key=lambda item: item[0]):
        population = lookup_population(age, sex)
        rate = None if population is None else count / population * RATE_SCALE
        rows.append(AgeSexRow(age, sex, count, population, rate))
    return rows


def plot_series(
    summary: Sequence[AgeSexRow], mode: YAxisMode
) -> List[Tuple[int, str, float]]:
    """(age, sex, y) points for the chosen y axis; undefined rates are dropped."""
    if YAxisMode(mode) is YAxisMode.COUNT:
        return [(row.age, row.sex, row.weighted_count) for row in summary]
    return [(row.age, row.sex, row.rate) for row in summary if row.rate is not None]


def sample_narrative(records: Sequence[Record], rng: np.random.Generator) -> str:
    """Pick one narrative uniformly at random."""
    if not records:
        raise EmptySelection("Cannot sample a narrative from an empty selection")
    return records[int(rng.integers(len(records)))].narrative


__all__ = [
    "OTHER",
    "RATE_SCALE",
    "YAxisMode",
    "AgeSexRow",
    "AggregationSpec",
    "DIAGNOSIS",
    "BODY_PART",
    "LOCATION",
    "TOP_N_GROUPINGS",
    "weighted_top_n",
    "age_sex_summary",
    "plot_series",
    "sample_narrative",
]
