"""Engine configuration."""

from dataclasses import dataclass
from typing import Optional, Union

from injuryflow.aggregation import YAxisMode
from injuryflow.errors import InvalidArgument


@dataclass(frozen=True)
class EngineConfig:
    """
    Settings shared by a store and the sessions built on it.

    Attributes:
        seed: Seed for narrative sampling; None draws fresh OS entropy
        table_rows: Initial number of rows per top-N table
        initial_product: Product selected at session start; None picks the
            first product by title
        y_axis: Initial y axis of the age/sex plot
        filter_cache_size: Per-product record sets kept by the store
    """

    seed: Optional[int] = None
    table_rows: int = 5
    initial_product: Optional[int] = None
    y_axis: Union[YAxisMode, str] = YAxisMode.COUNT
    filter_cache_size: int = 64

    def __post_init__(self):
        if isinstance(self.table_rows, bool) or not isinstance(self.table_rows, int):
            raise InvalidArgument(f"table_rows must be an integer, got {self.table_rows!r}")
        if self.table_rows < 1:
            raise InvalidArgument(f"table_rows must be at least 1, got {self.table_rows}")
        if self.filter_cache_size < 1:
            raise InvalidArgument(
                f"filter_cache_size must be at least 1, got {self.filter_cache_size}"
            )
        try:
            object.__setattr__(self, "y_axis", YAxisMode(self.y_axis))
        except ValueError:
            raise InvalidArgument(f"Unknown y axis mode: {self.y_axis!r}") from None


__all__ = ["EngineConfig"]
