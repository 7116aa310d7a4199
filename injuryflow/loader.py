"""
Build a ``TabularStore`` from the three source tables.

The source files are tab separated:

- ``injuries.tsv.gz`` (or ``injuries.tsv``): trmt_date, age, sex, race,
  body_part, diag, location, prod_code, weight, narrative
- ``products.tsv``: prod_code, title
- ``population.tsv``: age, sex, population

Columns are renamed to the ``Record`` field names and typed; nothing else is
validated here.
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd

from injuryflow.config import EngineConfig
from injuryflow.tables import Record, TabularStore

INJURY_COLUMNS = {
    "trmt_date": "treatment_date",
    "age": "age",
    "sex": "sex",
    "race": "race",
    "body_part": "body_part",
    "diag": "diagnosis",
    "location": "location",
    "prod_code": "product_code",
    "weight": "weight",
    "narrative": "narrative",
}


def _records(injuries: pd.DataFrame) -> List[Record]:
    frame = injuries.rename(columns=INJURY_COLUMNS)[list(INJURY_COLUMNS.values())]
    frame = frame.assign(
        product_code=frame["product_code"].astype("int64"),
        weight=frame["weight"].astype("float64"),
        narrative=frame["narrative"].fillna("").astype(str),
    )
    return [
        Record(
            treatment_date=row.treatment_date,
            age=None if pd.isna(row.age) else int(row.age),
            sex=str(row.sex),
            race=str(row.race),
            body_part=str(row.body_part),
            diagnosis=str(row.diagnosis),
            location=str(row.location),
            product_code=int(row.product_code),
            weight=float(row.weight),
            narrative=row.narrative,
        )
        for row in frame.itertuples(index=False)
    ]


def store_from_frames(
    injuries: pd.DataFrame,
    products: pd.DataFrame,
    population: pd.DataFrame,
    config: Optional[EngineConfig] = None,
) -> TabularStore:
    """Build a store from already parsed data frames."""
    config = config or EngineConfig()

    catalog: List[Tuple[int, str]] = [
        (int(code), str(title))
        for code, title in zip(products["prod_code"], products["title"])
    ]
    reference: Dict[Tuple[int, str], int] = {
        (int(age), str(sex)): int(pop)
        for age, sex, pop in zip(
            population["age"], population["sex"], population["population"]
        )
    }

    return TabularStore(
        _records(injuries),
        catalog,
        reference,
        filter_cache_size=config.filter_cache_size,
    )


def load_store(
    directory: Union[str, Path], config: Optional[EngineConfig] = None
) -> TabularStore:
    """Read the three TSV files from ``directory``."""
    directory = Path(directory)
    injuries_path = directory / "injuries.tsv.gz"
    if not injuries_path.exists():
        injuries_path = directory / "injuries.tsv"

    logging.debug(f"Loading injury tables from {directory}")
    injuries = pd.read_csv(injuries_path, sep="\t")
    products = pd.read_csv(directory / "products.tsv", sep="\t")
    population = pd.read_csv(directory / "population.tsv", sep="\t")

    return store_from_frames(injuries, products, population, config)


__all__ = ["INJURY_COLUMNS", "store_from_frames", "load_store"]
