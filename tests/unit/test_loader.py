"""Tests for building a store from source tables."""

import pandas as pd
import pytest

from injuryflow import EngineConfig, age_sex_summary
from injuryflow.loader import load_store, store_from_frames


def _frames():
    injuries = pd.DataFrame(
        {
            "trmt_date": ["2017-01-01", "2017-01-02", "2017-01-03"],
            "age": [0, None, 85],
            "sex": ["female", "male", "male"],
            "race": ["white", "black", "none listed"],
            "body_part": ["Head", "Arm", "Leg"],
            "diag": ["Fracture", "Laceration", "Fracture"],
            "location": ["Home", "Home", "Public"],
            "prod_code": [1842, 1842, 649],
            "weight": [4.76, 2.5, 1.0],
            "narrative": ["FELL DOWN STAIRS", None, "SLIPPED"],
        }
    )
    products = pd.DataFrame({"prod_code": [1842, 649], "title": ["stairs or steps", "toilets"]})
    population = pd.DataFrame(
        {"age": [0, 0], "sex": ["female", "male"], "population": [1924145, 2015150]}
    )
    return injuries, products, population


@pytest.mark.unit
class TestStoreFromFrames:
    def test_columns_are_renamed_and_typed(self):
        store = store_from_frames(*_frames())

        first, second = store.filter_by_product(1842)
        assert first.diagnosis == "Fracture"
        assert first.age == 0
        assert first.product_code == 1842
        assert first.weight == pytest.approx(4.76)
        assert second.age is None
        assert second.narrative == ""

    def test_reference_tables(self):
        store = store_from_frames(*_frames())

        assert store.product_titles() == [(1842, "stairs or steps"), (649, "toilets")]
        assert store.lookup_population(0, "male") == 2015150
        assert store.lookup_population(85, "male") is None

    def test_rates_from_loaded_tables(self):
        store = store_from_frames(*_frames())

        rows = age_sex_summary(store.filter_by_product(1842), store.lookup_population)

        assert len(rows) == 1
        assert rows[0].rate == pytest.approx(0.0247, abs=1e-3)

    def test_config_sets_cache_size(self):
        store = store_from_frames(*_frames(), config=EngineConfig(filter_cache_size=1))

        store.filter_by_product(1842)
        store.filter_by_product(649)
        store.filter_by_product(1842)

        assert store.stats()["cache_misses"] == 3


@pytest.mark.unit
class TestLoadStore:
    def test_reads_tsv_files(self, tmp_path):
        injuries, products, population = _frames()
        injuries.to_csv(tmp_path / "injuries.tsv.gz", sep="\t", index=False)
        products.to_csv(tmp_path / "products.tsv", sep="\t", index=False)
        population.to_csv(tmp_path / "population.tsv", sep="\t", index=False)

        store = load_store(tmp_path)

        assert len(store) == 3
        assert [r.narrative for r in store.filter_by_product(649)] == ["SLIPPED"]

    def test_uncompressed_injuries(self, tmp_path):
        injuries, products, population = _frames()
        injuries.to_csv(tmp_path / "injuries.tsv", sep="\t", index=False)
        products.to_csv(tmp_path / "products.tsv", sep="\t", index=False)
        population.to_csv(tmp_path / "population.tsv", sep="\t", index=False)

        store = load_store(str(tmp_path))

        assert store.product_title(1842) == "stairs or steps"
