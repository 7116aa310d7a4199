"""Tests for EngineConfig validation."""

import pytest

from injuryflow import EngineConfig, InvalidArgument, YAxisMode


@pytest.mark.unit
class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()

        assert config.seed is None
        assert config.table_rows == 5
        assert config.initial_product is None
        assert config.y_axis is YAxisMode.COUNT
        assert config.filter_cache_size == 64

    def test_y_axis_by_value(self):
        assert EngineConfig(y_axis="rate").y_axis is YAxisMode.RATE

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"table_rows": 0},
            {"table_rows": 2.5},
            {"table_rows": True},
            {"filter_cache_size": 0},
            {"y_axis": "percent"},
        ],
    )
    def test_rejected_values(self, kwargs):
        with pytest.raises(InvalidArgument):
            EngineConfig(**kwargs)

    def test_frozen(self):
        config = EngineConfig()
        with pytest.raises(AttributeError):
            config.seed = 3
