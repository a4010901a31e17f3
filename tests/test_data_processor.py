"""
Tests for observation loading, the input contract and run diagnostics.

Run with: pytest tests/test_data_processor.py -v
"""

import pandas as pd
import pytest

from clarity.data_processor import DataProcessor
from clarity.diagnostics import ExclusionReport
from clarity.validation import validate_param_grid, validate_runtime_parameters, validate_system_startup


class TestDataIntegrity:

    def test_valid_table_passes(self, observations):
        assert DataProcessor().validate_data_integrity(observations)

    def test_missing_column(self, observations):
        with pytest.raises(ValueError, match="missing"):
            DataProcessor().validate_data_integrity(observations.drop(columns=["region"]))

    def test_target_optional_for_prediction(self, observations):
        unlabelled = observations.drop(columns=["secchi"])
        assert DataProcessor().validate_data_integrity(unlabelled, require_target=False)

    def test_unknown_sensor(self, observations):
        observations.loc[0, "sensor"] = "S2A"
        with pytest.raises(ValueError, match="S2A"):
            DataProcessor().validate_data_integrity(observations)

    def test_missing_sensor_code(self, observations):
        observations.loc[0, "sensor"] = None
        with pytest.raises(ValueError, match="no sensor"):
            DataProcessor().validate_data_integrity(observations)

    def test_duplicate_ids(self, observations):
        observations.loc[1, "obs_id"] = observations.loc[0, "obs_id"]
        with pytest.raises(ValueError, match="duplicate"):
            DataProcessor().validate_data_integrity(observations)

    @pytest.mark.parametrize("value", [0.0, -1.0, 20.0, float("nan")])
    def test_target_out_of_range(self, observations, value):
        observations.loc[0, "secchi"] = value
        with pytest.raises(ValueError):
            DataProcessor().validate_data_integrity(observations)


class TestLoading:

    def test_prepare_sorts_and_parses(self, observations):
        shuffled = observations.sample(frac=1.0, random_state=0)
        shuffled["date"] = shuffled["date"].dt.strftime("%Y-%m-%d")
        data = DataProcessor().prepare(shuffled)
        assert pd.api.types.is_datetime64_any_dtype(data["date"])
        assert data.index.equals(pd.RangeIndex(len(observations)))
        keys = list(zip(data["location_id"], data["date"], data["obs_id"]))
        assert keys == sorted(keys)

    @pytest.mark.parametrize("column", ["date", "obs_id"])
    def test_prepare_missing_key_column(self, observations, column):
        with pytest.raises(ValueError, match="Critical columns missing"):
            DataProcessor().prepare(observations.drop(columns=[column]))

    def test_prepare_can_keep_caller_order(self, observations):
        shuffled = observations.sample(frac=1.0, random_state=0)
        data = DataProcessor().prepare(shuffled, require_target=False, sort=False)
        assert data.index.equals(shuffled.index)
        assert list(data["obs_id"]) == list(shuffled["obs_id"])

    def test_csv_and_parquet_agree(self, observations, tmp_path):
        observations.to_csv(tmp_path / "obs.csv", index=False)
        observations.to_parquet(tmp_path / "obs.parquet", engine="pyarrow")
        processor = DataProcessor()
        from_csv = processor.load_observations(tmp_path / "obs.csv")
        from_parquet = processor.load_observations(tmp_path / "obs.parquet")
        assert len(from_csv) == len(from_parquet) == len(observations)
        assert list(from_csv["obs_id"]) == list(from_parquet["obs_id"])


class TestExclusionReport:

    def test_counts_by_stage_and_reason(self):
        report = ExclusionReport()
        report.record("features", "zero_denominator", 3)
        report.record("features", "zero_denominator", 2)
        report.record("harmonization", "missing_correction", 4, "sensor LT05")
        report.record("features", "non_finite_feature", 0)

        assert report.count("features", "zero_denominator") == 5
        assert report.count("features") == 5
        assert report.total() == 9
        assert report.by_stage() == {"features": 5, "harmonization": 4}
        assert report.as_dict()["harmonization"] == {"missing_correction": 4}

        frame = report.to_frame()
        assert list(frame.columns) == ["stage", "reason", "count", "detail"]
        assert len(frame) == 2

    def test_empty_report(self):
        report = ExclusionReport()
        assert report.total() == 0
        assert report.to_frame().empty


class TestValidation:

    def test_config_is_consistent(self):
        assert validate_system_startup()

    @pytest.mark.parametrize("kwargs", [
        {"n_folds": 2},
        {"n_folds": 3.5},
        {"holdout_fraction": 0.0},
        {"holdout_fraction": 1.0},
        {"n_folds": 5, "n_time_groups": 4},
        {"seed": -1},
    ])
    def test_runtime_parameters_rejected(self, kwargs):
        with pytest.raises(ValueError):
            validate_runtime_parameters(**kwargs)

    def test_param_grid_rejected(self):
        with pytest.raises(ValueError):
            validate_param_grid({"learning_rate": 0.1})
