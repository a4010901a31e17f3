"""
Tests for hold-out metrics and stratified breakdowns.

Run with: pytest tests/test_evaluation.py -v
"""

import numpy as np
import pandas as pd
import pytest

from clarity.evaluation import (
    METRIC_NAMES,
    compute_metrics,
    evaluate,
    stratified_breakdowns,
    stratified_metrics,
)


class TestComputeMetrics:

    def test_perfect_predictions_are_zero(self):
        actual = np.array([0.5, 1.2, 3.0, 7.5])
        m = compute_metrics(actual, actual.copy())
        assert m.n == 4
        for name in METRIC_NAMES[1:]:
            assert getattr(m, name) == 0.0

    def test_known_values(self):
        m = compute_metrics([1, 2, 3, 4], [2, 2, 3, 2])
        assert m.rmse == pytest.approx(np.sqrt(5 / 4))
        assert m.mae == pytest.approx(0.75)
        assert m.bias == pytest.approx(-0.25)
        assert m.pbias == pytest.approx(-10.0)
        assert m.mape == pytest.approx(37.5)
        assert m.smape == pytest.approx(100 / 3)

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            compute_metrics([1, 2], [1, 2, 3])

    def test_empty(self):
        with pytest.raises(ValueError):
            compute_metrics([], [])


class TestStratified:

    def _predictions(self):
        return pd.DataFrame({
            "sensor": ["LT05", "LT05", "LC08", "LC08", "LC08"],
            "actual": [1.0, 2.0, 3.0, 4.0, 5.0],
            "predicted": [1.0, 2.0, 3.5, 4.0, 4.5],
        })

    def test_one_row_per_category(self):
        table = stratified_metrics(self._predictions(), "sensor")
        assert list(table.columns) == ["sensor"] + METRIC_NAMES
        assert list(table["sensor"]) == ["LC08", "LT05"]
        assert table["n"].sum() == 5
        lt05 = table[table["sensor"] == "LT05"].iloc[0]
        assert lt05["rmse"] == 0.0

    def test_unknown_column(self):
        with pytest.raises(ValueError):
            stratified_metrics(self._predictions(), "region")

    def test_breakdowns_skip_missing_covariates(self):
        breakdowns = stratified_breakdowns(self._predictions(), ["sensor", "year"])
        assert list(breakdowns) == ["sensor"]


class TestEvaluate:

    def test_holdout_predictions(self, trained_model, training_data):
        _, holdout, _ = training_data
        result = evaluate(trained_model, holdout)

        preds = result.predictions
        assert len(preds) == len(holdout)
        assert preds.index.equals(holdout.features.index)
        assert np.allclose(preds["residual"], preds["predicted"] - preds["actual"])
        assert result.metrics.n == len(holdout)
        assert result.metrics.rmse < holdout.target.std()

    def test_breakdowns_cover_holdout(self, trained_model, training_data):
        _, holdout, _ = training_data
        predictions = evaluate(trained_model, holdout).predictions
        breakdowns = stratified_breakdowns(predictions)
        assert set(breakdowns) == {"lake_size", "sensor", "year"}
        for table in breakdowns.values():
            assert table["n"].sum() == len(holdout)

    def test_requires_target(self, trained_model, training_data):
        _, holdout, _ = training_data
        unlabelled = type(holdout)(features=holdout.features, target=None, metadata=holdout.metadata)
        with pytest.raises(ValueError):
            evaluate(trained_model, unlabelled)
