"""
Tests for cross-sensor harmonization.

Run with: pytest tests/test_harmonization.py -v
"""

import numpy as np
import pandas as pd
import pytest

from clarity.diagnostics import ExclusionReport
from clarity.exceptions import DataInsufficiencyError
from clarity.harmonization import HarmonizationModel, apply_harmonization, fit_harmonization


def _paired_frame(n_windows=20, seed=1, extra_sensor_rows=0):
    """Sensor A (reference) and sensor B with b = 2a + 1, one pair per lake-month."""
    rng = np.random.default_rng(seed)
    rows = []
    for i in range(n_windows):
        loc = f"L{i % 4}"
        date = pd.Timestamp(2020, 1 + i // 4, 10)
        a = rng.uniform(0.01, 0.1)
        rows.append({"obs_id": f"a{i}", "location_id": loc, "sensor": "A", "date": date, "blue": a})
        rows.append({"obs_id": f"b{i}", "location_id": loc, "sensor": "B", "date": date, "blue": 2 * a + 1})
    for j in range(extra_sensor_rows):
        rows.append({"obs_id": f"c{j}", "location_id": "L0", "sensor": "C",
                     "date": pd.Timestamp(2020, 1, 10), "blue": 0.05})
    return pd.DataFrame(rows)


class TestLinearRecovery:
    """A known linear distortion is inverted exactly."""

    @pytest.mark.parametrize("pairing", ["window", "quantile"])
    def test_recovers_reference_scale(self, pairing):
        df = _paired_frame()
        model = fit_harmonization(df, bands=["blue"], reference_sensor="A", pairing=pairing)

        correction = model.corrections[("blue", "B")]
        assert correction.slope == pytest.approx(0.5)
        assert correction.intercept == pytest.approx(-0.5)

        out = apply_harmonization(model, df)
        a = out.loc[out["sensor"] == "A", "blue"].to_numpy()
        b = out.loc[out["sensor"] == "B", "blue"].to_numpy()
        assert np.allclose(a, b, atol=1e-9)

    def test_reference_rows_unchanged(self):
        df = _paired_frame()
        model = fit_harmonization(df, bands=["blue"], reference_sensor="A")
        out = apply_harmonization(model, df)
        ref = df["sensor"] == "A"
        assert out.loc[ref, "blue"].equals(df.loc[ref, "blue"])
        assert np.array_equal(model.predict("blue", "A", [0.1, 0.2]), [0.1, 0.2])

    def test_apply_returns_copy(self):
        df = _paired_frame()
        before = df.copy()
        model = fit_harmonization(df, bands=["blue"], reference_sensor="A")
        apply_harmonization(model, df)
        pd.testing.assert_frame_equal(df, before)

    def test_synthetic_sensors(self, observations):
        """Landsat sensors distorted with known coefficients are recovered closely."""
        model = fit_harmonization(observations, pairing="quantile", reference_sensor="LC08")
        for band in ["blue", "red", "nir"]:
            lt05 = model.corrections[(band, "LT05")]
            assert lt05.slope == pytest.approx(1.1, rel=0.1)
            assert lt05.r2 > 0.95


class TestInsufficientData:

    def test_strict_raises(self):
        df = _paired_frame(extra_sensor_rows=1)
        with pytest.raises(DataInsufficiencyError):
            fit_harmonization(df, bands=["blue"], reference_sensor="A", strict=True)

    def test_non_strict_skips_and_apply_drops(self):
        df = _paired_frame(extra_sensor_rows=3)
        exclusions = ExclusionReport()
        model = fit_harmonization(df, bands=["blue"], reference_sensor="A",
                                  strict=False, exclusions=exclusions)

        assert not model.has_correction("blue", "C")
        assert exclusions.count("harmonization", "insufficient_pairs") == 1

        out = apply_harmonization(model, df, exclusions=exclusions)
        assert "C" not in set(out["sensor"])
        assert len(out) == len(df) - 3
        assert exclusions.count("harmonization", "missing_correction") == 3

    def test_predict_without_correction_raises(self):
        model = HarmonizationModel(reference_sensor="A", bands=("blue",))
        with pytest.raises(DataInsufficiencyError):
            model.predict("blue", "B", [0.1])

    def test_constant_sensor_values_rejected(self):
        df = _paired_frame()
        df.loc[df["sensor"] == "B", "blue"] = 1.0
        with pytest.raises(DataInsufficiencyError):
            fit_harmonization(df, bands=["blue"], reference_sensor="A")

    def test_missing_band_value_dropped(self):
        df = _paired_frame()
        model = fit_harmonization(df, bands=["blue"], reference_sensor="A")
        df.loc[0, "blue"] = np.nan
        exclusions = ExclusionReport()
        out = apply_harmonization(model, df, exclusions=exclusions)
        assert len(out) == len(df) - 1
        assert exclusions.count("harmonization", "missing_band_value") == 1

    def test_row_without_sensor_dropped(self):
        df = _paired_frame()
        model = fit_harmonization(df, bands=["blue"], reference_sensor="A")
        df["sensor"] = df["sensor"].astype(object)
        df.loc[1, "sensor"] = np.nan
        exclusions = ExclusionReport()
        out = apply_harmonization(model, df, exclusions=exclusions)
        assert 1 not in out.index
        assert len(out) == len(df) - 1
        assert exclusions.count("harmonization", "missing_correction") == 1

    def test_unknown_pairing(self):
        with pytest.raises(ValueError):
            fit_harmonization(_paired_frame(), bands=["blue"], reference_sensor="A", pairing="nearest")


class TestModelObject:

    def test_corrections_are_read_only(self):
        model = fit_harmonization(_paired_frame(), bands=["blue"], reference_sensor="A")
        with pytest.raises(TypeError):
            model.corrections[("blue", "Z")] = None

    def test_json_round_trip(self, tmp_path):
        model = fit_harmonization(_paired_frame(), bands=["blue"], reference_sensor="A")
        path = model.save_json(tmp_path / "harmonization.json")
        loaded = HarmonizationModel.load_json(path)

        assert loaded.reference_sensor == "A"
        assert loaded.bands == ("blue",)
        assert loaded.corrections[("blue", "B")] == model.corrections[("blue", "B")]
        assert loaded.sensors() == ("A", "B")
