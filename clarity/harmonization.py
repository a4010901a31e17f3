"""
Sensor Harmonization
====================

Per-band linear corrections that project each sensor's surface reflectance
onto the reference sensor's radiometric scale.

Fitting pairs the reference sensor with every other sensor at shared
reference points (same lake and acquisition window, or the same percentile
of the shared-lake distribution), one column per sensor, and regresses the
reference value on the other sensor's value. The result is an explicit
``(band, sensor) -> BandCorrection`` map that is immutable once fit.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

import config
from .diagnostics import ExclusionReport
from .exceptions import DataInsufficiencyError
from .logging_config import get_logger

logger = get_logger(__name__)

STAGE = "harmonization"


@dataclass(frozen=True)
class BandCorrection:
    """Linear map ``reference = intercept + slope * sensor`` for one band."""

    band: str
    sensor: str
    intercept: float
    slope: float
    n_pairs: int
    r2: float

    def predict(self, values):
        return self.intercept + self.slope * np.asarray(values, dtype=float)

    def as_dict(self) -> dict:
        return {
            "band": self.band,
            "sensor": self.sensor,
            "intercept": self.intercept,
            "slope": self.slope,
            "n_pairs": self.n_pairs,
            "r2": self.r2,
        }


@dataclass(frozen=True)
class HarmonizationModel:
    reference_sensor: str
    bands: Tuple[str, ...]
    corrections: Mapping[Tuple[str, str], BandCorrection] = field(default_factory=dict)
    pairing: str = "window"

    def __post_init__(self):
        object.__setattr__(self, "bands", tuple(self.bands))
        object.__setattr__(self, "corrections", MappingProxyType(dict(self.corrections)))

    def has_correction(self, band: str, sensor: str) -> bool:
        return sensor == self.reference_sensor or (band, sensor) in self.corrections

    def sensors(self) -> Tuple[str, ...]:
        """Sensors with a correction for every band, reference first."""
        others = sorted({s for _, s in self.corrections})
        complete = [s for s in others if all((b, s) in self.corrections for b in self.bands)]
        return (self.reference_sensor, *complete)

    def predict(self, band: str, sensor: str, values):
        if sensor == self.reference_sensor:
            return np.asarray(values, dtype=float)
        try:
            correction = self.corrections[(band, sensor)]
        except KeyError:
            raise DataInsufficiencyError(
                f"No harmonization model for band '{band}' and sensor '{sensor}'"
            ) from None
        return correction.predict(values)

    def to_dict(self) -> dict:
        return {
            "reference_sensor": self.reference_sensor,
            "bands": list(self.bands),
            "pairing": self.pairing,
            "corrections": [c.as_dict() for c in self.corrections.values()],
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "HarmonizationModel":
        corrections = {}
        for item in payload.get("corrections", []):
            c = BandCorrection(
                band=item["band"],
                sensor=item["sensor"],
                intercept=float(item["intercept"]),
                slope=float(item["slope"]),
                n_pairs=int(item["n_pairs"]),
                r2=float(item["r2"]),
            )
            corrections[(c.band, c.sensor)] = c
        return cls(
            reference_sensor=payload["reference_sensor"],
            bands=tuple(payload["bands"]),
            corrections=corrections,
            pairing=payload.get("pairing", "window"),
        )

    def save_json(self, path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w") as f:
            json.dump(self.to_dict(), f, indent=2)
        logger.info("Saved harmonization model (%d corrections) to %s", len(self.corrections), path)
        return path

    @classmethod
    def load_json(cls, path) -> "HarmonizationModel":
        with Path(path).open() as f:
            return cls.from_dict(json.load(f))


# ---------------------------------------------------------------------------
# Pairing
# ---------------------------------------------------------------------------

def _window_pairs(df: pd.DataFrame, band: str, window: str) -> pd.DataFrame:
    """Median reflectance per (lake, acquisition window), one column per sensor."""
    keyed = df[[config.LOCATION_COL, config.SENSOR_COL, band]].copy()
    keyed["window"] = pd.to_datetime(df[config.DATE_COL]).dt.to_period(window)
    keyed = keyed.dropna(subset=[band])
    return keyed.pivot_table(
        index=[config.LOCATION_COL, "window"],
        columns=config.SENSOR_COL,
        values=band,
        aggfunc="median",
    )


def _quantile_pairs(df: pd.DataFrame, band: str, reference: str, sensor: str,
                    quantiles: Sequence[float]) -> pd.DataFrame:
    """Percentiles of each sensor's reflectance over lakes both sensors observe."""
    loc = config.LOCATION_COL
    ref_rows = df[df[config.SENSOR_COL] == reference]
    sen_rows = df[df[config.SENSOR_COL] == sensor]
    shared = np.intersect1d(ref_rows[loc].unique(), sen_rows[loc].unique())

    ref_values = ref_rows.loc[ref_rows[loc].isin(shared), band].dropna().to_numpy()
    sen_values = sen_rows.loc[sen_rows[loc].isin(shared), band].dropna().to_numpy()
    if len(ref_values) == 0 or len(sen_values) == 0:
        return pd.DataFrame(columns=[reference, sensor], dtype=float)

    return pd.DataFrame({
        reference: np.quantile(ref_values, quantiles),
        sensor: np.quantile(sen_values, quantiles),
    }, index=pd.Index(quantiles, name="quantile"))


def _fit_band(pairs: pd.DataFrame, band: str, reference: str, sensor: str,
              min_pairs: int) -> BandCorrection:
    if reference not in pairs.columns or sensor not in pairs.columns:
        raise DataInsufficiencyError(
            f"No paired observations for band '{band}' between {sensor} and {reference}"
        )
    both = pairs[[sensor, reference]].dropna()
    n_pairs = len(both)
    if n_pairs < max(2, min_pairs):
        raise DataInsufficiencyError(
            f"Only {n_pairs} paired observations for band '{band}' between "
            f"{sensor} and {reference} (need {max(2, min_pairs)})"
        )
    x = both[[sensor]].to_numpy(dtype=float)
    y = both[reference].to_numpy(dtype=float)
    if np.ptp(x) == 0:
        raise DataInsufficiencyError(
            f"Constant {sensor} reflectance for band '{band}'; slope is undefined"
        )

    reg = LinearRegression().fit(x, y)
    r2 = float(reg.score(x, y)) if np.ptp(y) > 0 else 1.0
    correction = BandCorrection(
        band=band,
        sensor=sensor,
        intercept=float(reg.intercept_),
        slope=float(reg.coef_[0]),
        n_pairs=int(n_pairs),
        r2=r2,
    )
    logger.debug("Fit %s/%s: ref = %.5f + %.5f * x (n=%d, r2=%.3f)",
                 band, sensor, correction.intercept, correction.slope, n_pairs, r2)
    return correction


def fit_harmonization(
    df: pd.DataFrame,
    bands: Optional[Iterable[str]] = None,
    reference_sensor: Optional[str] = None,
    pairing: Optional[str] = None,
    window: Optional[str] = None,
    quantiles: Optional[Sequence[float]] = None,
    min_pairs: Optional[int] = None,
    strict: bool = True,
    exclusions: Optional[ExclusionReport] = None,
) -> HarmonizationModel:
    """
    Fit one correction per (band, non-reference sensor).

    With ``strict=True`` a slice with fewer than two pairs raises
    DataInsufficiencyError. With ``strict=False`` the slice is skipped and
    recorded, and ``apply_harmonization`` later drops that sensor's rows.
    """
    bands = list(bands or config.BANDS)
    reference = reference_sensor or config.REFERENCE_SENSOR
    pairing = pairing or getattr(config, "HARMONIZATION_PAIRING", "window")
    window = window or getattr(config, "HARMONIZATION_WINDOW", "M")
    quantiles = list(quantiles or config.HARMONIZATION_QUANTILES)
    min_pairs = min_pairs or getattr(config, "MIN_HARMONIZATION_PAIRS", 2)

    if pairing not in ("window", "quantile"):
        raise ValueError(f"Unknown pairing: {pairing}. Must be 'window' or 'quantile'")
    missing = [b for b in bands if b not in df.columns]
    if missing:
        raise ValueError(f"Band columns missing from observations: {missing}")

    sensors = [s for s in pd.unique(df[config.SENSOR_COL]) if s != reference]
    sensors = sorted(sensors, key=str)
    logger.info("Fitting %s harmonization: %d bands x %d sensors onto %s",
                pairing, len(bands), len(sensors), reference)

    corrections: Dict[Tuple[str, str], BandCorrection] = {}
    for band in bands:
        wide = _window_pairs(df, band, window) if pairing == "window" else None
        for sensor in sensors:
            pairs = wide if wide is not None else _quantile_pairs(df, band, reference, sensor, quantiles)
            try:
                corrections[(band, sensor)] = _fit_band(pairs, band, reference, sensor, min_pairs)
            except DataInsufficiencyError as exc:
                if strict:
                    raise
                if exclusions is not None:
                    exclusions.record(STAGE, "insufficient_pairs", 1, str(exc))
                else:
                    logger.warning("Skipping correction: %s", exc)

    logger.info("Harmonization fit complete: %d corrections", len(corrections))
    return HarmonizationModel(
        reference_sensor=reference,
        bands=tuple(bands),
        corrections=corrections,
        pairing=pairing,
    )


def apply_harmonization(
    model: HarmonizationModel,
    df: pd.DataFrame,
    exclusions: Optional[ExclusionReport] = None,
) -> pd.DataFrame:
    """
    Return a copy of ``df`` with every band on the reference scale.

    Reference-sensor rows pass through unchanged. Rows from a sensor without
    a correction for some band, or with a missing band value, are dropped.
    """
    out = df.copy()
    sensor_col = out[config.SENSOR_COL]
    keep = pd.Series(True, index=out.index)

    no_sensor = sensor_col.isna()
    if no_sensor.any():
        n = int(no_sensor.sum())
        if exclusions is not None:
            exclusions.record(STAGE, "missing_correction", n, "no sensor code")
        else:
            logger.warning("Dropping %d rows without a sensor code", n)
        keep &= ~no_sensor

    for sensor in pd.unique(sensor_col.dropna()):
        rows = sensor_col == sensor
        uncorrected = [b for b in model.bands if not model.has_correction(b, sensor)]
        if uncorrected:
            n = int(rows.sum())
            detail = f"sensor {sensor} lacks corrections for {uncorrected}"
            if exclusions is not None:
                exclusions.record(STAGE, "missing_correction", n, detail)
            else:
                logger.warning("Dropping %d rows: %s", n, detail)
            keep &= ~rows
            continue
        if sensor == model.reference_sensor:
            continue
        for band in model.bands:
            out.loc[rows, band] = model.predict(band, sensor, out.loc[rows, band].to_numpy(dtype=float))

    missing_input = out[list(model.bands)].isna().any(axis=1) & keep
    n_missing = int(missing_input.sum())
    if n_missing:
        if exclusions is not None:
            exclusions.record(STAGE, "missing_band_value", n_missing)
        else:
            logger.warning("Dropping %d rows with missing band values", n_missing)
        keep &= ~missing_input

    harmonized = out[keep]
    logger.info("Harmonized %d of %d observations", len(harmonized), len(df))
    return harmonized
