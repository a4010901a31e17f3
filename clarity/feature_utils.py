"""
Feature Engineering Utilities
=============================

Builds the fixed-order feature matrix the regressor is trained on from
harmonized observations: selected bands, two band ratios and the dominant
wavelength. Also derives the categorical covariates used for stratified
hold-out diagnostics.

Rows for which a feature is undefined (zero ratio denominator, all-zero
reflectance, non-finite value) are dropped and counted, never coerced.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

import config
from .colorimetry import dominant_wavelength
from .diagnostics import ExclusionReport
from .exceptions import SchemaMismatchError
from .logging_config import get_logger

logger = get_logger(__name__)

STAGE = "features"

# name -> (numerator, denominator)
BAND_RATIOS = {
    "nir_red": ("nir", "red"),
    "blue_green": ("blue", "green"),
}
DOMINANT_WAVELENGTH = "dw"


@dataclass(frozen=True)
class FeatureSet:
    """Feature matrix, target and row metadata sharing one index."""

    features: pd.DataFrame
    target: Optional[pd.Series]
    metadata: pd.DataFrame

    @property
    def feature_columns(self):
        return tuple(self.features.columns)

    def __len__(self):
        return len(self.features)

    def subset(self, index) -> "FeatureSet":
        return FeatureSet(
            features=self.features.loc[index],
            target=None if self.target is None else self.target.loc[index],
            metadata=self.metadata.loc[index],
        )

    def take(self, positions) -> "FeatureSet":
        return FeatureSet(
            features=self.features.iloc[positions],
            target=None if self.target is None else self.target.iloc[positions],
            metadata=self.metadata.iloc[positions],
        )


def _metadata_columns():
    return [
        getattr(config, "OBS_ID_COL", "obs_id"),
        config.LOCATION_COL,
        config.SENSOR_COL,
        config.DATE_COL,
        config.REGION_COL,
        getattr(config, "AREA_COL", "area"),
        getattr(config, "DEPTH_COL", "mean_depth"),
    ]


def _drop(valid: pd.Series, mask: pd.Series, reason: str, exclusions: Optional[ExclusionReport]) -> pd.Series:
    newly = mask & valid
    n = int(newly.sum())
    if n:
        if exclusions is not None:
            exclusions.record(STAGE, reason, n)
        else:
            logger.warning("Dropping %d observations: %s", n, reason)
    return valid & ~mask


def build_features(
    df: pd.DataFrame,
    feature_columns: Optional[Sequence[str]] = None,
    exclusions: Optional[ExclusionReport] = None,
    target_col: Optional[str] = None,
) -> FeatureSet:
    """
    Derive the feature matrix for harmonized observations.

    ``feature_columns`` is the explicit ordering; derived names are
    ``nir_red``, ``blue_green`` and ``dw``, every other name must be a
    numeric column of ``df``. The target is attached when present.
    """
    feature_columns = list(feature_columns or config.FEATURE_COLUMNS)
    target_col = target_col or config.TARGET_COL

    if len(set(feature_columns)) != len(feature_columns):
        raise SchemaMismatchError(list(dict.fromkeys(feature_columns)), feature_columns)

    derived = set(BAND_RATIOS) | {DOMINANT_WAVELENGTH}
    needed = set(c for c in feature_columns if c not in derived)
    for name in feature_columns:
        if name in BAND_RATIOS:
            needed.update(BAND_RATIOS[name])
        elif name == DOMINANT_WAVELENGTH:
            needed.update(("red", "green", "blue"))
    needed = sorted(needed)
    if any(c not in df.columns for c in needed):
        raise SchemaMismatchError(needed, [c for c in needed if c in df.columns])

    valid = pd.Series(True, index=df.index)
    values = {}

    for name in feature_columns:
        if name in BAND_RATIOS:
            num, den = BAND_RATIOS[name]
            denom = df[den].astype(float)
            bad = ~np.isfinite(denom) | (denom == 0)
            valid = _drop(valid, bad, "zero_denominator", exclusions)
            values[name] = df[num].astype(float) / denom.where(~bad)
        elif name == DOMINANT_WAVELENGTH:
            rgb = df[["red", "green", "blue"]].astype(float)
            bad = (~np.isfinite(rgb).all(axis=1)) | (rgb < 0).any(axis=1) | (rgb.sum(axis=1) == 0)
            valid = _drop(valid, bad, "degenerate_chromaticity", exclusions)
            dw = pd.Series(np.nan, index=df.index)
            ok = ~bad
            if ok.any():
                dw[ok] = dominant_wavelength(
                    rgb.loc[ok, "red"].to_numpy(),
                    rgb.loc[ok, "green"].to_numpy(),
                    rgb.loc[ok, "blue"].to_numpy(),
                )
            values[name] = dw
        else:
            values[name] = pd.to_numeric(df[name], errors="coerce").astype(float)

    features = pd.DataFrame(values, index=df.index)[feature_columns]
    non_finite = ~np.isfinite(features).all(axis=1)
    valid = _drop(valid, non_finite, "non_finite_feature", exclusions)

    features = features[valid]
    target = df.loc[valid, target_col].astype(float) if target_col in df.columns else None
    meta_cols = [c for c in _metadata_columns() if c in df.columns]
    metadata = add_diagnostic_covariates(df.loc[valid, meta_cols])

    logger.info("Built %d features for %d of %d observations",
                len(feature_columns), len(features), len(df))
    return FeatureSet(features=features, target=target, metadata=metadata)


def add_diagnostic_covariates(df: pd.DataFrame) -> pd.DataFrame:
    """Add ``lake_size`` (binned area) and ``year`` for stratified metrics."""
    df = df.copy()
    area_col = getattr(config, "AREA_COL", "area")
    if area_col in df.columns:
        df["lake_size"] = pd.cut(
            df[area_col],
            bins=config.LAKE_SIZE_BINS,
            labels=config.LAKE_SIZE_LABELS,
            right=False,
        ).astype(str)
    if config.DATE_COL in df.columns:
        df["year"] = pd.to_datetime(df[config.DATE_COL]).dt.year
    return df
