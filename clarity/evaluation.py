"""
Hold-out Validation
===================

Scores the final model on the hold-out set with the model's own feature
schema and scaler statistics, and re-aggregates the same predictions by
categorical covariates for diagnostic breakdowns.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable, Optional

import numpy as np
import pandas as pd

import config
from .feature_utils import FeatureSet
from .logging_config import get_logger
from .trained_model import TrainedModel

logger = get_logger(__name__)

METRIC_NAMES = ["n", "rmse", "mae", "mape", "bias", "pbias", "smape"]


@dataclass(frozen=True)
class Metrics:
    """Accuracy and bias metrics; percentages are in percent."""

    n: int
    rmse: float
    mae: float
    mape: float
    bias: float
    pbias: float
    smape: float

    def as_dict(self) -> dict:
        return asdict(self)


def compute_metrics(actual, predicted) -> Metrics:
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    if actual.shape != predicted.shape:
        raise ValueError(f"Shape mismatch: actual {actual.shape} vs predicted {predicted.shape}")
    if actual.size == 0:
        raise ValueError("Cannot compute metrics on an empty prediction set")

    error = predicted - actual
    abs_error = np.abs(error)

    # zero actuals are outside the target domain; guard the ratios anyway
    with np.errstate(divide="ignore", invalid="ignore"):
        ape = np.where(actual != 0, abs_error / np.abs(actual), 0.0)
        denom = np.abs(actual) + np.abs(predicted)
        sape = np.where(denom != 0, 2.0 * abs_error / denom, 0.0)
    total = actual.sum()

    return Metrics(
        n=int(actual.size),
        rmse=float(np.sqrt(np.mean(error ** 2))),
        mae=float(np.mean(abs_error)),
        mape=float(100.0 * np.mean(ape)),
        bias=float(np.mean(error)),
        pbias=float(100.0 * error.sum() / total) if total != 0 else 0.0,
        smape=float(100.0 * np.mean(sape)),
    )


@dataclass(frozen=True)
class EvaluationResult:
    metrics: Metrics
    predictions: pd.DataFrame


def evaluate(model: TrainedModel, holdout: FeatureSet) -> EvaluationResult:
    """
    Predict the hold-out set and compute metrics.

    The model is never refit here; its feature schema must match the
    hold-out features exactly.
    """
    if holdout.target is None:
        raise ValueError("Hold-out feature set has no target values")

    predicted = model.predict(holdout.features)
    predictions = holdout.metadata.copy()
    predictions["actual"] = holdout.target.to_numpy(dtype=float)
    predictions["predicted"] = predicted.to_numpy()
    predictions["residual"] = predictions["predicted"] - predictions["actual"]

    metrics = compute_metrics(predictions["actual"], predictions["predicted"])
    logger.info(
        "Hold-out (n=%d) - RMSE: %.4f  MAE: %.4f  MAPE: %.2f%%  Bias: %.4f  PBias: %.2f%%  SMAPE: %.2f%%",
        metrics.n, metrics.rmse, metrics.mae, metrics.mape, metrics.bias, metrics.pbias, metrics.smape,
    )
    return EvaluationResult(metrics=metrics, predictions=predictions)


def stratified_metrics(predictions: pd.DataFrame, by: str,
                       actual_col: str = "actual", predicted_col: str = "predicted") -> pd.DataFrame:
    """One row of metrics per category of ``by``; a read-only re-aggregation."""
    if by not in predictions.columns:
        raise ValueError(f"Unknown stratification column: {by}")
    rows = []
    for category, group in predictions.groupby(by, sort=True, observed=True):
        rows.append({by: category, **compute_metrics(group[actual_col], group[predicted_col]).as_dict()})
    return pd.DataFrame(rows, columns=[by] + METRIC_NAMES)


def stratified_breakdowns(predictions: pd.DataFrame, covariates: Optional[Iterable[str]] = None) -> dict:
    covariates = list(covariates or config.STRATIFY_BY)
    breakdowns = {}
    for covariate in covariates:
        if covariate not in predictions.columns:
            logger.warning("Skipping breakdown by '%s': column not present", covariate)
            continue
        breakdowns[covariate] = stratified_metrics(predictions, covariate)
    return breakdowns
