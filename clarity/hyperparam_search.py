"""
Hyperparameter Search for XGBoost
=================================

Exhaustive grid search over learning rate, boosting rounds and the two
regularization strengths, scored on a fixed spatiotemporal fold assignment.

Notes:
- Every (configuration, fold) task is independent and runs in a scoped
  joblib worker pool that is torn down on every exit path
- Standardization is fit inside each task on that fold's training rows only
- A configuration that fails on any fold is excluded from selection
- Lowest mean validation RMSE wins; the first-declared configuration wins ties
- ``fit_final`` refits the winner on the whole train pool
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.metrics import mean_squared_error
from tqdm import tqdm

import config
from .diagnostics import ExclusionReport
from .exceptions import TrainingDivergenceError
from .logging_config import get_logger
from .model_factory import build_pipeline
from .partitioner import FoldAssignment
from .trained_model import TrainedModel
from .validation import validate_param_grid

logger = get_logger(__name__)

STAGE = "search"


def expand_grid(grid: Optional[Mapping[str, Sequence]] = None) -> List[Dict]:
    """Cross product of the grid in declared key order."""
    grid = config.PARAM_GRID if grid is None else grid
    validate_param_grid(grid)
    names = list(grid.keys())
    return [dict(zip(names, values)) for values in itertools.product(*(list(grid[n]) for n in names))]


@dataclass(frozen=True)
class SearchResult:
    best_params: Dict
    best_score: float
    best_index: int
    cv_results: pd.DataFrame
    failed: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def n_configs(self) -> int:
        return len(self.cv_results)


def _fit_and_score(config_index: int, fold_number: int, params: Dict,
                   X: pd.DataFrame, y: pd.Series,
                   train_index: np.ndarray, validation_index: np.ndarray,
                   seed: int) -> Tuple[int, int, Optional[float], Optional[str]]:
    """Train on one fold's training slice and return validation RMSE."""
    try:
        pipeline = build_pipeline(params, seed=seed, n_jobs=1)
        pipeline.fit(X.iloc[train_index], y.iloc[train_index])
        predicted = pipeline.predict(X.iloc[validation_index])
        if not np.all(np.isfinite(predicted)):
            raise TrainingDivergenceError("non-finite validation predictions")
        rmse = float(np.sqrt(mean_squared_error(y.iloc[validation_index], predicted)))
        if not np.isfinite(rmse):
            raise TrainingDivergenceError("non-finite validation RMSE")
        return config_index, fold_number, rmse, None
    except Exception as exc:
        return config_index, fold_number, None, f"{type(exc).__name__}: {exc}"


def _resolve_n_jobs(n_jobs: Optional[int]) -> int:
    if n_jobs is not None:
        return n_jobs
    if not getattr(config, "ENABLE_PARALLEL", True):
        return 1
    return int(getattr(config, "N_JOBS", -1))


def run_search(
    X: pd.DataFrame,
    y: pd.Series,
    folds: FoldAssignment,
    grid: Optional[Mapping[str, Sequence]] = None,
    seed: Optional[int] = None,
    n_jobs: Optional[int] = None,
    exclusions: Optional[ExclusionReport] = None,
    progress: bool = True,
) -> SearchResult:
    """
    Score every grid configuration on every fold and select the best.

    ``X`` and ``y`` must be in train-pool order (the order ``folds`` was
    built on).
    """
    seed = config.RANDOM_SEED if seed is None else seed
    configs = expand_grid(grid)
    if len(X) != len(folds.index) or len(y) != len(X):
        raise ValueError(
            f"Feature rows ({len(X)}), targets ({len(y)}) and fold assignment "
            f"({len(folds.index)}) must align"
        )

    tasks = [
        (ci, fold.number, params, fold.train_index, fold.validation_index)
        for ci, params in enumerate(configs)
        for fold in folds.folds
    ]
    n_jobs = _resolve_n_jobs(n_jobs)
    logger.info("Grid search: %d configurations x %d folds = %d fits (n_jobs=%s)",
                len(configs), len(folds), len(tasks), n_jobs)

    with Parallel(n_jobs=n_jobs) as parallel:
        results = parallel(
            delayed(_fit_and_score)(ci, fn, params, X, y, tr, va, seed)
            for ci, fn, params, tr, va in tqdm(tasks, desc="Grid search", unit="fit", disable=not progress)
        )

    fold_scores: Dict[int, Dict[int, float]] = {ci: {} for ci in range(len(configs))}
    errors: Dict[int, List[str]] = {}
    for ci, fn, rmse, error in results:
        if error is not None:
            errors.setdefault(ci, []).append(f"fold {fn}: {error}")
        else:
            fold_scores[ci][fn] = rmse

    rows = []
    for ci, params in enumerate(configs):
        scores = [fold_scores[ci][f.number] for f in folds.folds if f.number in fold_scores[ci]]
        failed = ci in errors
        rows.append({
            "config": ci,
            **params,
            "mean_rmse": np.nan if failed else float(np.mean(scores)),
            "std_rmse": np.nan if failed else float(np.std(scores)),
            "n_folds": len(scores),
            "failed": failed,
            "error": "; ".join(errors.get(ci, [])),
        })
    cv_results = pd.DataFrame(rows)

    failed = tuple(sorted(errors))
    for ci in failed:
        detail = f"config {ci} {configs[ci]}: {errors[ci][0]}"
        if exclusions is not None:
            exclusions.record(STAGE, "training_divergence", 1, detail)
        else:
            logger.warning("Configuration excluded: %s", detail)

    survivors = cv_results[~cv_results["failed"]]
    if survivors.empty:
        raise TrainingDivergenceError(
            f"All {len(configs)} grid configurations failed on at least one fold"
        )

    # config order breaks exact ties
    best_row = survivors.sort_values(["mean_rmse", "config"], kind="stable").iloc[0]
    best_index = int(best_row["config"])
    result = SearchResult(
        best_params=dict(configs[best_index]),
        best_score=float(best_row["mean_rmse"]),
        best_index=best_index,
        cv_results=cv_results,
        failed=failed,
    )
    logger.info("Best configuration #%d %s: mean CV RMSE %.4f (%d failed)",
                best_index, result.best_params, result.best_score, len(failed))
    return result


def fit_final(X: pd.DataFrame, y: pd.Series, params: Dict,
              seed: Optional[int] = None, n_jobs: int = -1,
              cv_score: Optional[float] = None) -> TrainedModel:
    """Refit the selected configuration on the whole train pool."""
    seed = config.RANDOM_SEED if seed is None else seed
    pipeline = build_pipeline(params, seed=seed, n_jobs=n_jobs)
    pipeline.fit(X, y)
    check = pipeline.predict(X.iloc[: min(len(X), 100)])
    if not np.all(np.isfinite(check)):
        raise TrainingDivergenceError(f"Final model with {params} produced non-finite predictions")
    logger.info("Final model fit on %d rows with %s", len(X), params)
    return TrainedModel(
        pipeline=pipeline,
        feature_columns=tuple(X.columns),
        params=dict(params),
        cv_score=cv_score,
        seed=int(seed),
    )
