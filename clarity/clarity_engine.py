"""
Clarity Engine
==============

End-to-end Secchi depth modelling run with leak-free evaluation:

load -> validate -> harmonize sensors -> build features -> region-stratified
hold-out -> spatiotemporal folds -> grid search -> final refit -> hold-out
metrics and stratified breakdowns.

Every non-fatal exclusion made along the way is collected in one
``ExclusionReport`` attached to the result.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

import pandas as pd

import config
from .data_processor import DataProcessor
from .diagnostics import ExclusionReport
from .evaluation import EvaluationResult, evaluate, stratified_breakdowns
from .feature_utils import FeatureSet, build_features
from .harmonization import HarmonizationModel, apply_harmonization, fit_harmonization
from .hyperparam_search import SearchResult, fit_final, run_search
from .logging_config import get_logger
from .partitioner import FoldAssignment, HoldoutSplit, make_folds, split_holdout
from .trained_model import TrainedModel
from .validation import validate_runtime_parameters, validate_system_startup

logger = get_logger(__name__)


@dataclass
class PipelineResult:
    harmonization: HarmonizationModel
    split: HoldoutSplit
    folds: FoldAssignment
    search: SearchResult
    model: TrainedModel
    evaluation: EvaluationResult
    breakdowns: Dict[str, pd.DataFrame]
    exclusions: ExclusionReport
    n_observations: int = 0
    n_features_rows: int = 0
    seed: int = 0
    diagnostics: dict = field(default_factory=dict)

    @property
    def metrics(self):
        return self.evaluation.metrics


class ClarityEngine:
    """
    Leak-free Secchi depth modelling engine.

    Features: per-band sensor harmonization, region-stratified hold-out,
    location x time-group cross-validation, grid-searched XGBoost, fold-local
    standardization, explicit seeds throughout.
    """

    def __init__(self, data_file=None, seed=None, n_folds=None, holdout_fraction=None,
                 n_time_groups=None, grid: Optional[Mapping[str, Sequence]] = None,
                 feature_columns: Optional[Sequence[str]] = None, n_jobs=None,
                 harmonization_strict=False, stratify_by: Optional[Sequence[str]] = None,
                 validate_on_init=True, progress=True):
        logger.info("Initializing ClarityEngine")
        self.data_file = data_file or config.DATA_PATH
        self.seed = config.RANDOM_SEED if seed is None else seed
        self.n_folds = n_folds or config.N_FOLDS
        self.holdout_fraction = holdout_fraction or config.HOLDOUT_FRACTION
        self.n_time_groups = n_time_groups or config.N_TIME_GROUPS
        self.grid = grid if grid is not None else config.PARAM_GRID
        self.feature_columns = list(feature_columns or config.FEATURE_COLUMNS)
        self.n_jobs = n_jobs
        self.harmonization_strict = harmonization_strict
        self.stratify_by = list(stratify_by or config.STRATIFY_BY)
        self.progress = progress

        if validate_on_init:
            validate_system_startup()
        validate_runtime_parameters(
            n_folds=self.n_folds,
            holdout_fraction=self.holdout_fraction,
            n_time_groups=self.n_time_groups,
            seed=self.seed,
        )

        self.data_processor = DataProcessor()
        self.last_result: Optional[PipelineResult] = None
        logger.info("Configuration: seed=%d, folds=%d, holdout=%.2f, time_groups=%d",
                    self.seed, self.n_folds, self.holdout_fraction, self.n_time_groups)

    def run(self, data: Optional[pd.DataFrame] = None) -> PipelineResult:
        exclusions = ExclusionReport()

        if data is None:
            data = self.data_processor.load_observations(self.data_file)
        else:
            data = self.data_processor.prepare(data)

        harmonization = fit_harmonization(data, strict=self.harmonization_strict, exclusions=exclusions)
        harmonized = apply_harmonization(harmonization, data, exclusions=exclusions)

        feature_set = build_features(harmonized, self.feature_columns, exclusions=exclusions)
        if len(feature_set) == 0:
            raise ValueError("No observations left after harmonization and feature building")

        split = split_holdout(feature_set.metadata, seed=self.seed,
                              fraction=self.holdout_fraction, exclusions=exclusions)
        holdout = feature_set.subset(split.holdout_index)
        train_pool = feature_set.subset(split.train_index)

        folds = make_folds(train_pool.metadata, k=self.n_folds, seed=self.seed,
                           n_time_groups=self.n_time_groups)

        search = run_search(train_pool.features, train_pool.target, folds, grid=self.grid,
                            seed=self.seed, n_jobs=self.n_jobs, exclusions=exclusions,
                            progress=self.progress)
        model = fit_final(train_pool.features, train_pool.target, search.best_params,
                          seed=self.seed, cv_score=search.best_score)

        evaluation = evaluate(model, holdout)
        breakdowns = stratified_breakdowns(evaluation.predictions, self.stratify_by)

        exclusions.log_summary()
        result = PipelineResult(
            harmonization=harmonization,
            split=split,
            folds=folds,
            search=search,
            model=model,
            evaluation=evaluation,
            breakdowns=breakdowns,
            exclusions=exclusions,
            n_observations=len(data),
            n_features_rows=len(feature_set),
            seed=self.seed,
            diagnostics=self._diagnostics(data, feature_set, split, folds),
        )
        self.last_result = result
        return result

    def _diagnostics(self, data: pd.DataFrame, feature_set: FeatureSet,
                     split: HoldoutSplit, folds: FoldAssignment) -> dict:
        region_col = config.REGION_COL
        all_share = feature_set.metadata[region_col].value_counts(normalize=True)
        holdout_share = feature_set.metadata.loc[split.holdout_index, region_col].value_counts(normalize=True)
        return {
            "n_input": len(data),
            "n_modelled": len(feature_set),
            "n_holdout": split.n_holdout,
            "n_train_pool": split.n_train,
            "region_share": {str(k): float(v) for k, v in all_share.items()},
            "holdout_region_share": {str(k): float(v) for k, v in holdout_share.items()},
            "folds": folds.summary().to_dict(orient="records"),
        }

    def predict(self, observations: pd.DataFrame, result: Optional[PipelineResult] = None,
                exclusions: Optional[ExclusionReport] = None) -> pd.Series:
        """
        Harmonize new observations and predict Secchi depth.

        The result carries the index labels of ``observations``; rows dropped
        during harmonization or feature building are absent.
        """
        result = result or self.last_result
        if result is None:
            raise ValueError("No trained model available; call run() first")
        data = self.data_processor.prepare(observations, require_target=False, sort=False)
        harmonized = apply_harmonization(result.harmonization, data, exclusions=exclusions)
        return result.model.predict_observations(harmonized, exclusions=exclusions)


def save_artifacts(result: PipelineResult, output_dir=None) -> Dict[str, Path]:
    """
    Write model, harmonization coefficients, metrics and tables.

    Returns the written paths keyed by artifact name.
    """
    out = Path(output_dir or config.OUTPUT_DIR)
    out.mkdir(parents=True, exist_ok=True)

    paths = {
        "model": result.model.save(out / "model.joblib"),
        "harmonization": result.harmonization.save_json(out / "harmonization.json"),
    }

    metrics_path = out / "metrics.json"
    payload = {
        "seed": result.seed,
        "holdout_metrics": result.metrics.as_dict(),
        "best_params": result.search.best_params,
        "cv_rmse": result.search.best_score,
        "failed_configs": list(result.search.failed),
        "feature_columns": list(result.model.feature_columns),
        "exclusions": result.exclusions.as_dict(),
        "diagnostics": result.diagnostics,
    }
    with metrics_path.open("w") as f:
        json.dump(payload, f, indent=2, default=str)
    paths["metrics"] = metrics_path

    paths["cv_results"] = out / "cv_results.csv"
    result.search.cv_results.to_csv(paths["cv_results"], index=False)
    paths["holdout_predictions"] = out / "holdout_predictions.csv"
    result.evaluation.predictions.to_csv(paths["holdout_predictions"], index=False)
    for covariate, table in result.breakdowns.items():
        key = f"metrics_by_{covariate}"
        paths[key] = out / f"{key}.csv"
        table.to_csv(paths[key], index=False)

    logger.info("Saved %d artifacts to %s", len(paths), out)
    return paths
