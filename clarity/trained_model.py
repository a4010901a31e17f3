"""
Trained Model
=============

An opaque fitted pipeline bound to one feature schema and one
hyperparameter configuration. The scaler statistics learned at fit time
travel with it and are reused verbatim for every prediction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple

import joblib
import numpy as np
import pandas as pd
from sklearn.pipeline import Pipeline

from .diagnostics import ExclusionReport
from .exceptions import SchemaMismatchError
from .feature_utils import build_features
from .logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TrainedModel:
    pipeline: Pipeline
    feature_columns: Tuple[str, ...]
    params: dict = field(default_factory=dict)
    cv_score: Optional[float] = None
    seed: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "feature_columns", tuple(self.feature_columns))
        object.__setattr__(self, "params", dict(self.params))

    def check_schema(self, features: pd.DataFrame) -> None:
        received = tuple(features.columns)
        if received != self.feature_columns:
            raise SchemaMismatchError(self.feature_columns, received)

    def predict(self, features: pd.DataFrame) -> pd.Series:
        """Point predictions for a feature matrix built with this model's schema."""
        self.check_schema(features)
        if len(features) == 0:
            return pd.Series([], index=features.index, dtype=float, name="predicted")
        predicted = self.pipeline.predict(features)
        return pd.Series(np.asarray(predicted, dtype=float), index=features.index, name="predicted")

    def predict_observations(self, harmonized: pd.DataFrame,
                             exclusions: Optional[ExclusionReport] = None) -> pd.Series:
        """Build features with this model's schema and predict."""
        feature_set = build_features(harmonized, self.feature_columns, exclusions=exclusions)
        return self.predict(feature_set.features)

    @property
    def scaler_statistics(self) -> pd.DataFrame:
        scaler = self.pipeline.named_steps["scaler"]
        return pd.DataFrame(
            {"mean": scaler.mean_, "scale": scaler.scale_},
            index=pd.Index(self.feature_columns, name="feature"),
        )

    def feature_importance(self) -> pd.DataFrame:
        model = self.pipeline.named_steps["model"]
        return pd.DataFrame({
            "feature": list(self.feature_columns),
            "importance": model.feature_importances_,
        }).sort_values("importance", ascending=False)

    def save(self, path) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(
            {
                "pipeline": self.pipeline,
                "feature_columns": list(self.feature_columns),
                "params": self.params,
                "cv_score": self.cv_score,
                "seed": self.seed,
            },
            path,
        )
        logger.info("Saved trained model to %s", path)
        return path

    @classmethod
    def load(cls, path) -> "TrainedModel":
        bundle = joblib.load(Path(path))
        return cls(
            pipeline=bundle["pipeline"],
            feature_columns=tuple(bundle["feature_columns"]),
            params=bundle.get("params", {}),
            cv_score=bundle.get("cv_score"),
            seed=bundle.get("seed"),
        )
