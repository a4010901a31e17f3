"""
Model factory for Secchi regression.

Standalone builders for the XGBoost regressor and the standardize -> regress
pipeline that carries its own centering/scaling statistics.
"""

from __future__ import annotations

from typing import Optional

from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from xgboost import XGBRegressor

import config


def _resolve_xgb_device_params() -> dict:
    """
    Enforce CPU/GPU selection based on config.USE_GPU.
    """
    use_gpu = getattr(config, "USE_GPU", False)
    if use_gpu is True:
        return {"tree_method": "hist", "device": "cuda"}
    return {"tree_method": "hist", "device": "cpu"}


def build_xgb_regressor(param_overrides: Optional[dict] = None, seed: Optional[int] = None,
                        n_jobs: int = 1) -> XGBRegressor:
    """
    Build an XGBoost regressor with config defaults.

    ``n_jobs`` defaults to 1 for use inside grid-search workers.
    """
    base_params = dict(config.XGB_REGRESSION_PARAMS)
    params = {**base_params, **(param_overrides or {})}
    params.pop("tree_method", None)
    params.pop("random_state", None)
    params.update(_resolve_xgb_device_params())
    params["n_jobs"] = n_jobs
    seed = config.RANDOM_SEED if seed is None else seed
    return XGBRegressor(**params, random_state=seed, verbosity=0)


def build_pipeline(param_overrides: Optional[dict] = None, seed: Optional[int] = None,
                   n_jobs: int = 1) -> Pipeline:
    """
    Standardize -> XGBoost pipeline.

    The scaler is fit inside ``Pipeline.fit`` on the rows passed to it, so
    fold validation rows never contribute to scaling statistics.
    """
    return Pipeline([
        ("scaler", StandardScaler()),
        ("model", build_xgb_regressor(param_overrides, seed=seed, n_jobs=n_jobs)),
    ])
