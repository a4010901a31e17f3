"""
Configuration and runtime parameter checks.
"""

import config
from .logging_config import get_logger

logger = get_logger(__name__)

DERIVED_FEATURES = ("nir_red", "blue_green", "dw")


def validate_system_startup():
    """Check that config.py is internally consistent before a run."""
    sensors = list(config.SENSORS)
    if config.REFERENCE_SENSOR not in sensors:
        raise ValueError(
            f"REFERENCE_SENSOR '{config.REFERENCE_SENSOR}' not in SENSORS {sensors}"
        )
    if len(set(sensors)) != len(sensors):
        raise ValueError(f"Duplicate sensor codes in SENSORS: {sensors}")

    if not config.FEATURE_COLUMNS:
        raise ValueError("FEATURE_COLUMNS is empty")
    if len(set(config.FEATURE_COLUMNS)) != len(config.FEATURE_COLUMNS):
        raise ValueError(f"Duplicate names in FEATURE_COLUMNS: {config.FEATURE_COLUMNS}")

    if config.HARMONIZATION_PAIRING not in ("window", "quantile"):
        raise ValueError(
            f"Unknown HARMONIZATION_PAIRING '{config.HARMONIZATION_PAIRING}'. "
            "Must be 'window' or 'quantile'"
        )

    validate_param_grid(config.PARAM_GRID)
    validate_runtime_parameters(
        n_folds=config.N_FOLDS,
        holdout_fraction=config.HOLDOUT_FRACTION,
        n_time_groups=config.N_TIME_GROUPS,
    )
    logger.info("Configuration validated: %d sensors, %d features, reference=%s",
                len(sensors), len(config.FEATURE_COLUMNS), config.REFERENCE_SENSOR)
    return True


def validate_runtime_parameters(n_folds=None, holdout_fraction=None, n_time_groups=None, seed=None):
    if n_folds is not None:
        if int(n_folds) != n_folds or n_folds < 3:
            raise ValueError(f"n_folds must be an integer >= 3, got {n_folds}")
    if holdout_fraction is not None:
        if not 0.0 < holdout_fraction < 1.0:
            raise ValueError(f"holdout_fraction must be in (0, 1), got {holdout_fraction}")
    if n_time_groups is not None:
        if int(n_time_groups) != n_time_groups or n_time_groups < 1:
            raise ValueError(f"n_time_groups must be a positive integer, got {n_time_groups}")
    if n_folds is not None and n_time_groups is not None and n_time_groups < n_folds:
        raise ValueError(
            f"n_time_groups ({n_time_groups}) must be at least n_folds ({n_folds})"
        )
    if seed is not None and (int(seed) != seed or seed < 0):
        raise ValueError(f"seed must be a non-negative integer, got {seed}")
    return True


def validate_param_grid(grid):
    if not grid:
        raise ValueError("Hyperparameter grid is empty")
    for name, values in grid.items():
        if isinstance(values, (str, bytes)) or not hasattr(values, "__iter__"):
            raise ValueError(f"Grid entry '{name}' must be a list of values")
        if len(list(values)) == 0:
            raise ValueError(f"Grid entry '{name}' has no values")
    return True
