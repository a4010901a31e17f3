"""
Shared fixtures: synthetic multi-sensor Secchi observations.

Five lakes in four regions observed by three Landsat sensors over two
years. Secchi depth follows a per-lake baseline plus a seasonal cycle, and
reference-scale reflectance is a smooth function of log Secchi depth.
Non-reference sensors report a known linear distortion of the reference
reflectance.
"""

import numpy as np
import pandas as pd
import pytest


LOCATIONS = ["L0", "L1", "L2", "L3", "L4"]
REGIONS = {"L0": "R0", "L1": "R1", "L2": "R2", "L3": "R3", "L4": "R0"}
AREAS = {"L0": 0.5, "L1": 5.0, "L2": 50.0, "L3": 500.0, "L4": 2.0}
# skewed: most lakes shallow, one very deep
DEPTHS = {"L0": 1.5, "L1": 2.5, "L2": 4.0, "L3": 9.0, "L4": 35.0}
BASE_LOG_SECCHI = {"L0": -0.3, "L1": 0.2, "L2": 0.7, "L3": 1.2, "L4": 0.5}

# sensor value = (reference - intercept) / slope, so reference = intercept + slope * value
SENSOR_DISTORTION = {"LT05": (-0.004, 1.1), "LE07": (0.002, 0.9)}


def reference_reflectance(log_secchi, rng, noise=0.0005):
    s = np.asarray(log_secchi, dtype=float)
    n = len(s)

    def band(a, b):
        return np.clip(a + b * s + rng.normal(0, noise, n), 0.001, None)

    return {
        "blue": band(0.040, 0.010),
        "green": band(0.060, -0.008),
        "red": band(0.050, -0.012),
        "nir": band(0.030, -0.008),
        "swir1": band(0.015, -0.003),
        "swir2": band(0.010, -0.002),
    }


def make_observations(n=1000, seed=0, sensors=("LT05", "LE07", "LC08")):
    rng = np.random.default_rng(seed)
    location = rng.choice(LOCATIONS, size=n)
    offsets = rng.integers(0, 730, size=n)
    date = pd.Timestamp("2019-01-01") + pd.to_timedelta(offsets, unit="D")
    sensor = rng.choice(list(sensors), size=n)

    doy = date.dayofyear.to_numpy()
    base = np.array([BASE_LOG_SECCHI[loc] for loc in location])
    log_secchi = base + 0.6 * np.sin(2 * np.pi * doy / 365.0) + rng.normal(0, 0.3, n)
    secchi = np.clip(np.exp(log_secchi), 0.1, 14.5)

    df = pd.DataFrame({
        "obs_id": [f"obs{i:05d}" for i in range(n)],
        "location_id": location,
        "sensor": sensor,
        "date": date,
        "region": [REGIONS[loc] for loc in location],
        "area": [AREAS[loc] for loc in location],
        "mean_depth": [DEPTHS[loc] for loc in location],
        "secchi": secchi,
    })

    bands = reference_reflectance(np.log(secchi), rng)
    for name, values in bands.items():
        df[name] = values
    for code, (intercept, slope) in SENSOR_DISTORTION.items():
        rows = df["sensor"] == code
        for name in bands:
            df.loc[rows, name] = (df.loc[rows, name] - intercept) / slope
    return df


@pytest.fixture(scope="session")
def _observations():
    return make_observations()


@pytest.fixture
def observations(_observations):
    """1000 synthetic observations (fresh copy per test)."""
    return _observations.copy()


@pytest.fixture
def observation_factory():
    """Build a synthetic table with a custom size, seed or sensor set."""
    return make_observations


@pytest.fixture
def small_grid():
    return {"learning_rate": [0.1, 0.3], "n_estimators": [40]}


@pytest.fixture(scope="session")
def training_data(_observations):
    """(train pool FeatureSet, hold-out FeatureSet, FoldAssignment) for the synthetic table."""
    from clarity.feature_utils import build_features
    from clarity.partitioner import make_folds, split_holdout

    features = build_features(_observations)
    split = split_holdout(features.metadata, seed=42)
    train = features.subset(split.train_index)
    holdout = features.subset(split.holdout_index)
    folds = make_folds(train.metadata, k=5, seed=42)
    return train, holdout, folds


@pytest.fixture(scope="session")
def trained_model(training_data):
    from clarity.hyperparam_search import fit_final

    train, _, _ = training_data
    return fit_final(train.features, train.target, {"learning_rate": 0.1, "n_estimators": 60},
                     seed=42, n_jobs=1)
