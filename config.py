# Clarity Configuration
# Settings for harmonization, feature building, partitioning and model training

import os

# Data Sources and Paths

# Tabular observation file produced by the ingestion layer (parquet or csv)
DATA_PATH = "./data/processed/secchi_observations.parquet"

# Trained model, harmonization coefficients and metrics are written here
OUTPUT_DIR = "./output"

# Observation Schema

OBS_ID_COL = "obs_id"
LOCATION_COL = "location_id"
SENSOR_COL = "sensor"
DATE_COL = "date"
REGION_COL = "region"
AREA_COL = "area"
DEPTH_COL = "mean_depth"
TARGET_COL = "secchi"

# Surface reflectance bands shared by every sensor
BANDS = ["blue", "green", "red", "nir", "swir1", "swir2"]

# Landsat 5 TM, Landsat 7 ETM+, Landsat 8 OLI
SENSORS = ["LT05", "LE07", "LC08"]

# Every sensor is projected onto this sensor's radiometric scale
REFERENCE_SENSOR = "LC08"

# Secchi depth (m) above this is treated as physically implausible
SECCHI_MAX = 15.0

# Sensor Harmonization

# "window": pair sensors observing the same lake within the same window
# "quantile": pair sensor distributions percentile by percentile over shared lakes
HARMONIZATION_PAIRING = "window"

# pandas period alias used to floor acquisition dates for window pairing
HARMONIZATION_WINDOW = "M"

# Percentile levels used for quantile pairing (1st..99th)
HARMONIZATION_QUANTILES = [q / 100 for q in range(1, 100)]

# Minimum paired rows for a (band, sensor) regression
MIN_HARMONIZATION_PAIRS = 2

# Feature Configuration

# Explicit feature ordering; the trained model is bound to this schema
FEATURE_COLUMNS = [
    "blue",
    "green",
    "red",
    "nir",
    "swir1",
    "swir2",
    "nir_red",
    "blue_green",
    "dw",
]

# Lake area bins (km2) for stratified diagnostics
LAKE_SIZE_BINS = [0, 1, 10, 100, float("inf")]
LAKE_SIZE_LABELS = ["<1", "1-10", "10-100", ">100"]

# Covariates used for stratified hold-out breakdowns
STRATIFY_BY = ["lake_size", "sensor", "year"]

# Spatiotemporal Sampling

RANDOM_SEED = 42

# Stratified (by region) hold-out fraction
HOLDOUT_FRACTION = 0.2

# Equal-frequency time buckets over the training pool
N_TIME_GROUPS = 5

# Cross-validation folds
N_FOLDS = 5

# Model Training

# Base XGBoost parameters; grid values are merged on top
XGB_REGRESSION_PARAMS = {
    "max_depth": 6,
    "subsample": 0.8,
    "colsample_bytree": 0.8,
    "min_child_weight": 1,
    "tree_method": "hist",
    "objective": "reg:squarederror",
}

# Hyperparameter grid (cross product, declared order breaks ties)
PARAM_GRID = {
    "learning_rate": [0.05, 0.1],
    "n_estimators": [200, 400],
    "reg_alpha": [0.0, 0.1],
    "reg_lambda": [1.0, 5.0],
}

# Train XGBoost on CUDA (requires a GPU build of xgboost)
USE_GPU = False

# Worker pool for the grid search (-1 = all cores)
ENABLE_PARALLEL = True
N_JOBS = int(os.getenv("CLARITY_N_JOBS", "-1"))

# Logging

LOG_LEVEL = "INFO"
