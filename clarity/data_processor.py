"""
Data Processing Module
======================

Loads the observation table handed over by the ingestion layer and checks
that it satisfies the input contract before any harmonization or sampling
happens. QA screening of individual scenes (pixel counts, water masks,
reflectance range bounds) is the ingestion layer's job and is not repeated
here.
"""

from pathlib import Path

import pandas as pd

import config
from .logging_config import get_logger

logger = get_logger(__name__)


class DataProcessor:
    """
    Loads and validates Secchi/reflectance observations.

    Key Features:
    - Parquet or CSV input with parsed acquisition dates
    - Deterministic (location, date, id) row order
    - Contract validation: columns, sensors, identifiers, target range
    """

    def __init__(self, bands=None, sensors=None, secchi_max=None):
        self.bands = list(bands or config.BANDS)
        self.sensors = list(sensors or config.SENSORS)
        self.secchi_max = float(secchi_max or config.SECCHI_MAX)
        logger.debug("DataProcessor: %d bands, sensors=%s, secchi_max=%.1f",
                     len(self.bands), self.sensors, self.secchi_max)

    def required_columns(self, require_target=True):
        cols = [
            config.OBS_ID_COL,
            config.LOCATION_COL,
            config.SENSOR_COL,
            config.DATE_COL,
            config.REGION_COL,
            config.AREA_COL,
            config.DEPTH_COL,
            *self.bands,
        ]
        if require_target:
            cols.append(config.TARGET_COL)
        return cols

    def validate_data_integrity(self, df, require_target=True):
        """
        Validate the observation table against the input contract.
        """
        logger.info("Starting data integrity validation")

        self.check_required_columns(df, require_target=require_target)

        no_sensor = df[config.SENSOR_COL].isna()
        if no_sensor.any():
            raise ValueError(f"{int(no_sensor.sum())} observations have no {config.SENSOR_COL} code")

        unknown = sorted(set(df[config.SENSOR_COL].unique()) - set(self.sensors), key=str)
        if unknown:
            raise ValueError(f"Unknown sensor codes: {unknown}. Valid sensors: {self.sensors}")

        dup = df[config.OBS_ID_COL].duplicated()
        if dup.any():
            raise ValueError(f"{int(dup.sum())} duplicate observation identifiers")

        if require_target:
            target = df[config.TARGET_COL]
            if target.isna().any():
                raise ValueError(f"{int(target.isna().sum())} observations have no {config.TARGET_COL} value")
            out_of_range = (target <= 0) | (target > self.secchi_max)
            if out_of_range.any():
                raise ValueError(
                    f"{int(out_of_range.sum())} {config.TARGET_COL} values outside (0, {self.secchi_max}]"
                )

        logger.info("Data integrity validation passed: %d records, %d columns", len(df), len(df.columns))
        return True

    def check_required_columns(self, df, require_target=True):
        missing_cols = [col for col in self.required_columns(require_target) if col not in df.columns]
        if missing_cols:
            raise ValueError(f"Critical columns missing: {missing_cols}")

    def prepare(self, df, require_target=True, sort=True):
        """
        Parse dates, validate and (by default) sort deterministically.

        With ``sort=False`` the caller's row order and index are kept, so
        results can be joined back onto the input frame.
        """
        self.check_required_columns(df, require_target=require_target)
        data = df.copy()
        data[config.DATE_COL] = pd.to_datetime(data[config.DATE_COL])
        if sort:
            data.sort_values([config.LOCATION_COL, config.DATE_COL, config.OBS_ID_COL], inplace=True)
            data.reset_index(drop=True, inplace=True)
        self.validate_data_integrity(data, require_target=require_target)
        return data

    def load_observations(self, file_path=None, require_target=True):
        file_path = Path(file_path or config.DATA_PATH)
        logger.info(f"Loading observations from {file_path}")

        if file_path.suffix.lower() in (".csv", ".txt"):
            data = pd.read_csv(file_path)
        else:
            data = pd.read_parquet(file_path, engine="pyarrow")
        logger.info(f"Raw data loaded: {len(data)} records, {len(data.columns)} columns")

        data = self.prepare(data, require_target=require_target)
        n_locations = data[config.LOCATION_COL].nunique()
        logger.info(f"Data preparation completed: {len(data)} records across {n_locations} locations")
        return data
