#!/usr/bin/env python3
"""
Partition integrity validation script.
"""

import sys

import numpy as np

import config
from clarity.data_processor import DataProcessor
from clarity.feature_utils import build_features
from clarity.harmonization import apply_harmonization, fit_harmonization
from clarity.partitioner import make_folds, split_holdout


def validate_holdout(meta, split):
    if split.holdout_index.intersection(split.train_index).size:
        raise ValueError("Hold-out and train pool overlap")
    if split.n_holdout + split.n_train != len(meta):
        raise ValueError("Hold-out and train pool do not cover every observation")
    for region, group in meta.groupby(config.REGION_COL):
        expected = int(round(split.fraction * len(group)))
        got = int(group.index.isin(split.holdout_index).sum())
        if got != expected:
            raise ValueError(f"Region {region}: {got} held out, expected {expected}")


def validate_folds(folds):
    seen = np.zeros(len(folds.index), dtype=int)
    for fold in folds.folds:
        seen[fold.validation_index] += 1
        train_loc = set(folds.location[fold.train_index])
        val_loc = set(folds.location[fold.validation_index])
        if train_loc & val_loc:
            raise ValueError(f"Fold {fold.number}: location leak {sorted(train_loc & val_loc)[:5]}")
        train_time = set(folds.time_group[fold.train_index])
        val_time = set(folds.time_group[fold.validation_index])
        if train_time & val_time:
            raise ValueError(f"Fold {fold.number}: time group leak {sorted(train_time & val_time)}")
    if not (seen == 1).all():
        raise ValueError("Validation slices do not partition the train pool")


def validate_reproducibility(meta):
    a = split_holdout(meta, seed=config.RANDOM_SEED)
    b = split_holdout(meta, seed=config.RANDOM_SEED)
    if not a.holdout_index.equals(b.holdout_index):
        raise ValueError("Hold-out split is not reproducible for a fixed seed")
    pool = meta.loc[a.train_index]
    fa = make_folds(pool, seed=config.RANDOM_SEED)
    fb = make_folds(pool, seed=config.RANDOM_SEED)
    if not np.array_equal(fa.fold_id, fb.fold_id):
        raise ValueError("Fold assignment is not reproducible for a fixed seed")


def main():
    processor = DataProcessor()
    data = processor.load_observations(config.DATA_PATH)

    harmonization = fit_harmonization(data, strict=False)
    features = build_features(apply_harmonization(harmonization, data))
    meta = features.metadata

    split = split_holdout(meta, seed=config.RANDOM_SEED)
    validate_holdout(meta, split)

    folds = make_folds(meta.loc[split.train_index], seed=config.RANDOM_SEED)
    validate_folds(folds)

    validate_reproducibility(meta)

    print(folds.summary().to_string(index=False))
    print("Partition integrity validation completed successfully.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
