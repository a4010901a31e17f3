"""
Spatiotemporal Partitioner
==========================

Leak-free sampling for cross-sensor Secchi regression:

- ``split_holdout``: region-stratified random hold-out, drawn once per seed.
- ``assign_time_groups``: equal-frequency time buckets over the train pool.
- ``make_folds``: cross-validation folds built from whole
  (location, time-group) buckets, where each fold's training slice shares
  neither a lake nor a time group with its validation slice.

All randomness comes from ``numpy.random.default_rng(seed)``; identical
(seed, k, input order) always yields identical partitions.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Tuple

import numpy as np
import pandas as pd

import config
from .diagnostics import ExclusionReport
from .exceptions import DataInsufficiencyError
from .logging_config import get_logger
from .validation import validate_runtime_parameters

logger = get_logger(__name__)


def _read_only(arr) -> np.ndarray:
    arr = np.asarray(arr).copy()
    arr.setflags(write=False)
    return arr


# ---------------------------------------------------------------------------
# Hold-out
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HoldoutSplit:
    """Index labels of the hold-out set and the remaining train pool."""

    holdout_index: pd.Index
    train_index: pd.Index
    seed: int
    fraction: float

    @property
    def n_holdout(self) -> int:
        return len(self.holdout_index)

    @property
    def n_train(self) -> int:
        return len(self.train_index)


def split_holdout(
    df: pd.DataFrame,
    seed: Optional[int] = None,
    fraction: Optional[float] = None,
    region_col: Optional[str] = None,
    exclusions: Optional[ExclusionReport] = None,
) -> HoldoutSplit:
    """
    Draw ``fraction`` of each region uniformly at random as the hold-out.

    Regions are visited in sorted order with a single seeded generator, so
    the draw depends only on (seed, input order). A region too small to
    contribute a single row keeps all of its rows in the train pool and is
    reported as a data-insufficiency warning.
    """
    seed = config.RANDOM_SEED if seed is None else seed
    fraction = config.HOLDOUT_FRACTION if fraction is None else fraction
    region_col = region_col or config.REGION_COL
    validate_runtime_parameters(holdout_fraction=fraction, seed=seed)

    if df.index.has_duplicates:
        raise ValueError("Observation index must be unique for hold-out selection")

    rng = np.random.default_rng(seed)
    positions = np.arange(len(df))
    regions = df[region_col].to_numpy()
    chosen = []

    for region in sorted(pd.unique(regions), key=str):
        region_pos = positions[regions == region]
        n_pick = int(round(fraction * len(region_pos)))
        if n_pick == 0:
            detail = f"region {region} has {len(region_pos)} rows"
            if exclusions is not None:
                exclusions.record("holdout", "region_too_small", len(region_pos), detail)
            else:
                logger.warning("Region too small to stratify: %s", detail)
            continue
        picked = rng.choice(region_pos, size=n_pick, replace=False)
        chosen.append(np.sort(picked))
        logger.debug("Region %s: %d of %d rows held out", region, n_pick, len(region_pos))

    holdout_pos = np.sort(np.concatenate(chosen)) if chosen else np.array([], dtype=int)
    mask = np.zeros(len(df), dtype=bool)
    mask[holdout_pos] = True

    split = HoldoutSplit(
        holdout_index=df.index[mask],
        train_index=df.index[~mask],
        seed=int(seed),
        fraction=float(fraction),
    )
    logger.info("Hold-out split (seed=%d): %d hold-out, %d train pool",
                seed, split.n_holdout, split.n_train)
    return split


# ---------------------------------------------------------------------------
# Time groups
# ---------------------------------------------------------------------------

def day_ordinal(dates) -> pd.Series:
    dates = pd.to_datetime(pd.Series(dates))
    return (dates.dt.normalize() - pd.Timestamp("1970-01-01")).dt.days


def assign_time_groups(dates, n_groups: Optional[int] = None) -> pd.Series:
    """
    Equal-frequency (quantile) buckets on the acquisition day, 0 = earliest.

    Observations on the same day always share a bucket; heavy ties can
    therefore yield fewer than ``n_groups`` buckets.
    """
    n_groups = n_groups or config.N_TIME_GROUPS
    ordinal = day_ordinal(dates)

    if ordinal.nunique() <= 1:
        groups = pd.Series(0, index=ordinal.index)
    else:
        groups = pd.qcut(ordinal, q=n_groups, labels=False, duplicates="drop").astype(int)

    n_found = groups.nunique()
    if n_found < n_groups:
        logger.warning("Only %d of %d time groups could be formed (tied dates)", n_found, n_groups)
    return groups.rename("time_group")


# ---------------------------------------------------------------------------
# Folds
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Fold:
    number: int
    train_index: np.ndarray
    validation_index: np.ndarray
    total: int

    @property
    def n_buffer(self) -> int:
        """Rows sharing a location or time group with validation, left out of training."""
        return self.total - len(self.train_index) - len(self.validation_index)


@dataclass(frozen=True)
class FoldAssignment:
    """
    Immutable k-fold assignment over a train pool.

    ``train_index`` and ``validation_index`` of each fold are positional
    indices into the train pool, in pool order. ``fold_id[i]`` is the fold
    whose validation slice holds row ``i``.
    """

    k: int
    seed: int
    index: pd.Index
    location: np.ndarray
    time_group: np.ndarray
    fold_id: np.ndarray
    folds: Tuple[Fold, ...]

    def __iter__(self) -> Iterator[Tuple[np.ndarray, np.ndarray]]:
        for fold in self.folds:
            yield fold.train_index, fold.validation_index

    def __len__(self) -> int:
        return len(self.folds)

    def summary(self) -> pd.DataFrame:
        rows = []
        for fold in self.folds:
            rows.append({
                "fold": fold.number,
                "n_train": len(fold.train_index),
                "n_validation": len(fold.validation_index),
                "n_buffer": fold.n_buffer,
                "validation_share": len(fold.validation_index) / len(self.index),
                "n_validation_locations": len(np.unique(self.location[fold.validation_index])),
                "n_validation_time_groups": len(np.unique(self.time_group[fold.validation_index])),
            })
        return pd.DataFrame(rows)


def _pack_blocks(sizes: pd.Series, k: int, rng: np.random.Generator) -> Dict:
    """
    Greedy balanced packing of keys into k blocks, largest first.

    Keys are shuffled before a stable size sort so equal-sized keys are
    ordered by the seed rather than by their labels.
    """
    shuffled = sizes.iloc[rng.permutation(len(sizes))]
    ranked = shuffled.sort_values(ascending=False, kind="stable")
    loads = np.zeros(k)
    mapping = {}
    for key, size in ranked.items():
        block = int(np.argmin(loads))
        mapping[key] = block
        loads[block] += size
    return mapping


def make_folds(
    train_pool: pd.DataFrame,
    k: Optional[int] = None,
    seed: Optional[int] = None,
    n_time_groups: Optional[int] = None,
    location_col: Optional[str] = None,
    date_col: Optional[str] = None,
) -> FoldAssignment:
    """
    Build k leak-free folds from whole (location, time-group) buckets.

    Locations and time groups are each packed into k balanced blocks. A
    bucket in location block ``a`` and time block ``b`` is validated in fold
    ``a`` when ``(b - a) mod k`` falls in the first half of the cycle and in
    fold ``b`` otherwise. Every fold therefore validates on roughly half of
    the location blocks and half of the time blocks, and trains on the rows
    whose location and time group are both absent from its validation slice.
    Rows sharing only one of the two keys are left out of that fold.
    """
    k = k or config.N_FOLDS
    seed = config.RANDOM_SEED if seed is None else seed
    n_time_groups = n_time_groups or config.N_TIME_GROUPS
    location_col = location_col or config.LOCATION_COL
    date_col = date_col or config.DATE_COL
    validate_runtime_parameters(n_folds=k, n_time_groups=n_time_groups, seed=seed)

    pool = train_pool.reset_index(drop=True)
    location = pool[location_col].to_numpy()
    time_group = assign_time_groups(pool[date_col], n_time_groups).to_numpy()

    n_locations = len(pd.unique(location))
    n_times = len(np.unique(time_group))
    if n_locations < k:
        raise DataInsufficiencyError(f"{n_locations} locations cannot fill {k} folds")
    if n_times < k:
        raise DataInsufficiencyError(f"{n_times} time groups cannot fill {k} folds")

    rng = np.random.default_rng(seed)
    loc_sizes = pd.Series(location).value_counts(sort=False)
    time_sizes = pd.Series(time_group).value_counts(sort=False).sort_index()
    loc_block_of = _pack_blocks(loc_sizes, k, rng)
    time_block_of = _pack_blocks(time_sizes, k, rng)

    loc_block = np.array([loc_block_of[v] for v in location], dtype=int)
    time_block = np.array([time_block_of[v] for v in time_group], dtype=int)
    half = (k + 1) // 2
    offset = (time_block - loc_block) % k
    fold_id = np.where(offset < half, loc_block, time_block)

    folds = []
    for number in range(k):
        val_mask = fold_id == number
        val_locations = pd.unique(location[val_mask])
        val_times = np.unique(time_group[val_mask])
        train_mask = ~pd.Series(location).isin(val_locations).to_numpy() & ~np.isin(time_group, val_times)

        if not val_mask.any():
            raise DataInsufficiencyError(f"Fold {number} has an empty validation slice")
        if not train_mask.any():
            raise DataInsufficiencyError(
                f"Fold {number} has no training rows disjoint from its validation "
                f"locations and time groups"
            )

        fold = Fold(
            number=number,
            train_index=_read_only(np.flatnonzero(train_mask)),
            validation_index=_read_only(np.flatnonzero(val_mask)),
            total=len(pool),
        )
        logger.debug("Fold %d: %d train, %d validation, %d buffer",
                     number, len(fold.train_index), len(fold.validation_index), fold.n_buffer)
        folds.append(fold)

    assignment = FoldAssignment(
        k=k,
        seed=int(seed),
        index=train_pool.index,
        location=_read_only(location),
        time_group=_read_only(time_group),
        fold_id=_read_only(fold_id),
        folds=tuple(folds),
    )
    logger.info("Built %d folds over %d rows (%d locations, %d time groups)",
                k, len(pool), n_locations, n_times)
    return assignment
