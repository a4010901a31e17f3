#!/usr/bin/env python3
"""
Clarity training run.

Harmonizes the observation table, trains the Secchi depth regressor with a
spatiotemporal grid search and writes the model, harmonization
coefficients, hold-out metrics and breakdown tables to the output directory.

Run from repo root: python run_clarity.py --data data/processed/secchi_observations.parquet
"""

import argparse
import os
import sys

import config
from clarity import ClarityEngine, save_artifacts
from clarity.exceptions import ClarityError
from clarity.logging_config import setup_logging


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Train and validate the Secchi depth model with leak-free spatiotemporal sampling"
    )
    parser.add_argument("--data", "-d", default=config.DATA_PATH,
                        help=f"Observation table, parquet or csv (default: {config.DATA_PATH})")
    parser.add_argument("--output", "-o", default=config.OUTPUT_DIR,
                        help=f"Artifact directory (default: {config.OUTPUT_DIR})")
    parser.add_argument("--seed", type=int, default=config.RANDOM_SEED)
    parser.add_argument("--folds", type=int, default=config.N_FOLDS)
    parser.add_argument("--n-jobs", dest="n_jobs", type=int, default=None,
                        help="Grid search workers (default: config.N_JOBS, -1 = all cores)")
    parser.add_argument("--log-level", dest="log_level", default=config.LOG_LEVEL,
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--no-progress", action="store_true", help="Hide the grid search progress bar")
    args = parser.parse_args(argv)

    logger = setup_logging(args.log_level)

    if not os.path.exists(args.data):
        print(f"ERROR: Data file not found: {args.data}")
        print("Export the observation table from the ingestion layer first.")
        return 1

    try:
        engine = ClarityEngine(
            data_file=args.data,
            seed=args.seed,
            n_folds=args.folds,
            n_jobs=args.n_jobs,
            progress=not args.no_progress,
        )
        result = engine.run()
    except (ClarityError, ValueError) as e:
        logger.error("Run failed: %s", e)
        return 1

    paths = save_artifacts(result, args.output)

    m = result.metrics
    print(f"\nHold-out (n={m.n}): RMSE={m.rmse:.3f}  MAE={m.mae:.3f}  MAPE={m.mape:.1f}%  "
          f"Bias={m.bias:.3f}  PBias={m.pbias:.1f}%  SMAPE={m.smape:.1f}%")
    print(f"Best params: {result.search.best_params} (CV RMSE {result.search.best_score:.3f})")
    print(f"Excluded: {result.exclusions.total()} items {result.exclusions.by_stage()}")
    print(f"Artifacts written to {os.path.dirname(str(paths['metrics']))}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
