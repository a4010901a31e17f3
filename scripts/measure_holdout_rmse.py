#!/usr/bin/env python3
"""
Measure hold-out RMSE with the current config (same protocol as run_clarity).
Run from repo root: python scripts/measure_holdout_rmse.py

Use this to compare before/after changes (e.g. toggle features in config).
"""
import os
import sys

# Run from repo root
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

def main():
    import config
    from clarity import ClarityEngine
    from clarity.logging_config import setup_logging

    setup_logging(os.getenv("CLARITY_LOG_LEVEL", "WARNING"))
    seeds = [int(s) for s in os.getenv("SEEDS", str(config.RANDOM_SEED)).split(",")]

    print(f"Config: FEATURES={config.FEATURE_COLUMNS}")
    print(f"Harmonization: REFERENCE={config.REFERENCE_SENSOR}, PAIRING={config.HARMONIZATION_PAIRING}")
    print(f"Seeds: {seeds}")

    rmses = []
    for seed in seeds:
        engine = ClarityEngine(seed=seed, validate_on_init=False, progress=False)
        result = engine.run()
        m = result.metrics
        rmses.append(m.rmse)
        print(f"  seed={seed}: RMSE={m.rmse:.4f}  MAE={m.mae:.4f}  SMAPE={m.smape:.2f}%  (n={m.n})")

    if rmses:
        mean = sum(rmses) / len(rmses)
        print(f"\nHold-out RMSE = {mean:.4f} (mean over {len(rmses)} seed(s))")
        return mean
    print("No results.")
    return None

if __name__ == "__main__":
    main()
