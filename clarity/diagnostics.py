"""
Exclusion Accounting
====================

Every observation dropped or model slice skipped during a run is recorded
here so the caller can see exactly how much data was lost and why.
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

import pandas as pd

from .logging_config import get_logger

logger = get_logger(__name__)


class ExclusionReport:
    """
    Counter of non-fatal exclusions keyed by (stage, reason).

    Stages are the pipeline components ("harmonization", "features",
    "holdout", "folds", "search"); reasons are short snake_case tags such
    as ``missing_correction`` or ``zero_denominator``.
    """

    def __init__(self):
        self._counts: "OrderedDict[Tuple[str, str], int]" = OrderedDict()
        self._details: Dict[Tuple[str, str], List[str]] = {}

    def record(self, stage: str, reason: str, count: int = 1, detail: Optional[str] = None) -> None:
        if count <= 0:
            return
        key = (stage, reason)
        self._counts[key] = self._counts.get(key, 0) + int(count)
        if detail:
            self._details.setdefault(key, []).append(detail)
        logger.warning(
            "Excluded %d at %s (%s)%s",
            count, stage, reason, f": {detail}" if detail else "",
        )

    def count(self, stage: Optional[str] = None, reason: Optional[str] = None) -> int:
        return sum(
            n for (s, r), n in self._counts.items()
            if (stage is None or s == stage) and (reason is None or r == reason)
        )

    def total(self) -> int:
        return self.count()

    def by_stage(self) -> Dict[str, int]:
        stages: Dict[str, int] = {}
        for (stage, _), n in self._counts.items():
            stages[stage] = stages.get(stage, 0) + n
        return stages

    def to_frame(self) -> pd.DataFrame:
        rows = [
            {
                "stage": stage,
                "reason": reason,
                "count": n,
                "detail": "; ".join(self._details.get((stage, reason), [])),
            }
            for (stage, reason), n in self._counts.items()
        ]
        return pd.DataFrame(rows, columns=["stage", "reason", "count", "detail"])

    def as_dict(self) -> Dict[str, Dict[str, int]]:
        out: Dict[str, Dict[str, int]] = {}
        for (stage, reason), n in self._counts.items():
            out.setdefault(stage, {})[reason] = n
        return out

    def log_summary(self) -> None:
        if not self._counts:
            logger.info("No observations or model slices were excluded")
            return
        logger.warning("Run excluded %d items in total", self.total())
        for (stage, reason), n in self._counts.items():
            logger.warning("  %-14s %-24s %d", stage, reason, n)

    def __repr__(self) -> str:
        return f"ExclusionReport({self.as_dict()!r})"
