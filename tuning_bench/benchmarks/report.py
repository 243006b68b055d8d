from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import numpy as np
import pandas as pd

from .config import ParameterPoint
from .runner import TrialResult

LOGGER = logging.getLogger("tuning_bench.benchmark.report")

TUNED_PARAMETERS_DEFAULT = 2

POINT_COLUMNS = [
    "engine",
    "cv_folds",
    "tune_grid_resolution",
    "row_count",
    "threads",
    "workers",
]
TRIAL_COLUMNS = [
    "iterations",
    "requested_iterations",
    "partial",
    "failed",
    "timed_out",
    "min_time",
    "median_time",
    "max_time",
    "median_score",
    "errors",
]
DERIVED_COLUMNS = [
    "models_trained",
    "min_minutes",
    "median_minutes",
    "max_minutes",
    "parallelism",
]
REPORT_COLUMNS = POINT_COLUMNS + TRIAL_COLUMNS + DERIVED_COLUMNS


@dataclass(frozen=True, eq=False)
class Report:
    """Benchmark results, one row per grid point."""

    _frame: pd.DataFrame

    @property
    def frame(self) -> pd.DataFrame:
        return self._frame.copy()

    def __len__(self) -> int:
        return len(self._frame)

    def completed(self) -> pd.DataFrame:
        """Rows that did not fail (no timeout, at least one successful iteration)."""
        return self._frame[~self._frame["failed"]].copy()

    def counts(self) -> dict[str, int]:
        failed = int(self._frame["failed"].sum())
        partial = int((self._frame["partial"] & ~self._frame["failed"]).sum())
        return {
            "points": len(self._frame),
            "complete": len(self._frame) - failed - partial,
            "partial": partial,
            "failed": failed,
        }


def summarize(
    grid_results: Iterable[tuple[ParameterPoint, TrialResult]],
    tuned_parameters: int = TUNED_PARAMETERS_DEFAULT,
) -> Report:
    rows = []
    for point, result in grid_results:
        rows.append(
            {
                "engine": point.engine,
                "cv_folds": point.cv_folds,
                "tune_grid_resolution": point.tune_grid_resolution,
                "row_count": point.row_count,
                "threads": point.threads,
                "workers": point.workers,
                "iterations": result.iterations,
                "requested_iterations": result.requested_iterations,
                "partial": result.partial,
                "failed": result.failed,
                "timed_out": result.timed_out,
                "min_time": _or_nan(result.min_time),
                "median_time": _or_nan(result.median_time),
                "max_time": _or_nan(result.max_time),
                "median_score": _or_nan(result.median_score),
                "errors": "; ".join(result.errors),
            }
        )

    frame = pd.DataFrame(rows, columns=POINT_COLUMNS + TRIAL_COLUMNS)
    frame = frame.astype(
        {
            "cv_folds": "int64",
            "tune_grid_resolution": "int64",
            "row_count": "int64",
            "threads": "int64",
            "workers": "int64",
            "iterations": "int64",
            "requested_iterations": "int64",
            "partial": "bool",
            "failed": "bool",
            "timed_out": "bool",
            "min_time": "float64",
            "median_time": "float64",
            "max_time": "float64",
            "median_score": "float64",
        }
    )
    frame["models_trained"] = (
        frame["tune_grid_resolution"] ** tuned_parameters * frame["cv_folds"]
    ).astype("int64")
    for stat in ("min", "median", "max"):
        frame[f"{stat}_minutes"] = frame[f"{stat}_time"] / 60
    frame["parallelism"] = [
        f"{threads} threads x {workers} workers"
        for threads, workers in zip(frame["threads"], frame["workers"])
    ]
    return Report(frame[REPORT_COLUMNS].reset_index(drop=True))


def write_report(report: Report, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    report.frame.to_parquet(path, engine="pyarrow", index=False)
    LOGGER.info("Saved %d result rows to %s", len(report), path)
    return path


def read_report(path: Path) -> Report:
    frame = pd.read_parquet(path, engine="pyarrow")
    missing = [column for column in REPORT_COLUMNS if column not in frame.columns]
    if missing:
        raise ValueError(f"{path} is not a benchmark report; missing columns: {missing}")
    return Report(frame[REPORT_COLUMNS].reset_index(drop=True))


def _or_nan(value: float | None) -> float:
    return np.nan if value is None else value
