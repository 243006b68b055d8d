"""
Benchmarking harness for parallel model tuning.

This package builds the parameter grid of dataset sizes, grid resolutions and
thread/worker splits, times repeated tuning runs for every point, and renders
the summarised timings.
"""

from .config import (
    BenchmarkGrid,
    GridConfigurationError,
    ParameterPoint,
    SweepSettings,
    build_grid,
)
from .main import main
from .report import Report, read_report, summarize, write_report
from .runner import TrialResult, TrialTimeoutError, run_point, run_sweep

__all__ = [
    "BenchmarkGrid",
    "GridConfigurationError",
    "ParameterPoint",
    "Report",
    "SweepSettings",
    "TrialResult",
    "TrialTimeoutError",
    "build_grid",
    "main",
    "read_report",
    "run_point",
    "run_sweep",
    "summarize",
    "write_report",
]
