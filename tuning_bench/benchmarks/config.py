from __future__ import annotations

import dataclasses
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

from ..backends import JOBLIB_BACKENDS, ParallelismConfig, available_engines

BASELINE_THREADS = 1
BASELINE_WORKERS = 1


class GridConfigurationError(ValueError):
    """Raised when a benchmark grid cannot be built from the given options."""


@dataclass(frozen=True)
class ParameterPoint:
    """One fully specified combination of benchmark parameters."""

    engine: str
    cv_folds: int
    tune_grid_resolution: int
    row_count: int
    threads: int
    workers: int

    def parallelism(self, joblib_backend: str = "loky") -> ParallelismConfig:
        return ParallelismConfig(
            threads=self.threads, workers=self.workers, backend=joblib_backend
        )

    @property
    def is_baseline(self) -> bool:
        return self.threads == BASELINE_THREADS and self.workers == BASELINE_WORKERS

    def label(self) -> str:
        return (
            f"{self.engine}/rows={self.row_count}/res={self.tune_grid_resolution}"
            f"/folds={self.cv_folds}/{self.threads}t x {self.workers}w"
        )


@dataclass(frozen=True)
class BenchmarkGrid:
    """Ordered grid points; duplicates are kept and measured again."""

    points: tuple[ParameterPoint, ...]

    def __iter__(self) -> Iterator[ParameterPoint]:
        return iter(self.points)

    def __len__(self) -> int:
        return len(self.points)

    def __getitem__(self, index: int) -> ParameterPoint:
        return self.points[index]


def build_grid(
    row_counts: Iterable[int],
    tune_grid_resolutions: Iterable[int],
    thread_options: Iterable[int],
    fixed_parallelism_budget: int,
    cv_folds: int,
    engine: str,
) -> BenchmarkGrid:
    """Enumerate budget-constrained points followed by the single-core baseline.

    For each thread count ``t`` the worker count is ``budget // t``. After the
    cartesian product, one ``threads=1, workers=1`` point is appended per
    (row count, resolution) pair.
    """
    rows = _sorted_candidates("row_counts", row_counts)
    resolutions = _sorted_candidates("tune_grid_resolutions", tune_grid_resolutions)
    threads = _sorted_candidates("thread_options", thread_options)

    if fixed_parallelism_budget < 1:
        raise GridConfigurationError(
            f"fixed_parallelism_budget must be >= 1; got {fixed_parallelism_budget}"
        )
    oversized = [t for t in threads if t > fixed_parallelism_budget]
    if oversized:
        raise GridConfigurationError(
            f"thread options {oversized} exceed the parallelism budget "
            f"{fixed_parallelism_budget} and would leave no workers"
        )
    if cv_folds < 2:
        raise GridConfigurationError(f"cv_folds must be >= 2; got {cv_folds}")
    if engine not in available_engines():
        raise GridConfigurationError(
            f"unknown engine {engine!r}; available: {', '.join(available_engines())}"
        )

    points = [
        ParameterPoint(
            engine=engine,
            cv_folds=cv_folds,
            tune_grid_resolution=resolution,
            row_count=row_count,
            threads=t,
            workers=fixed_parallelism_budget // t,
        )
        for row_count in rows
        for resolution in resolutions
        for t in threads
    ]
    points.extend(
        ParameterPoint(
            engine=engine,
            cv_folds=cv_folds,
            tune_grid_resolution=resolution,
            row_count=row_count,
            threads=BASELINE_THREADS,
            workers=BASELINE_WORKERS,
        )
        for row_count in rows
        for resolution in resolutions
    )
    return BenchmarkGrid(points=tuple(points))


@dataclass(frozen=True)
class SweepSettings:
    """Resolved options for a full benchmark sweep."""

    engine: str = "lightgbm"
    row_counts: tuple[int, ...] = (100, 1_000, 10_000)
    tune_grid_resolutions: tuple[int, ...] = (2, 3, 4)
    thread_options: tuple[int, ...] = ()
    parallelism_budget: int = field(default_factory=lambda: os.cpu_count() or 1)
    cv_folds: int = 5
    iterations: int = 3
    cooldown_seconds: float = 5.0
    timeout_seconds: float | None = None
    seed: int | None = 1
    joblib_backend: str = "loky"

    def __post_init__(self) -> None:
        if not self.thread_options:
            object.__setattr__(
                self, "thread_options", default_thread_options(self.parallelism_budget)
            )
        if self.iterations < 1:
            raise GridConfigurationError(f"iterations must be >= 1; got {self.iterations}")
        if self.cooldown_seconds < 0:
            raise GridConfigurationError("cooldown_seconds must be >= 0")
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise GridConfigurationError("timeout_seconds must be > 0 when set")
        if self.joblib_backend not in JOBLIB_BACKENDS:
            raise GridConfigurationError(
                f"joblib_backend must be one of {', '.join(JOBLIB_BACKENDS)}; "
                f"got {self.joblib_backend!r}"
            )

    def build_grid(self) -> BenchmarkGrid:
        return build_grid(
            row_counts=self.row_counts,
            tune_grid_resolutions=self.tune_grid_resolutions,
            thread_options=self.thread_options,
            fixed_parallelism_budget=self.parallelism_budget,
            cv_folds=self.cv_folds,
            engine=self.engine,
        )

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


def default_thread_options(budget: int) -> tuple[int, ...]:
    """Powers of two that divide the budget evenly, e.g. 8 -> (1, 2, 4, 8)."""
    options = []
    value = 1
    while value <= budget:
        if budget % value == 0:
            options.append(value)
        value *= 2
    return tuple(options)


def load_settings(path: str | Path | None, **overrides: Any) -> SweepSettings:
    """Build settings from an optional JSON plan file; overrides win."""
    raw: dict[str, Any] = {}
    if path:
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise GridConfigurationError(f"benchmark plan {path} must be a JSON object")

    known = {f.name for f in dataclasses.fields(SweepSettings)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise GridConfigurationError(f"unknown benchmark plan keys: {', '.join(unknown)}")

    raw.update({key: value for key, value in overrides.items() if value is not None})
    for key in ("row_counts", "tune_grid_resolutions", "thread_options"):
        if key in raw:
            raw[key] = _int_tuple(key, raw[key])
    try:
        return SweepSettings(**raw)
    except TypeError as exc:
        raise GridConfigurationError(f"invalid benchmark plan value: {exc}") from exc


def _int_tuple(name: str, values: Any) -> tuple[int, ...]:
    if isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise GridConfigurationError(f"{name} must be a list of integers; got {values!r}")
    try:
        return tuple(int(value) for value in values)
    except (TypeError, ValueError) as exc:
        raise GridConfigurationError(f"{name} must be a list of integers; got {values!r}") from exc


def _sorted_candidates(name: str, values: Iterable[int]) -> Sequence[int]:
    candidates = sorted(set(values))
    if not candidates:
        raise GridConfigurationError(f"{name} must contain at least one value")
    if candidates[0] < 1:
        raise GridConfigurationError(f"{name} must be >= 1; got {candidates[0]}")
    return candidates
