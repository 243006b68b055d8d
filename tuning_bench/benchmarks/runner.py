from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Protocol

import numpy as np

from ..backends import ParallelismConfig, TrainingBackend, TuningOutcome, get_backend
from ..data import Dataset
from .config import BenchmarkGrid, ParameterPoint

LOGGER = logging.getLogger("tuning_bench.benchmark.runner")

ITERATIONS_DEFAULT = 3
COOLDOWN_SECONDS_DEFAULT = 5.0
JOBLIB_BACKEND_DEFAULT = "loky"


class DataSource(Protocol):
    def __call__(self, row_count: int, rng: np.random.Generator) -> Dataset: ...


ProgressCallback = Callable[[int, int, ParameterPoint, "TrialResult"], None]


class TrialTimeoutError(TimeoutError):
    """Raised when a single training call exceeds its time allowance.

    ``trial`` is the thread still running the abandoned call.
    """

    def __init__(self, message: str, trial: threading.Thread | None = None) -> None:
        super().__init__(message)
        self.trial = trial


@dataclass(frozen=True)
class TrialResult:
    """Timings of the successful iterations for one grid point."""

    requested_iterations: int
    durations: tuple[float, ...] = ()
    scores: tuple[float, ...] = ()
    errors: tuple[str, ...] = ()
    timed_out: bool = False

    @property
    def iterations(self) -> int:
        return len(self.durations)

    @property
    def partial(self) -> bool:
        return self.iterations < self.requested_iterations

    @property
    def failed(self) -> bool:
        return self.timed_out or self.iterations == 0

    @property
    def min_time(self) -> float | None:
        return min(self.durations) if self.durations else None

    @property
    def median_time(self) -> float | None:
        return float(np.median(self.durations)) if self.durations else None

    @property
    def max_time(self) -> float | None:
        return max(self.durations) if self.durations else None

    @property
    def median_score(self) -> float | None:
        return float(np.median(self.scores)) if self.scores else None


def run_point(
    point: ParameterPoint,
    data_source: DataSource,
    iterations: int = ITERATIONS_DEFAULT,
    cooldown_seconds: float = COOLDOWN_SECONDS_DEFAULT,
    *,
    backend: TrainingBackend | None = None,
    rng: np.random.Generator | None = None,
    timeout_seconds: float | None = None,
    joblib_backend: str = JOBLIB_BACKEND_DEFAULT,
) -> TrialResult:
    """Time ``iterations`` sequential tuning runs for a single grid point.

    A failing iteration is logged and left out of the statistics; it is never
    retried and never aborts the point. A timed-out call fails the point: the
    remaining iterations are not run, and the call is waited out before
    returning so that no two training calls overlap.
    """
    if iterations < 1:
        raise ValueError("iterations must be >= 1")
    if backend is None:
        backend = get_backend(point.engine)
    if rng is None:
        rng = np.random.default_rng()
    parallelism = point.parallelism(joblib_backend)

    durations: list[float] = []
    scores: list[float] = []
    errors: list[str] = []
    timed_out = False
    for iteration in range(1, iterations + 1):
        time.sleep(cooldown_seconds)
        try:
            dataset = data_source(point.row_count, rng)
            started = time.perf_counter()
            outcome = _call_backend(backend, dataset, point, parallelism, timeout_seconds)
            elapsed = time.perf_counter() - started
        except TrialTimeoutError as exc:
            LOGGER.error(
                "  Iteration %d/%d timed out for %s; skipping the rest of the point",
                iteration,
                iterations,
                point.label(),
            )
            errors.append(f"{type(exc).__name__}: {exc}")
            errors.extend(
                f"NotRun: iteration {skipped} skipped after timeout"
                for skipped in range(iteration + 1, iterations + 1)
            )
            if exc.trial is not None and exc.trial.is_alive():
                LOGGER.warning("Waiting for the timed-out call on %s to finish", point.label())
                exc.trial.join()
            timed_out = True
            break
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception(
                "  Iteration %d/%d failed for %s", iteration, iterations, point.label()
            )
            errors.append(f"{type(exc).__name__}: {exc}")
            continue

        durations.append(elapsed)
        scores.append(outcome.best_score)
        LOGGER.info(
            "  Iteration %d/%d for %s took %.3fs (score %.4f)",
            iteration,
            iterations,
            point.label(),
            elapsed,
            outcome.best_score,
        )

    return TrialResult(
        requested_iterations=iterations,
        durations=tuple(durations),
        scores=tuple(scores),
        errors=tuple(errors),
        timed_out=timed_out,
    )


def run_sweep(
    grid: BenchmarkGrid,
    data_source: DataSource,
    *,
    iterations: int = ITERATIONS_DEFAULT,
    cooldown_seconds: float = COOLDOWN_SECONDS_DEFAULT,
    seed: int | None = None,
    backends: Mapping[str, TrainingBackend] | None = None,
    timeout_seconds: float | None = None,
    joblib_backend: str = JOBLIB_BACKEND_DEFAULT,
    progress: ProgressCallback | None = None,
) -> list[tuple[ParameterPoint, TrialResult]]:
    """Measure every grid point in order with one random stream for the sweep."""
    rng = np.random.default_rng(seed)
    resolved: dict[str, TrainingBackend] = dict(backends or {})
    results: list[tuple[ParameterPoint, TrialResult]] = []
    total = len(grid)

    for index, point in enumerate(grid, start=1):
        LOGGER.info(
            "Running point %d/%d: %s (iterations=%d)", index, total, point.label(), iterations
        )
        if point.engine not in resolved:
            resolved[point.engine] = get_backend(point.engine)
        result = run_point(
            point,
            data_source,
            iterations,
            cooldown_seconds,
            backend=resolved[point.engine],
            rng=rng,
            timeout_seconds=timeout_seconds,
            joblib_backend=joblib_backend,
        )
        if result.failed:
            LOGGER.warning(
                "Point %s failed (%d/%d iterations succeeded, timed out: %s)",
                point.label(),
                result.iterations,
                result.requested_iterations,
                result.timed_out,
            )
        elif result.partial:
            LOGGER.warning(
                "Point %s is partial: %d/%d iterations succeeded",
                point.label(),
                result.iterations,
                result.requested_iterations,
            )
        results.append((point, result))
        if progress is not None:
            progress(index, total, point, result)

    return results


def _call_backend(
    backend: TrainingBackend,
    dataset: Dataset,
    point: ParameterPoint,
    parallelism: ParallelismConfig,
    timeout_seconds: float | None,
) -> TuningOutcome:
    def call() -> TuningOutcome:
        return backend.train_and_tune(
            dataset,
            cv_folds=point.cv_folds,
            grid_resolution=point.tune_grid_resolution,
            parallelism=parallelism,
        )

    if timeout_seconds is None:
        return call()

    box: dict[str, Any] = {}

    def runner() -> None:
        try:
            box["outcome"] = call()
        except BaseException as exc:  # noqa: BLE001
            box["error"] = exc

    # The thread cannot be cancelled; the caller decides whether to wait for it.
    thread = threading.Thread(target=runner, name="benchmark-trial", daemon=True)
    thread.start()
    thread.join(timeout=timeout_seconds)
    if thread.is_alive():
        raise TrialTimeoutError(
            f"training call exceeded {timeout_seconds:.1f}s for {point.label()}",
            trial=thread,
        )
    if "error" in box:
        raise box["error"]
    return box["outcome"]
