from __future__ import annotations

import threading
import time

import matplotlib

matplotlib.use("Agg")

import pytest

from tuning_bench import backends
from tuning_bench.backends import ParallelismConfig, TuningOutcome
from tuning_bench.benchmarks.config import ParameterPoint
from tuning_bench.data import Dataset, ResamplingDataSource, make_base_dataset


class FakeBackend:
    """In-memory backend that records calls and fails on chosen call numbers.

    ``delays`` maps a call number to the seconds that call sleeps. ``max_active``
    is the largest number of calls seen running at the same time.
    """

    engine = "fake"
    tuned_parameters = ("alpha", "beta")

    def __init__(
        self,
        fail_on: set[int] | None = None,
        delay: float = 0.0,
        delays: dict[int, float] | None = None,
    ) -> None:
        self.fail_on = fail_on or set()
        self.delay = delay
        self.delays = delays or {}
        self.calls: list[dict] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def train_and_tune(
        self,
        dataset: Dataset,
        cv_folds: int,
        grid_resolution: int,
        parallelism: ParallelismConfig,
    ) -> TuningOutcome:
        with self._lock:
            self.calls.append(
                {
                    "rows": len(dataset),
                    "cv_folds": cv_folds,
                    "grid_resolution": grid_resolution,
                    "threads": parallelism.threads,
                    "workers": parallelism.workers,
                    "backend": parallelism.backend,
                }
            )
            call_number = len(self.calls)
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if call_number in self.fail_on:
                raise MemoryError("simulated out-of-memory in forked worker")
            delay = self.delays.get(call_number, self.delay)
            if delay:
                time.sleep(delay)
        finally:
            with self._lock:
                self.active -= 1
        return TuningOutcome(
            best_score=float(call_number),
            best_params={"alpha": 0.1},
            n_candidates=grid_resolution**2,
            n_fits=grid_resolution**2 * cv_folds,
        )


@pytest.fixture
def fake_backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def registered_fake(monkeypatch) -> FakeBackend:
    backend = FakeBackend()
    monkeypatch.setitem(backends._BACKEND_REGISTRY, "fake", lambda: backend)
    return backend


@pytest.fixture(scope="session")
def base_dataset() -> Dataset:
    return make_base_dataset(n_rows=200, n_features=5, seed=7)


@pytest.fixture
def data_source(base_dataset) -> ResamplingDataSource:
    return ResamplingDataSource(base_dataset)


@pytest.fixture
def point() -> ParameterPoint:
    return ParameterPoint(
        engine="fake",
        cv_folds=3,
        tune_grid_resolution=2,
        row_count=50,
        threads=2,
        workers=4,
    )
