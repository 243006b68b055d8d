from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

import numpy as np
from joblib import parallel_config
from sklearn.model_selection import GridSearchCV, KFold

from .data import Dataset

LOGGER = logging.getLogger("tuning_bench.backends")

SCORING = "neg_root_mean_squared_error"
LEARNING_RATE_RANGE: tuple[float, float] = (0.01, 0.3)
JOBLIB_BACKENDS: tuple[str, ...] = ("loky", "multiprocessing", "threading")


class TrainingBackendError(RuntimeError):
    """Raised when the underlying engine fails to train or tune a model."""


class UnknownEngineError(KeyError):
    """Raised when no backend is registered under the requested engine name."""


@dataclass(frozen=True)
class ParallelismConfig:
    """Control knobs handed to a single tuning call."""

    threads: int
    workers: int
    backend: str = "loky"

    def __post_init__(self) -> None:
        if self.threads < 1 or self.workers < 1:
            raise ValueError("threads and workers must both be >= 1")
        if self.backend not in JOBLIB_BACKENDS:
            raise ValueError(
                f"backend must be one of {', '.join(JOBLIB_BACKENDS)}; got {self.backend!r}"
            )

    @property
    def total(self) -> int:
        return self.threads * self.workers


@dataclass(frozen=True)
class TuningOutcome:
    best_score: float
    best_params: dict[str, Any] = field(default_factory=dict)
    n_candidates: int = 0
    n_fits: int = 0


class TrainingBackend(ABC):
    """Tunes a boosted-tree model over a regular grid with cross-validation.

    Subclasses supply the estimator and the candidate values for each tuned
    hyperparameter. Worker parallelism (resamples x candidates) is handled by
    scikit-learn's grid search through joblib; thread parallelism is passed to
    the engine itself.
    """

    engine: str = ""
    tuned_parameters: tuple[str, ...] = ()

    def __init__(self, n_estimators: int = 100, random_state: int | None = None) -> None:
        self._n_estimators = n_estimators
        self._random_state = random_state

    @abstractmethod
    def build_estimator(self, threads: int) -> Any:
        """Return an unfitted scikit-learn compatible regressor."""

    @abstractmethod
    def param_grid(self, resolution: int) -> dict[str, list[Any]]:
        """Return ``resolution`` candidate values for every tuned parameter."""

    def train_and_tune(
        self,
        dataset: Dataset,
        cv_folds: int,
        grid_resolution: int,
        parallelism: ParallelismConfig,
    ) -> TuningOutcome:
        grid = self.param_grid(grid_resolution)
        splitter = KFold(n_splits=cv_folds, shuffle=True, random_state=self._random_state)
        search = GridSearchCV(
            self.build_estimator(parallelism.threads),
            param_grid=grid,
            cv=splitter,
            scoring=SCORING,
            n_jobs=parallelism.workers,
            refit=False,
            error_score="raise",
        )
        LOGGER.debug(
            "Tuning %s on %d rows (folds=%d, resolution=%d, threads=%d, workers=%d, backend=%s)",
            self.engine,
            len(dataset),
            cv_folds,
            grid_resolution,
            parallelism.threads,
            parallelism.workers,
            parallelism.backend,
        )
        try:
            with parallel_config(backend=parallelism.backend, n_jobs=parallelism.workers):
                search.fit(dataset.features, dataset.target)
        except Exception as exc:
            raise TrainingBackendError(f"{self.engine} tuning failed: {exc}") from exc

        n_candidates = len(search.cv_results_["params"])
        return TuningOutcome(
            best_score=float(-search.best_score_),
            best_params=dict(search.best_params_),
            n_candidates=n_candidates,
            n_fits=n_candidates * cv_folds,
        )


class LightGBMBackend(TrainingBackend):
    engine = "lightgbm"
    tuned_parameters = ("learning_rate", "num_leaves")

    def build_estimator(self, threads: int) -> Any:
        from lightgbm import LGBMRegressor

        return LGBMRegressor(
            n_estimators=self._n_estimators,
            n_jobs=threads,
            random_state=self._random_state,
            verbosity=-1,
        )

    def param_grid(self, resolution: int) -> dict[str, list[Any]]:
        return {
            "learning_rate": _linspace(*LEARNING_RATE_RANGE, resolution),
            "num_leaves": _int_levels(8, 64, resolution),
        }


class CatBoostBackend(TrainingBackend):
    engine = "catboost"
    tuned_parameters = ("learning_rate", "depth")

    def build_estimator(self, threads: int) -> Any:
        from catboost import CatBoostRegressor

        return CatBoostRegressor(
            iterations=self._n_estimators,
            thread_count=threads,
            random_seed=self._random_state,
            verbose=False,
            allow_writing_files=False,
        )

    def param_grid(self, resolution: int) -> dict[str, list[Any]]:
        return {
            "learning_rate": _linspace(*LEARNING_RATE_RANGE, resolution),
            "depth": _int_levels(2, 10, resolution),
        }


_BACKEND_REGISTRY: dict[str, Callable[[], TrainingBackend]] = {
    LightGBMBackend.engine: LightGBMBackend,
    CatBoostBackend.engine: CatBoostBackend,
}


def register_backend(engine: str, factory: Callable[[], TrainingBackend]) -> None:
    _BACKEND_REGISTRY[engine] = factory


def available_engines() -> list[str]:
    return sorted(_BACKEND_REGISTRY)


def get_backend(engine: str) -> TrainingBackend:
    if engine not in _BACKEND_REGISTRY:
        available = ", ".join(available_engines())
        raise UnknownEngineError(f"No training backend for {engine!r}. Available: {available}")
    return _BACKEND_REGISTRY[engine]()


def _linspace(low: float, high: float, count: int) -> list[float]:
    return [round(float(value), 6) for value in np.linspace(low, high, count)]


def _int_levels(low: int, high: int, count: int) -> list[int]:
    # Repeated levels are possible for a large resolution over a narrow range;
    # they are kept so the candidate count stays resolution ** k.
    return [int(round(value)) for value in np.linspace(low, high, count)]


__all__ = [
    "CatBoostBackend",
    "LightGBMBackend",
    "ParallelismConfig",
    "TrainingBackend",
    "TrainingBackendError",
    "TuningOutcome",
    "UnknownEngineError",
    "available_engines",
    "get_backend",
    "register_backend",
]
