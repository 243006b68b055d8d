from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pandas as pd
from sklearn.datasets import make_friedman1

BASE_ROWS_DEFAULT = 2_000
BASE_FEATURES_DEFAULT = 10
BASE_SEED_DEFAULT = 1
MIN_FEATURES = 5


@dataclass(frozen=True)
class Dataset:
    features: pd.DataFrame
    target: pd.Series

    def __post_init__(self) -> None:
        if len(self.features) != len(self.target):
            raise ValueError("features and target must have the same number of rows")

    def __len__(self) -> int:
        return len(self.target)

    def take(self, indices: np.ndarray) -> "Dataset":
        return Dataset(
            features=self.features.iloc[indices].reset_index(drop=True),
            target=self.target.iloc[indices].reset_index(drop=True),
        )


def make_base_dataset(
    n_rows: int = BASE_ROWS_DEFAULT,
    n_features: int = BASE_FEATURES_DEFAULT,
    seed: int = BASE_SEED_DEFAULT,
) -> Dataset:
    """Simulated regression problem every benchmark draws its samples from."""
    if n_features < MIN_FEATURES:
        raise ValueError(
            f"n_features must be >= {MIN_FEATURES} for the Friedman problem; got {n_features}"
        )
    if n_rows < 1:
        raise ValueError(f"n_rows must be >= 1; got {n_rows}")
    X, y = make_friedman1(n_samples=n_rows, n_features=n_features, noise=1.0, random_state=seed)
    columns = [f"x{idx:02d}" for idx in range(1, n_features + 1)]
    return Dataset(
        features=pd.DataFrame(X, columns=columns),
        target=pd.Series(y, name="outcome"),
    )


class ResamplingDataSource:
    """Draws ``row_count`` rows with replacement from a fixed base dataset."""

    def __init__(self, base: Dataset) -> None:
        if len(base) == 0:
            raise ValueError("base dataset must not be empty")
        self._base = base

    @property
    def base(self) -> Dataset:
        return self._base

    def __call__(self, row_count: int, rng: np.random.Generator) -> Dataset:
        if row_count < 1:
            raise ValueError("row_count must be >= 1")
        indices = rng.integers(0, len(self._base), size=row_count)
        return self._base.take(indices)
