import numpy as np
import pytest

from tuning_bench.data import ResamplingDataSource, make_base_dataset


def test_base_dataset_is_fixed():
    a = make_base_dataset(n_rows=50, n_features=5, seed=3)
    b = make_base_dataset(n_rows=50, n_features=5, seed=3)

    assert len(a) == 50
    assert list(a.features.columns) == ["x01", "x02", "x03", "x04", "x05"]
    np.testing.assert_array_equal(a.target.to_numpy(), b.target.to_numpy())


@pytest.mark.parametrize("n_features", [0, 4])
def test_base_dataset_rejects_too_few_features(n_features):
    with pytest.raises(ValueError, match="n_features must be >= 5"):
        make_base_dataset(n_rows=50, n_features=n_features)


def test_base_dataset_rejects_empty_rows():
    with pytest.raises(ValueError, match="n_rows"):
        make_base_dataset(n_rows=0)


def test_resampling_draws_requested_rows_with_replacement(base_dataset):
    source = ResamplingDataSource(base_dataset)

    sample = source(1_000, np.random.default_rng(0))

    assert len(sample) == 1_000
    assert len(sample.features) == 1_000
    assert sample.features.index.tolist() == list(range(1_000))
    assert sample.features.duplicated().any()
    assert set(sample.target).issubset(set(base_dataset.target))


def test_resampling_is_driven_by_the_generator(data_source):
    a = data_source(40, np.random.default_rng(5))
    b = data_source(40, np.random.default_rng(5))

    np.testing.assert_array_equal(a.target.to_numpy(), b.target.to_numpy())


def test_resampling_rejects_empty_requests(data_source):
    with pytest.raises(ValueError):
        data_source(0, np.random.default_rng())
