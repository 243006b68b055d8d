import json

import pytest

from tuning_bench.benchmarks.config import (
    GridConfigurationError,
    SweepSettings,
    build_grid,
    default_thread_options,
    load_settings,
)


def test_build_grid_example_scenario():
    grid = build_grid(
        row_counts={100, 10_000},
        tune_grid_resolutions={2, 5},
        thread_options={1, 8},
        fixed_parallelism_budget=8,
        cv_folds=8,
        engine="lightgbm",
    )

    assert len(grid) == 2 * 2 * 2 + 2 * 2
    budget_rows = grid.points[:8]
    baseline_rows = grid.points[8:]

    assert all(p.workers == 1 for p in budget_rows if p.threads == 8)
    assert all(p.workers == 8 for p in budget_rows if p.threads == 1)
    assert all(p.threads == 1 and p.workers == 1 for p in baseline_rows)
    assert all(p.cv_folds == 8 and p.engine == "lightgbm" for p in grid)


def test_one_baseline_per_row_count_and_resolution():
    grid = build_grid(
        row_counts=[100, 1_000, 10_000],
        tune_grid_resolutions=[2, 3],
        thread_options=[1, 2, 4],
        fixed_parallelism_budget=4,
        cv_folds=5,
        engine="lightgbm",
    )

    baselines = [(p.row_count, p.tune_grid_resolution) for p in grid.points[18:]]
    assert len(grid) == 3 * 2 * 3 + 3 * 2
    assert sorted(baselines) == sorted(
        (rows, res) for rows in (100, 1_000, 10_000) for res in (2, 3)
    )
    assert len(set(baselines)) == len(baselines)


@pytest.mark.parametrize("budget", [1, 6, 8, 12, 16])
def test_workers_is_budget_floor_divided_by_threads(budget):
    threads = [t for t in (1, 2, 3, 4, 5, 8) if t <= budget]
    grid = build_grid([100], [2], threads, budget, 5, "lightgbm")

    for p in grid.points[: len(threads)]:
        assert p.workers == budget // p.threads
        assert p.workers >= 1
        assert p.threads * p.workers <= budget


def test_duplicate_points_are_kept():
    # With a budget of one the budget row equals the baseline row.
    grid = build_grid([100], [2], [1], 1, 5, "lightgbm")

    assert len(grid) == 2
    assert grid[0] == grid[1]


def test_grid_order_is_deterministic():
    a = build_grid({10_000, 100}, {5, 2}, {8, 1}, 8, 8, "lightgbm")
    b = build_grid([100, 10_000], [2, 5], [1, 8], 8, 8, "lightgbm")

    assert a == b


def test_threads_above_budget_rejected():
    with pytest.raises(GridConfigurationError, match="exceed the parallelism budget"):
        build_grid([100], [2], [1, 16], 8, 5, "lightgbm")


@pytest.mark.parametrize(
    "kwargs",
    [
        {"row_counts": []},
        {"tune_grid_resolutions": []},
        {"thread_options": []},
        {"thread_options": [0, 1]},
        {"row_counts": [0]},
        {"fixed_parallelism_budget": 0},
        {"cv_folds": 1},
        {"engine": "xgboost"},
    ],
)
def test_malformed_configuration_rejected(kwargs):
    options = dict(
        row_counts=[100],
        tune_grid_resolutions=[2],
        thread_options=[1],
        fixed_parallelism_budget=8,
        cv_folds=5,
        engine="lightgbm",
    )
    options.update(kwargs)

    with pytest.raises(GridConfigurationError):
        build_grid(**options)


def test_default_thread_options():
    assert default_thread_options(8) == (1, 2, 4, 8)
    assert default_thread_options(12) == (1, 2, 4)
    assert default_thread_options(1) == (1,)


def test_settings_derive_thread_options_from_budget():
    settings = SweepSettings(parallelism_budget=4)

    assert settings.thread_options == (1, 2, 4)
    assert len(settings.build_grid()) == 3 * 3 * 3 + 3 * 3


def test_settings_validation():
    with pytest.raises(GridConfigurationError):
        SweepSettings(iterations=0)
    with pytest.raises(GridConfigurationError):
        SweepSettings(cooldown_seconds=-1)
    with pytest.raises(GridConfigurationError):
        SweepSettings(timeout_seconds=0)


def test_load_settings_from_plan_with_overrides(tmp_path):
    plan = tmp_path / "plan.json"
    plan.write_text(
        json.dumps(
            {
                "engine": "catboost",
                "row_counts": [100, 1000],
                "parallelism_budget": 8,
                "cv_folds": 8,
            }
        )
    )

    settings = load_settings(plan, cv_folds=4, seed=None)

    assert settings.engine == "catboost"
    assert settings.row_counts == (100, 1000)
    assert settings.thread_options == (1, 2, 4, 8)
    assert settings.cv_folds == 4
    assert settings.seed == 1


def test_load_settings_rejects_unknown_keys(tmp_path):
    plan = tmp_path / "plan.json"
    plan.write_text(json.dumps({"rows": [100]}))

    with pytest.raises(GridConfigurationError, match="unknown benchmark plan keys"):
        load_settings(plan)


def test_settings_reject_unknown_joblib_backend():
    with pytest.raises(GridConfigurationError, match="joblib_backend"):
        SweepSettings(joblib_backend="dask")


def test_point_parallelism_carries_joblib_backend():
    point = build_grid([100], [2], [2], 8, 5, "lightgbm")[0]

    config = point.parallelism("multiprocessing")

    assert (config.threads, config.workers, config.backend) == (2, 4, "multiprocessing")
    assert point.parallelism().backend == "loky"


def test_load_settings_reads_joblib_backend(tmp_path):
    plan = tmp_path / "plan.json"
    plan.write_text(json.dumps({"joblib_backend": "multiprocessing"}))

    assert load_settings(plan).joblib_backend == "multiprocessing"


@pytest.mark.parametrize(
    "plan",
    [
        {"row_counts": 100},
        {"row_counts": "100"},
        {"tune_grid_resolutions": [2, "many"]},
        {"thread_options": [None]},
        {"row_counts": None},
    ],
)
def test_load_settings_rejects_malformed_plan_values(tmp_path, plan):
    path = tmp_path / "plan.json"
    path.write_text(json.dumps(plan))

    with pytest.raises(GridConfigurationError):
        load_settings(path)
