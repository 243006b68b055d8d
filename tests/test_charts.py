from tuning_bench.benchmarks.charts import render_report
from tuning_bench.benchmarks.config import build_grid
from tuning_bench.benchmarks.report import summarize
from tuning_bench.benchmarks.runner import TrialResult


def _results(fail_all: bool = False):
    grid = build_grid([100, 1_000], [2, 3], [1, 2], 2, 3, "lightgbm")
    results = []
    for index, point in enumerate(grid):
        if fail_all or index == 0:
            result = TrialResult(requested_iterations=2, errors=("boom",) * 2)
        else:
            result = TrialResult(requested_iterations=2, durations=(index * 0.1, index * 0.2))
        results.append((point, result))
    return results


def test_render_report_writes_chart(tmp_path):
    path = render_report(summarize(_results()), tmp_path / "charts" / "timings.png")

    assert path.exists()
    assert path.stat().st_size > 0


def test_render_report_skips_empty_report(tmp_path, caplog):
    path = render_report(summarize(_results(fail_all=True)), tmp_path / "timings.png")

    assert not path.exists()
    assert "No completed benchmark points" in caplog.text
