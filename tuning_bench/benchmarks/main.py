from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from ..backends import JOBLIB_BACKENDS, available_engines, get_backend
from ..data import ResamplingDataSource, make_base_dataset
from .charts import render_report
from .config import BenchmarkGrid, GridConfigurationError, SweepSettings, load_settings
from .report import read_report, summarize, write_report
from .runner import run_sweep

LOGGER = logging.getLogger("tuning_bench.benchmark")

RESULTS_FILENAME = "results.parquet"
CHART_FILENAME = "benchmark_timings.png"
MANIFEST_FILENAME = "benchmark_manifest.json"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Parallel tuning benchmark harness")
    parser.add_argument(
        "--engine",
        default=os.environ.get("BENCHMARK_ENGINE"),
        choices=available_engines(),
        help="Boosted-tree engine to tune",
    )
    parser.add_argument(
        "--row-counts",
        type=_int_list,
        default=_env_int_list("BENCHMARK_ROW_COUNTS"),
        help="Comma-separated dataset sizes",
    )
    parser.add_argument(
        "--resolutions",
        type=_int_list,
        default=_env_int_list("BENCHMARK_RESOLUTIONS"),
        help="Comma-separated tuning grid resolutions",
    )
    parser.add_argument(
        "--threads",
        type=_int_list,
        default=_env_int_list("BENCHMARK_THREADS"),
        help="Comma-separated engine thread counts (workers = budget // threads)",
    )
    parser.add_argument(
        "--budget",
        type=int,
        default=_env_int("BENCHMARK_PARALLELISM_BUDGET"),
        help="threads x workers budget; defaults to the CPU count",
    )
    parser.add_argument("--cv-folds", type=int, default=_env_int("BENCHMARK_CV_FOLDS"))
    parser.add_argument("--iterations", type=int, default=_env_int("BENCHMARK_ITERATIONS"))
    parser.add_argument(
        "--cooldown",
        type=float,
        default=_env_float("BENCHMARK_COOLDOWN_SECONDS"),
        help="Seconds to pause before every iteration",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=_env_float("BENCHMARK_TIMEOUT_SECONDS"),
        help="Per-call timeout in seconds; a timeout fails the point and skips the rest of it",
    )
    parser.add_argument(
        "--joblib-backend",
        default=os.environ.get("BENCHMARK_JOBLIB_BACKEND"),
        choices=JOBLIB_BACKENDS,
        help="joblib backend for workers (multiprocessing forks processes)",
    )
    parser.add_argument("--seed", type=int, default=_env_int("BENCHMARK_SEED"))
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("BENCHMARK_OUTPUT_DIR", "benchmark-results"),
        help="Directory to store benchmark artefacts (results table, chart, manifest)",
    )
    parser.add_argument(
        "--plan-path",
        default=os.environ.get("BENCHMARK_PLAN_PATH"),
        help="Optional JSON file describing the sweep",
    )
    parser.add_argument(
        "--report-only",
        action="store_true",
        help="Re-render the chart from an existing results table without running trials",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Only print the planned grid points without executing them",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("BENCHMARK_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def resolve_settings(args: argparse.Namespace) -> SweepSettings:
    return load_settings(
        args.plan_path,
        engine=args.engine,
        row_counts=args.row_counts,
        tune_grid_resolutions=args.resolutions,
        thread_options=args.threads,
        parallelism_budget=args.budget,
        cv_folds=args.cv_folds,
        iterations=args.iterations,
        cooldown_seconds=args.cooldown,
        timeout_seconds=args.timeout,
        seed=args.seed,
        joblib_backend=args.joblib_backend,
    )


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(args.log_level)

    output_dir = Path(args.output_dir)
    results_path = output_dir / RESULTS_FILENAME
    chart_path = output_dir / CHART_FILENAME

    if args.report_only:
        if not results_path.exists():
            LOGGER.error("No results table at %s", results_path)
            return 1
        try:
            report = read_report(results_path)
        except (ValueError, OSError) as exc:
            LOGGER.error("Cannot read results table %s: %s", results_path, exc)
            return 1
        render_report(report, chart_path)
        return 0

    try:
        settings = resolve_settings(args)
        grid = settings.build_grid()
    except (GridConfigurationError, OSError, json.JSONDecodeError) as exc:
        LOGGER.error("Invalid benchmark configuration: %s", exc)
        return 2

    LOGGER.info("Benchmark output directory: %s", output_dir)
    LOGGER.info(
        "Engine: %s, budget: %d, joblib backend: %s, grid points: %d, iterations: %d",
        settings.engine,
        settings.parallelism_budget,
        settings.joblib_backend,
        len(grid),
        settings.iterations,
    )

    if args.dry_run:
        _print_grid(settings, grid)
        return 0

    output_dir.mkdir(parents=True, exist_ok=True)
    backend = get_backend(settings.engine)
    data_source = ResamplingDataSource(make_base_dataset())
    results = run_sweep(
        grid,
        data_source,
        backends={settings.engine: backend},
        iterations=settings.iterations,
        cooldown_seconds=settings.cooldown_seconds,
        seed=settings.seed,
        timeout_seconds=settings.timeout_seconds,
        joblib_backend=settings.joblib_backend,
    )

    report = summarize(results, tuned_parameters=len(backend.tuned_parameters))
    write_report(report, results_path)
    render_report(report, chart_path)

    manifest = {
        "settings": settings.to_dict(),
        "results": str(results_path),
        "chart": str(chart_path),
        "counts": report.counts(),
    }
    manifest_path = output_dir / MANIFEST_FILENAME
    with open(manifest_path, "w", encoding="utf-8") as f:
        json.dump(manifest, f, indent=2)
    LOGGER.info("Benchmark manifest written to %s", manifest_path)
    return 0


def _print_grid(settings: SweepSettings, grid: BenchmarkGrid) -> None:
    print(
        f"Engine: {settings.engine} (budget={settings.parallelism_budget}, "
        f"joblib={settings.joblib_backend}, iterations={settings.iterations}, "
        f"cooldown={settings.cooldown_seconds}s)"
    )
    for point in grid:
        marker = " (baseline)" if point.is_baseline else ""
        print(
            f"  - rows={point.row_count}, resolution={point.tune_grid_resolution}, "
            f"folds={point.cv_folds}, threads={point.threads}, workers={point.workers}{marker}"
        )


def _int_list(value: str) -> tuple[int, ...]:
    try:
        return tuple(int(item) for item in value.split(",") if item.strip())
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected comma-separated integers, got {value!r}") from exc


def _env_int_list(name: str) -> tuple[int, ...] | None:
    value = os.environ.get(name)
    return _int_list(value) if value else None


def _env_int(name: str) -> int | None:
    value = os.environ.get(name)
    return int(value) if value else None


def _env_float(name: str) -> float | None:
    value = os.environ.get(name)
    return float(value) if value else None


if __name__ == "__main__":
    sys.exit(main())
