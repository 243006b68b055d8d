from __future__ import annotations

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

from .report import Report

LOGGER = logging.getLogger("tuning_bench.benchmark.charts")

sns.set_style("whitegrid")
plt.rcParams["figure.dpi"] = 100
plt.rcParams["savefig.dpi"] = 300
plt.rcParams["font.size"] = 10
plt.rcParams["axes.labelsize"] = 11
plt.rcParams["axes.titlesize"] = 13
plt.rcParams["legend.fontsize"] = 9

DEFAULT_TITLE = "Tuning Time by Parallelism Strategy"


def render_report(
    report: Report,
    output_path: Path,
    title: str = DEFAULT_TITLE,
) -> Path:
    """Plot median tuning time against models trained, one facet per row count.

    Error bars span the min and max iteration times; each (threads, workers)
    combination is its own series.
    """
    df = report.completed()
    if df.empty:
        LOGGER.warning("No completed benchmark points to plot")
        return output_path

    row_counts = sorted(df["row_count"].unique())
    series = (
        df[["threads", "workers", "parallelism"]]
        .drop_duplicates()
        .sort_values(["threads", "workers"])
    )
    palette = dict(
        zip(series["parallelism"], sns.color_palette("viridis", n_colors=len(series)))
    )

    fig, axes = plt.subplots(
        1,
        len(row_counts),
        figsize=(5 * len(row_counts), 5),
        sharey=False,
        squeeze=False,
    )
    for ax, row_count in zip(axes[0], row_counts):
        facet = df[df["row_count"] == row_count]
        for label in series["parallelism"]:
            _plot_series(ax, facet[facet["parallelism"] == label], label, palette[label])

        ax.set_title(f"{row_count:,} rows", fontweight="bold", pad=10)
        ax.set_xlabel("Models trained", fontweight="semibold")
        ax.set_ylabel("Median elapsed time (seconds)", fontweight="semibold")
        ax.set_ylim(bottom=0)
        ax.grid(True, alpha=0.3, linestyle="--")
        ax.spines["top"].set_visible(False)
        ax.spines["right"].set_visible(False)

    handles, labels = axes[0][0].get_legend_handles_labels()
    fig.legend(
        handles,
        labels,
        loc="center left",
        bbox_to_anchor=(1.0, 0.5),
        frameon=True,
        title="Parallelism",
    )
    fig.suptitle(title, fontweight="bold")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    fig.savefig(output_path, bbox_inches="tight", facecolor="white")
    plt.close(fig)
    LOGGER.info("Rendering chart %s", output_path)
    return output_path


def _plot_series(ax: plt.Axes, points: pd.DataFrame, label: str, color) -> None:
    # Duplicate grid points are plotted individually.
    if points.empty:
        ax.plot([], [], marker="o", color=color, label=label)
        return
    points = points.sort_values("models_trained")
    median = points["median_time"].to_numpy()
    yerr = np.vstack(
        [
            median - points["min_time"].to_numpy(),
            points["max_time"].to_numpy() - median,
        ]
    )
    ax.errorbar(
        points["models_trained"],
        median,
        yerr=yerr,
        marker="o",
        linewidth=2,
        markersize=6,
        capsize=3,
        color=color,
        label=label,
    )
