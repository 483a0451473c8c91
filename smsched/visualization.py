import logging
import os
from pathlib import Path
from typing import Optional

import matplotlib

matplotlib.use("Agg")  # Must be set before importing pyplot
import matplotlib.pyplot as plt  # noqa: E402
from matplotlib.patches import Patch  # noqa: E402

from .models import Schedule  # noqa: E402
from .search import SearchResult  # noqa: E402

logger = logging.getLogger("smsched.visualization")


def _ensure_dir(path: str):
    if path:
        os.makedirs(path, exist_ok=True)


def plot_gantt(
    schedule: Schedule,
    save_path: str,
    title: Optional[str] = None,
    show_legend: Optional[bool] = None,
) -> str:
    """Draw the single-machine schedule as a Gantt chart and save it.

    Each job is a bar on the machine lane; a second lane shows the
    release-to-due window of every job with a marker at its due time, and
    tardy portions are hatched in red.
    """
    n = len(schedule.rows)
    fig, ax = plt.subplots(
        figsize=(min(10 + n * 0.1, 18), 2.5 + 0.35 * n),
        constrained_layout=True,
    )
    cmap = matplotlib.colormaps["tab20"]
    colors = {row.job: cmap(i % 20) for i, row in enumerate(schedule.rows)}
    for row in schedule.rows:
        ax.barh(
            0,
            row.duration,
            left=row.start,
            height=0.6,
            color=colors[row.job],
            alpha=0.85,
            edgecolor="black",
            linewidth=0.6,
        )
        ax.text(
            row.start + row.duration / 2, 0, str(row.job), ha="center", va="center", fontsize=8
        )
        if row.pastdue > 0:
            ax.barh(
                0,
                row.pastdue,
                left=row.due,
                height=0.6,
                fill=False,
                hatch="///",
                edgecolor="red",
                linewidth=0.0,
            )
    for i, row in enumerate(schedule.rows, start=1):
        ax.plot([row.release, row.due], [i, i], color=colors[row.job], linewidth=2)
        ax.plot([row.start, row.finish], [i, i], color="black", linewidth=5, alpha=0.35)
        ax.plot(row.due, i, marker="|", color="red", markersize=12)
    ax.set_yticks(range(n + 1))
    ax.set_yticklabels(["machine"] + [f"{row.job}" for row in schedule.rows])
    ax.invert_yaxis()
    ax.set_xlabel("Time", fontsize=12)
    if title is None:
        title = f"Schedule - objective = {schedule.objective:g}"
    ax.set_title(title, fontsize=14, fontweight="bold")
    ax.grid(True, alpha=0.25, axis="x", linestyle="--", linewidth=0.7)

    if show_legend is None:
        show_legend = n <= 40
    if show_legend:
        handles = [
            Patch(facecolor=colors[row.job], alpha=0.85, edgecolor="black", label=f"Job {row.job}")
            for row in schedule.rows
        ]
        handles.append(Patch(fill=False, hatch="///", edgecolor="red", label="pastdue"))
        ax.legend(
            handles=handles,
            bbox_to_anchor=(1.02, 1),
            loc="upper left",
            borderaxespad=0.0,
            fontsize=8,
            frameon=False,
            ncol=1 if n <= 25 else 2,
        )

    _ensure_dir(os.path.dirname(save_path))
    fig.savefig(save_path, dpi=180)
    plt.close(fig)
    logger.info("Gantt chart saved as: %s", save_path)
    return save_path


def plot_search_progress(result: SearchResult, save_path: str) -> str:
    """Plot the incumbent objective over time with the final lower bound."""
    fig, ax = plt.subplots(figsize=(10, 6), constrained_layout=True)
    times = [h[0] for h in result.history]
    values = [h[2] for h in result.history]
    if times and times[-1] < result.elapsed_ms:
        times.append(result.elapsed_ms)
        values.append(values[-1])
    if times:
        ax.step(times, values, where="post", linewidth=2, color="#1f77b4", label="incumbent")
        ax.plot(times, values, "o", markersize=4, markerfacecolor="white", color="#1f77b4")
        ax.annotate(
            f"{values[-1]:g}",
            xy=(times[-1], values[-1]),
            xytext=(6, -10),
            textcoords="offset points",
            fontsize=9,
            bbox=dict(boxstyle="round,pad=0.2", facecolor="white", alpha=0.55),
        )
    if result.lower_bound is not None and result.lower_bound > float("-inf"):
        ax.axhline(
            y=result.lower_bound, color="red", linestyle="--", linewidth=1.2, label="lower bound"
        )
    ax.set_xlabel("Time [ms]", fontsize=12)
    ax.set_ylabel("Objective", fontsize=12)
    ax.set_title(
        f"Branch-and-bound progress ({result.status}, {result.nodes} nodes)",
        fontsize=14,
        fontweight="bold",
    )
    ax.grid(True, alpha=0.25, linestyle="--", linewidth=0.7)
    ax.legend(loc="upper right", frameon=False, fontsize=9)
    _ensure_dir(os.path.dirname(save_path))
    fig.savefig(save_path, dpi=180)
    plt.close(fig)
    logger.info("Progress plot saved as: %s", save_path)
    return save_path


def next_unique_path(path: str | Path) -> str:
    """Append ``_1``, ``_2`` ... to the file name until it does not exist."""
    p = Path(path)
    if not p.exists():
        return str(p)
    counter = 1
    while True:
        candidate = p.parent / f"{p.stem}_{counter}{p.suffix}"
        if not candidate.exists():
            return str(candidate)
        counter += 1
