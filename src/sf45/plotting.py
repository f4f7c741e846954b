"""Plotting helpers for recorded captures."""
from __future__ import annotations

from pathlib import Path
from typing import Any

import numpy as np

from .capture import CaptureData


def generate_plots(data: CaptureData, output_dir: Path) -> Path:
    plt = _require_matplotlib()
    output_dir.mkdir(parents=True, exist_ok=True)
    fig, axes = plt.subplots(1, 3, figsize=(18, 5))

    _plot_point_cloud(data, axes[0])
    _plot_distance_vs_angle(data, axes[1])
    _plot_temperature(data, axes[2])

    fig.tight_layout()
    out_path = output_dir / "plots.png"
    fig.savefig(out_path, dpi=200)
    plt.close(fig)
    return out_path


def _plot_point_cloud(data: CaptureData, ax) -> None:
    mask = data.valid
    points = ax.scatter(
        data.x_m[mask],
        data.y_m[mask],
        c=data.strength[mask],
        s=4,
        cmap="viridis",
    )
    ax.scatter([0.0], [0.0], marker="^", color="red", label="sensor")
    ax.set_title("Top-down point cloud")
    ax.set_xlabel("x (m)")
    ax.set_ylabel("y (m)")
    ax.set_aspect("equal", adjustable="datalim")
    ax.legend(loc="best")
    ax.figure.colorbar(points, ax=ax, label="First return strength")


def _plot_distance_vs_angle(data: CaptureData, ax) -> None:
    mask = data.valid
    ax.scatter(data.angle_deg[mask], data.distance_m[mask], s=4, alpha=0.6, label="first return")
    df = data.dataframe
    if "last_dist_filtered" in df.columns:
        last = df["last_dist_filtered"].to_numpy(dtype=float) / 100.0
        ax.scatter(data.angle_deg[mask], last[mask], s=4, alpha=0.4, label="last return")
    ax.set_title("Distance vs. angle")
    ax.set_xlabel("Angle (°)")
    ax.set_ylabel("Distance (m)")
    ax.legend(loc="best")


def _plot_temperature(data: CaptureData, ax) -> None:
    ts = data.dataframe["ts"].to_numpy(dtype=float)
    elapsed = ts - ts.min()
    if data.temperature is not None:
        ax.plot(elapsed, data.temperature, color="tab:orange")
    else:
        ax.text(0.5, 0.5, "no temperature column", ha="center", va="center", transform=ax.transAxes)
    ax.set_title("Temperature")
    ax.set_xlabel("Time (s)")
    ax.set_ylabel("°C")
    if elapsed.size:
        ax.set_xlim(0.0, max(float(np.max(elapsed)), 1e-3))


def _require_matplotlib() -> Any:
    from pathlib import Path as _Path

    home_cache = _Path.home() / ".cache" / "fontconfig"
    try:
        home_cache.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError("matplotlib cannot write font cache in this environment") from exc

    try:
        import matplotlib
        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("matplotlib is required for plotting; install sf45-host[plot]") from exc
    except Exception as exc:  # pragma: no cover - environment issues
        raise RuntimeError(f"matplotlib initialisation failed: {exc}") from exc
    return plt
