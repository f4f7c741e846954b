"""Demo capture utilities."""
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from .capture import load_capture_csv
from .plotting import generate_plots
from .reporting import export_summary, summarize_capture

logger = logging.getLogger(__name__)


def create_demo_capture(
    sweeps: int = 4,
    points_per_sweep: int = 200,
    fov: float = 100.0,
    rate_hz: float = 500.0,
) -> pd.DataFrame:
    """Synthesise a back-and-forth sweep in front of a wall 3 m away."""

    rng = np.random.default_rng(42)
    half = fov / 2.0
    rows = []
    ts = 0.0
    for sweep in range(sweeps):
        angles = np.linspace(-half, half, points_per_sweep)
        if sweep % 2:
            angles = angles[::-1]
        wall_m = 3.0 / np.cos(np.deg2rad(angles))
        # a post 1.2 m ahead, slightly right of centre
        post = (angles > 8.0) & (angles < 14.0)
        distance_m = np.where(post, 1.2, wall_m)
        distance_m = distance_m + rng.normal(scale=0.01, size=angles.size)
        strength = np.clip(2000.0 / distance_m + rng.normal(scale=20.0, size=angles.size), 0, None)
        temperature = 31.5 + 0.2 * sweep + rng.normal(scale=0.02, size=angles.size)
        for angle, dist, power, temp in zip(angles, distance_m, strength, temperature):
            cm = int(round(dist * 100))
            rows.append(
                {
                    "ts": ts,
                    "angle": round(float(angle), 2),
                    "first_dist_raw": cm,
                    "first_dist_filtered": cm,
                    "first_strength": int(power),
                    "last_dist_raw": cm,
                    "last_dist_filtered": cm,
                    "last_strength": int(power),
                    "noise": int(rng.integers(3, 9)),
                    "temperature": round(float(temp), 2),
                }
            )
            ts += 1.0 / rate_hz
    return pd.DataFrame(rows)


def run_demo(out_dir: Path, bin_deg: float = 5.0) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    csv_path = out_dir / "demo_capture.csv"
    df = create_demo_capture()
    with csv_path.open("w", newline="", encoding="utf-8") as fh:
        fh.write("# model=DEMO serial=0000 fw=0.0.0\n")
        df.to_csv(fh, index=False)

    data = load_capture_csv(csv_path)
    summary = summarize_capture(data, bin_deg)
    figure_path = None
    try:
        figure_path = generate_plots(data, out_dir)
    except RuntimeError as exc:
        logger.warning("plotting skipped: %s", exc)

    export_summary(
        data,
        summary,
        out_dir,
        figure_path=figure_path,
        input_path=csv_path,
        bin_deg=bin_deg,
    )
