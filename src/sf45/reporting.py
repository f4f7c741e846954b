"""Summaries and report writers for recorded captures."""
from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from .capture import CaptureData


def summarize_capture(data: CaptureData, bin_deg: float = 5.0) -> pd.DataFrame:
    """Aggregate valid samples into angular bins of `bin_deg` degrees."""

    if bin_deg <= 0:
        raise ValueError("bin_deg must be positive")
    df = data.dataframe[data.dataframe["valid"]].copy()
    columns = [
        "angle_bin",
        "samples",
        "mean_m",
        "std_m",
        "min_m",
        "max_m",
        "mean_strength",
        "mean_noise",
    ]
    if df.empty:
        return pd.DataFrame(columns=columns)
    df["angle_bin"] = np.floor(df["angle"].to_numpy(dtype=float) / bin_deg) * bin_deg
    if "noise" not in df.columns:
        df["noise"] = np.nan
    summary = (
        df.groupby("angle_bin", sort=True)
        .agg(
            samples=("distance_m", "size"),
            mean_m=("distance_m", "mean"),
            std_m=("distance_m", "std"),
            min_m=("distance_m", "min"),
            max_m=("distance_m", "max"),
            mean_strength=("first_strength", "mean"),
            mean_noise=("noise", "mean"),
        )
        .reset_index()
    )
    summary["std_m"] = summary["std_m"].fillna(0.0)
    return summary[columns]


def export_summary(
    data: CaptureData,
    summary: pd.DataFrame,
    output_dir: Path,
    *,
    figure_path: Path | None = None,
    input_path: Path | None = None,
    bin_deg: float | None = None,
) -> None:
    """Persist the binned summary and a markdown report to *output_dir*."""

    output_dir.mkdir(parents=True, exist_ok=True)
    summary.to_csv(output_dir / "summary.csv", index=False)
    _write_report_md(
        data,
        summary,
        output_dir,
        figure_path=figure_path,
        input_path=input_path,
        bin_deg=bin_deg,
    )


def _write_report_md(
    data: CaptureData,
    summary: pd.DataFrame,
    output_dir: Path,
    *,
    figure_path: Path | None,
    input_path: Path | None,
    bin_deg: float | None,
) -> None:
    total = len(data.distance_m)
    valid = int(data.valid.sum())
    rate = total / data.duration_s if data.duration_s > 0 else float("nan")
    lines: list[str] = []
    lines.append("# SF45 Capture Report")
    if input_path is not None:
        lines.append(f"*Input file:* `{input_path}`  ")
    for key in ("model", "serial", "fw"):
        if key in data.metadata:
            lines.append(f"*{key}:* {data.metadata[key]}  ")
    lines.append(f"*Samples:* {total} ({valid} valid)  ")
    lines.append(f"*Duration:* {data.duration_s:.3f} s ({rate:.1f} samples/s)  ")
    lines.append(f"*Angle span:* {data.angle_deg.min():.2f}° to {data.angle_deg.max():.2f}°  ")
    if data.temperature is not None:
        lines.append(
            f"*Temperature:* {data.temperature.min():.2f} to {data.temperature.max():.2f} °C  "
        )
    lines.append("")

    heading = "## Distance by angle"
    if bin_deg is not None:
        heading += f" ({bin_deg:g}° bins)"
    lines.append(heading)
    lines.append("| Angle | Samples | Mean (m) | Std (m) | Min (m) | Max (m) | Strength |")
    lines.append("| ---: | ---: | ---: | ---: | ---: | ---: | ---: |")
    for row in summary.itertuples(index=False):
        lines.append(
            f"| {row.angle_bin:.1f} | {row.samples} | {row.mean_m:.3f} | {row.std_m:.3f} "
            f"| {row.min_m:.3f} | {row.max_m:.3f} | {row.mean_strength:.1f} |"
        )
    lines.append("")

    if figure_path is not None:
        lines.append(f"![Capture plots]({figure_path.name})")
        lines.append("")

    lines.append("### Notes")
    lines.append("- Distances use the filtered first return; zero readings are excluded.")
    lines.append("- Angles are yaw positions reported by the device, in degrees.")

    (output_dir / "report.md").write_text("\n".join(lines), encoding="utf-8")
