"""Loading utilities for recorded SF45 captures."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

import numpy as np
import pandas as pd

REQUIRED_COLUMNS = {"ts", "angle", "first_dist_filtered", "first_strength"}
OPTIONAL_COLUMNS = {"noise", "temperature", "last_dist_filtered"}


@dataclass(frozen=True)
class CaptureData:
    """Container for a loaded capture with derived geometry."""

    dataframe: pd.DataFrame
    angle_deg: np.ndarray
    distance_m: np.ndarray
    strength: np.ndarray
    x_m: np.ndarray
    y_m: np.ndarray
    valid: np.ndarray
    temperature: Optional[np.ndarray]
    duration_s: float
    metadata: Dict[str, str] = field(default_factory=dict)


def load_capture_csv(path: str | Path) -> CaptureData:
    """Load a capture written by the stream recorder.

    Parameters
    ----------
    path:
        CSV with at least `ts`, `angle`, `first_dist_filtered` (cm) and
        `first_strength` columns. Leading `# key=value` lines are read as
        metadata.

    Returns
    -------
    CaptureData
        Samples sorted by timestamp, distances in metres, cartesian
        coordinates with +x along the 0° heading.
    """

    path = Path(path)
    if not path.exists():  # pragma: no cover - defensive
        raise FileNotFoundError(path)

    metadata = _read_metadata(path)
    df = pd.read_csv(path, comment="#")
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")
    if df.empty:
        raise ValueError(f"Capture {path} contains no samples")

    df = df.sort_values("ts", kind="mergesort").reset_index(drop=True)
    df["distance_m"] = df["first_dist_filtered"].astype(float) / 100.0
    df["valid"] = df["distance_m"] > 0.0
    radians = np.deg2rad(df["angle"].to_numpy(dtype=float))
    distance = df["distance_m"].to_numpy(dtype=float)
    df["x_m"] = distance * np.cos(radians)
    df["y_m"] = distance * np.sin(radians)

    ts = df["ts"].to_numpy(dtype=float)
    temperature = df["temperature"].to_numpy(dtype=float) if "temperature" in df.columns else None

    return CaptureData(
        dataframe=df,
        angle_deg=df["angle"].to_numpy(dtype=float),
        distance_m=distance,
        strength=df["first_strength"].to_numpy(dtype=float),
        x_m=df["x_m"].to_numpy(dtype=float),
        y_m=df["y_m"].to_numpy(dtype=float),
        valid=df["valid"].to_numpy(dtype=bool),
        temperature=temperature,
        duration_s=float(ts.max() - ts.min()),
        metadata=metadata,
    )


def _read_metadata(path: Path) -> Dict[str, str]:
    metadata: Dict[str, str] = {}
    with path.open("r", encoding="utf-8") as fh:
        for line in fh:
            if not line.startswith("#"):
                break
            for token in line.lstrip("#").split():
                if "=" in token:
                    key, value = token.split("=", 1)
                    metadata[key] = value
    return metadata
