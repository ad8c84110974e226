"""Synthetic scan helpers for tests.

Utilities to create a precise uncolored "laser" scan and noisier colored
"depth camera" scans of the same surface, and to write them as text clouds.
Deterministic for a given seed.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Tuple

import numpy as np


def _rng(seed: Optional[int] = None) -> np.random.Generator:
    return np.random.default_rng(None if seed is None else int(seed))


def generate_wall_scan(
    nx: int = 40,
    ny: int = 30,
    spacing: float = 0.05,
    *,
    origin: Tuple[float, float, float] = (0.0, 0.0, 0.0),
    jitter: float = 0.0,
    seed: Optional[int] = None,
) -> np.ndarray:
    """Regular XZ grid of points on a vertical wall at y = origin[1].

    Returns an (nx * ny, 3) float64 array, optionally jittered in all axes.
    """
    x0, y0, z0 = origin
    xs = x0 + np.arange(nx) * spacing
    zs = z0 + np.arange(ny) * spacing
    xx, zz = np.meshgrid(xs, zs)
    points = np.column_stack([xx.ravel(), np.full(xx.size, y0), zz.ravel()])
    if jitter > 0:
        points = points + _rng(seed).normal(0.0, jitter, size=points.shape)
    return points


def color_by_height(points: np.ndarray) -> np.ndarray:
    """Map z to a blue -> red ramp; returns (N, 3) uint8."""
    if points.shape[0] == 0:
        return np.zeros((0, 3), dtype=np.uint8)
    z = points[:, 2]
    span = float(z.max() - z.min()) or 1.0
    t = (z - z.min()) / span
    rgb = np.column_stack([t * 255.0, np.full_like(t, 64.0), (1.0 - t) * 255.0])
    return np.clip(np.rint(rgb), 0, 255).astype(np.uint8)


def simulate_depth_scan(
    points: np.ndarray,
    *,
    noise: float = 0.01,
    keep_ratio: float = 0.5,
    seed: Optional[int] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Subsample and perturb a surface the way a low-precision colored scan would.

    Returns (points, colors) where colors follow ``color_by_height`` of the
    perturbed points.
    """
    rng = _rng(seed)
    n = points.shape[0]
    keep = rng.random(n) < keep_ratio
    out = points[keep] + rng.normal(0.0, noise, size=(int(keep.sum()), 3))
    return out, color_by_height(out)


def write_pts(
    path: Path,
    points: np.ndarray,
    colors: Optional[np.ndarray] = None,
    *,
    dummy_columns: int = 0,
    header: bool = False,
) -> Path:
    """Write ``x y z [dummy...] [r g b]`` lines; dummy columns hold 0.5."""
    path = Path(path)
    with open(path, "w") as f:
        if header:
            f.write(f"{points.shape[0]}\n")
        dummies = " 0.5" * dummy_columns
        for i, (x, y, z) in enumerate(points.tolist()):
            line = f"{x!r} {y!r} {z!r}{dummies}"
            if colors is not None:
                r, g, b = (int(c) for c in colors[i])
                line += f" {r} {g} {b}"
            f.write(line + "\n")
    return path
