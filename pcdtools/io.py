from __future__ import annotations

import os
from typing import Optional, Tuple

import open3d as o3d
import numpy as np


def read_point_cloud_arrays(path: str) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """Read a point cloud from disk using Open3D.

    Supported formats include PCD/PLY/XYZ depending on Open3D compilation.
    Returns (points, colors): points as (N, 3) float64, colors as (N, 3)
    uint8 or None when the file carries no color.

    Raises:
        OSError: If the file cannot be read.
    """
    if not os.path.isfile(path):
        raise FileNotFoundError(f"No such point cloud file: {path}")
    pcd = o3d.io.read_point_cloud(path)
    points = np.asarray(pcd.points, dtype=np.float64)
    if not pcd.has_colors():
        return points, None
    colors = np.asarray(pcd.colors, dtype=np.float64)
    return points, np.clip(np.rint(colors * 255.0), 0, 255).astype(np.uint8)


def write_point_cloud_from_arrays(
    path: str,
    points: np.ndarray,
    colors: np.ndarray | None = None,
) -> None:
    """Write a point cloud to disk from numpy arrays using Open3D.

    Args:
        path: Output file path (e.g., .pcd, .ply). Extension determines format.
        points: Array of shape (N, 3) with XYZ coordinates.
        colors: Optional array of shape (N, 3) with 8-bit RGB.

    Raises:
        ValueError: If input shapes are invalid or sizes mismatch.
        RuntimeError: If the point cloud cannot be written.
    """
    if points.ndim != 2 or points.shape[1] != 3:
        raise ValueError("points must have shape (N, 3)")
    if colors is not None:
        if colors.ndim != 2 or colors.shape[1] != 3:
            raise ValueError("colors must have shape (N, 3) when provided")
        if colors.shape[0] != points.shape[0]:
            raise ValueError("colors and points must have the same number of rows (N)")

    pc = o3d.geometry.PointCloud()
    pc.points = o3d.utility.Vector3dVector(np.asarray(points, dtype=np.float64))
    if colors is not None and colors.size > 0:
        pc.colors = o3d.utility.Vector3dVector(np.asarray(colors, dtype=np.float64) / 255.0)

    ok = o3d.io.write_point_cloud(
        path,
        pc,
        print_progress=False,
    )
    if not ok:
        raise RuntimeError(f"Failed to write point cloud to {path}")


def build_flann_tree(points: np.ndarray) -> o3d.geometry.KDTreeFlann:
    """Build Open3D's FLANN k-d tree over (N, 3) points."""
    pc = o3d.geometry.PointCloud()
    pc.points = o3d.utility.Vector3dVector(np.asarray(points, dtype=np.float64))
    return o3d.geometry.KDTreeFlann(pc)
