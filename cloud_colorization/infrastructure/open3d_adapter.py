"""Open3D-backed adapters: binary cloud import/export and a FLANN index.

Open3D is imported lazily so the text pipeline and the built-in k-d tree
work without it.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple

import numpy as np

from exceptions.exceptions import StepPreconditionError

from cloud_colorization.domain.model import ColorizedCloud, PointCloud, QueryResult
from cloud_colorization.infrastructure.pts_io import LoadStats

logger = logging.getLogger(__name__)

OPEN3D_EXTENSIONS = frozenset({".ply", ".pcd"})


def read_open3d_cloud(path: Path, cloud: PointCloud) -> LoadStats:
    """Append a PLY/PCD cloud to ``cloud``; non-finite points are skipped."""
    from pcdtools.io import read_point_cloud_arrays

    path = Path(path)
    try:
        points, colors = read_point_cloud_arrays(str(path))
    except OSError as e:
        raise StepPreconditionError(
            "SOURCE_NOT_READABLE", f"Could not open »{path}«: {e}", context="read_open3d_cloud"
        ) from e

    if cloud.has_color and colors is None:
        raise StepPreconditionError(
            "SOURCE_WITHOUT_COLOR", f"»{path}« carries no color", context="read_open3d_cloud"
        )

    finite = np.all(np.isfinite(points), axis=1)
    skipped = int((~finite).sum())
    if skipped:
        logger.warning("%s: skipped %d non-finite point(s)", path, skipped)
    cloud.extend(points[finite], colors[finite] if cloud.has_color else None)
    return LoadStats(path=path, layout=None, loaded=int(finite.sum()), skipped=skipped)


def export_colorized_cloud(result: ColorizedCloud, path: Path) -> None:
    """Write the colorized geometry as a binary PLY/PCD cloud."""
    path = Path(path)
    if path.suffix.lower() not in OPEN3D_EXTENSIONS:
        raise StepPreconditionError(
            "UNSUPPORTED_FORMAT",
            f"cannot export to »{path}«; use one of {sorted(OPEN3D_EXTENSIONS)}",
            context="export_colorized_cloud",
        )
    from pcdtools.io import write_point_cloud_from_arrays

    try:
        write_point_cloud_from_arrays(str(path), np.asarray(result.points), result.colors)
    except RuntimeError as e:
        raise StepPreconditionError("OUTPUT_NOT_WRITABLE", str(e), context="export_colorized_cloud") from e


class FlannIndex:
    """SpatialIndex backed by Open3D's ``KDTreeFlann``."""

    def __init__(self, points):
        points = np.ascontiguousarray(np.asarray(points, dtype=np.float64).reshape(-1, 3))
        self._n = points.shape[0]
        self._tree = None
        if self._n:
            from pcdtools.io import build_flann_tree

            self._tree = build_flann_tree(points)

    @classmethod
    def build(cls, cloud: PointCloud) -> "FlannIndex":
        return cls(cloud.points)

    def __len__(self) -> int:
        return self._n

    def nearest(self, point: Sequence[float]) -> Optional[QueryResult]:
        if self._tree is None:
            return None
        query = np.asarray(point, dtype=np.float64).reshape(3)
        k, idx, sq = self._tree.search_knn_vector_3d(query, 1)
        if k < 1:
            return None
        return QueryResult(index=int(idx[0]), sq_distance=float(sq[0]))

    def nearest_many(self, points) -> Tuple[np.ndarray, np.ndarray]:
        queries = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        indices = np.full(queries.shape[0], -1, dtype=np.int64)
        sq_distances = np.full(queries.shape[0], np.inf)
        if self._tree is None:
            return indices, sq_distances
        for i, query in enumerate(queries):
            k, idx, sq = self._tree.search_knn_vector_3d(query, 1)
            if k:
                indices[i] = idx[0]
                sq_distances[i] = sq[0]
        return indices, sq_distances
