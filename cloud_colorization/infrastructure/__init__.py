"""Infrastructure layer: adapters for cloud colorization."""
from __future__ import annotations

from typing import Callable, Dict

from cloud_colorization.domain.model import PointCloud
from cloud_colorization.ports import SpatialIndex

from .filesystem import FilesystemCloudSource, FilesystemResultSink
from .kdtree import BruteForceIndex, KdTreeIndex
from .open3d_adapter import FlannIndex

INDEX_BACKENDS = ("kdtree", "brute", "flann")


def spatial_index_factory(backend: str = "kdtree", *, leaf_size: int = 16) -> Callable[[PointCloud], SpatialIndex]:
    """Return a ``cloud -> SpatialIndex`` builder for the named backend."""
    builders: Dict[str, Callable[[PointCloud], SpatialIndex]] = {
        "kdtree": lambda cloud: KdTreeIndex.build(cloud, leaf_size=leaf_size),
        "brute": BruteForceIndex.build,
        "flann": FlannIndex.build,
    }
    try:
        return builders[backend]
    except KeyError:
        raise ValueError(f"unknown index backend {backend!r}; choose one of {INDEX_BACKENDS}") from None


__all__ = [
    "BruteForceIndex",
    "FilesystemCloudSource",
    "FilesystemResultSink",
    "FlannIndex",
    "INDEX_BACKENDS",
    "KdTreeIndex",
    "spatial_index_factory",
]
