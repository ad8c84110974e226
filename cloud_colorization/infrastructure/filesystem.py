"""Filesystem adapters for cloud colorization."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from cloud_colorization.domain.model import DEFAULT_GROWTH_CHUNK, ColorizedCloud, PointCloud
from cloud_colorization.infrastructure.open3d_adapter import (
    OPEN3D_EXTENSIONS,
    export_colorized_cloud,
    read_open3d_cloud,
)
from cloud_colorization.infrastructure.pts_io import LoadStats, read_pts, write_pts_result

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# CloudSource Adapter
# ---------------------------------------------------------------------------


@dataclass
class FilesystemCloudSource:
    """Filesystem adapter: load clouds from text files, or PLY/PCD via Open3D.

    Colored sources are appended, in the order given, to one cloud.
    ``stats`` collects one LoadStats per source read.
    """

    growth_chunk: int = DEFAULT_GROWTH_CHUNK

    def __post_init__(self) -> None:
        self.stats: List[LoadStats] = []

    def load_target(self, *, path: Path) -> PointCloud:
        logger.info("Loading target cloud %s", path)
        cloud = PointCloud(has_color=False, growth_chunk=self.growth_chunk)
        self._read_into(Path(path), cloud)
        cloud.shrink_to_fit()
        return cloud

    def load_colored(self, *, paths: Sequence[Path]) -> PointCloud:
        cloud = PointCloud(has_color=True, growth_chunk=self.growth_chunk)
        for path in paths:
            logger.info("Loading colored cloud %s", path)
            self._read_into(Path(path), cloud)
        cloud.shrink_to_fit()
        return cloud

    def _read_into(self, path: Path, cloud: PointCloud) -> None:
        if path.suffix.lower() in OPEN3D_EXTENSIONS:
            stats = read_open3d_cloud(path, cloud)
        else:
            stats = read_pts(path, cloud)
        self.stats.append(stats)
        logger.info("%d values read from %s.", stats.loaded, path)


# ---------------------------------------------------------------------------
# ResultSink Adapter
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilesystemResultSink:
    """Filesystem adapter: write ``x y z sqdist flag r g b`` lines.

    When ``export_cloud`` is set the colorized geometry is also written there
    as a PLY/PCD cloud. Either both files are written or neither is.
    """

    float_format: str = "compact"
    export_cloud: Optional[Path] = None

    def write(self, *, result: ColorizedCloud, path: Path) -> None:
        # export before the main output; both land or neither does
        export = Path(self.export_cloud) if self.export_cloud is not None else None
        if export is not None:
            export_colorized_cloud(result, export)
            logger.info("Exported colorized cloud to %s", export)
        try:
            write_pts_result(result, Path(path), float_format=self.float_format)
        except BaseException:
            if export is not None:
                export.unlink(missing_ok=True)
            raise
        logger.info("Wrote %d records to %s", len(result), path)
