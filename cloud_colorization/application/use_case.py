"""Application layer: use cases for cloud colorization."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from cloud_colorization.domain.model import ColorizationSettings, PointCloud, RunReport
from cloud_colorization.domain.services import Colorizer
from cloud_colorization.ports import CloudSource, ResultSink, SpatialIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColorizeCloudsUseCase:
    """Use case: colorize one target cloud from one or more colored clouds.

    This is an application service that orchestrates:
    - Loading (via CloudSource port)
    - Indexing the concatenated colored cloud (via the index factory)
    - Colorization (via the Colorizer domain service)
    - Writing, only after the full pass succeeded (via ResultSink port)
    """

    cloud_source: CloudSource
    result_sink: ResultSink
    index_factory: Callable[[PointCloud], SpatialIndex]
    settings: ColorizationSettings

    def run(
        self,
        *,
        target_path: Path,
        colored_paths: Sequence[Path],
        output_path: Path,
    ) -> RunReport:
        timings = {}

        t0 = time.perf_counter()
        target = self.cloud_source.load_target(path=target_path).freeze()
        colored = self.cloud_source.load_colored(paths=colored_paths).freeze()
        timings["load"] = time.perf_counter() - t0
        logger.info("Loaded %d target and %d colored points", len(target), len(colored))

        t0 = time.perf_counter()
        index = self.index_factory(colored)
        timings["index"] = time.perf_counter() - t0
        logger.info("Spatial index built over %d points", len(index))

        t0 = time.perf_counter()
        colorizer = Colorizer(index=index, colored=colored, settings=self.settings)
        result = colorizer.colorize(target)
        timings["colorize"] = time.perf_counter() - t0

        t0 = time.perf_counter()
        self.result_sink.write(result=result, path=output_path)
        timings["write"] = time.perf_counter() - t0

        matched = result.matched_count
        mean_sq = float(result.sq_distances[result.matched].mean()) if matched else None
        return RunReport(
            target_points=len(target),
            colored_points=len(colored),
            matched=matched,
            unmatched=len(result) - matched,
            mean_matched_sq_distance=mean_sq,
            output_path=Path(output_path),
            timings=timings,
        )
