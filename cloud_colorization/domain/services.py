"""Domain services for cloud colorization."""
from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import List, Tuple

import numpy as np

from exceptions.exceptions import ColorizationError

from .model import ColorizationSettings, ColorizedCloud, NO_NEIGHBOR_SQ_DISTANCE, PointCloud
from cloud_colorization.ports import SpatialIndex

logger = logging.getLogger(__name__)


class Colorizer:
    """Domain service: assign every target point the color of its nearest colored point.

    The pass is a pure map over the target cloud. The target indices are cut
    into contiguous ranges of ``settings.chunk_size`` points and handed to a
    pool of ``settings.workers`` threads; each range writes only its own slots
    of the order-indexed ``ColorizedCloud`` and is answered by one batch
    query (``nearest_many``) against the index. The index and the colored
    cloud are only read.

    A point is matched when a neighbour exists and its squared distance is
    ``<= settings.max_sq_distance``; otherwise it gets the default color.
    """

    def __init__(
        self,
        *,
        index: SpatialIndex,
        colored: PointCloud,
        settings: ColorizationSettings,
    ) -> None:
        if not colored.has_color:
            raise ValueError("Colorizer needs a colored cloud")
        if len(index) != len(colored):
            raise ValueError("index does not cover the colored cloud")
        self._index = index
        self._colors = colored.colors
        self._settings = settings
        self._default = np.asarray(settings.default_color.as_tuple(), dtype=np.uint8)

    def colorize(self, target: PointCloud) -> ColorizedCloud:
        points = target.points
        result = ColorizedCloud(points)
        n = len(result)
        chunk = self._settings.chunk_size
        ranges = [(start, min(start + chunk, n)) for start in range(0, n, chunk)]
        workers = max(1, min(self._settings.workers, len(ranges)))

        logger.info("Colorizing %d points with %d worker(s)", n, workers)
        if workers == 1:
            failures = self._run_sequential(points, result, ranges)
        else:
            failures = self._run_parallel(points, result, ranges, workers)

        if failures:
            failures.sort(key=lambda f: f[0])
            raise ColorizationError(failures, context="Colorizer.colorize") from failures[0][1]

        logger.info("Matched %d / %d points", result.matched_count, n)
        return result

    def _run_sequential(
        self,
        points: np.ndarray,
        result: ColorizedCloud,
        ranges: List[Tuple[int, int]],
    ) -> List[Tuple[int, BaseException]]:
        for start, stop in ranges:
            try:
                self._colorize_range(points, result, start, stop)
            except Exception as exc:
                return [(start, exc)]
        return []

    def _run_parallel(
        self,
        points: np.ndarray,
        result: ColorizedCloud,
        ranges: List[Tuple[int, int]],
        workers: int,
    ) -> List[Tuple[int, BaseException]]:
        failures: List[Tuple[int, BaseException]] = []
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="colorize") as ex:
            futs = {
                ex.submit(self._colorize_range, points, result, start, stop): start
                for start, stop in ranges
            }
            done, pending = wait(futs, return_when=FIRST_EXCEPTION)
            if pending:
                # A task failed: drop what has not started, let the rest finish.
                for fut in pending:
                    fut.cancel()
                done, _ = wait(futs)
            for fut in done:
                if fut.cancelled():
                    continue
                exc = fut.exception()
                if exc is not None:
                    failures.append((futs[fut], exc))
        return failures

    def _colorize_range(self, points: np.ndarray, result: ColorizedCloud, start: int, stop: int) -> None:
        indices, sq = self._index.nearest_many(points[start:stop])
        found = indices >= 0
        matched = found & (sq <= self._settings.max_sq_distance)

        result.sq_distances[start:stop] = np.where(found, sq, NO_NEIGHBOR_SQ_DISTANCE)
        result.matched[start:stop] = matched
        colors = result.colors[start:stop]
        colors[:] = self._default
        colors[matched] = self._colors[indices[matched]]
        logger.debug("Colorized points %d..%d", start, stop - 1)
