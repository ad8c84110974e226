"""Ports (Protocol interfaces) for cloud colorization.

These define the contracts that infrastructure adapters must implement.
The domain layer depends on these abstractions, not concrete implementations.
"""
from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol, Sequence, Tuple

import numpy as np

from cloud_colorization.domain.model import ColorizedCloud, PointCloud, QueryResult


# ---------------------------------------------------------------------------
# Cloud Source Port
# ---------------------------------------------------------------------------


class CloudSource(Protocol):
    """Port: load point clouds from their sources."""

    def load_target(self, *, path: Path) -> PointCloud:
        """Load the uncolored cloud to be colorized."""
        ...

    def load_colored(self, *, paths: Sequence[Path]) -> PointCloud:
        """Load every colored source into one concatenated colored cloud."""
        ...


# ---------------------------------------------------------------------------
# Spatial Index Port
# ---------------------------------------------------------------------------


class SpatialIndex(Protocol):
    """Port: static 1-nearest-neighbour index over a colored cloud.

    Implementations are immutable once built and must tolerate unlimited
    concurrent queries. Among equidistant neighbours any one may
    be returned.
    """

    def __len__(self) -> int:
        ...

    def nearest(self, point: Sequence[float]) -> Optional[QueryResult]:
        """Return the closest indexed point, or None when the index is empty."""
        ...

    def nearest_many(self, points: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Batch query: ``(indices, sq_distances)``, index -1 where no neighbour exists."""
        ...


# ---------------------------------------------------------------------------
# Result Sink Port
# ---------------------------------------------------------------------------


class ResultSink(Protocol):
    """Port: persist colorization results in target order."""

    def write(self, *, result: ColorizedCloud, path: Path) -> None:
        ...
