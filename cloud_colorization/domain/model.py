from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Optional, Tuple

import numpy as np


DEFAULT_GROWTH_CHUNK = 100_000

# Reported squared distance for target points when the colored cloud is empty.
NO_NEIGHBOR_SQ_DISTANCE = -1.0


@dataclass(frozen=True)
class Color:
    """RGB color with three 8-bit channels."""

    r: int
    g: int
    b: int

    def __post_init__(self) -> None:
        for channel in (self.r, self.g, self.b):
            if not 0 <= int(channel) <= 255:
                raise ValueError(f"color channel out of range 0..255: {channel}")

    @classmethod
    def from_hex(cls, value: str) -> "Color":
        """Parse a 24 bit ``RRGGBB`` hex string (optional ``#``/``0x`` prefix)."""
        text = value.strip().lower()
        if text.startswith("#"):
            text = text[1:]
        elif text.startswith("0x"):
            text = text[2:]
        if not text or len(text) > 6:
            raise ValueError(f"invalid RRGGBB color: {value!r}")
        rgb = int(text, 16)
        return cls((rgb >> 16) & 0xFF, (rgb >> 8) & 0xFF, rgb & 0xFF)

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.r, self.g, self.b)


BLACK = Color(0, 0, 0)


@dataclass(frozen=True)
class PointRecord:
    x: float
    y: float
    z: float
    color: Optional[Color] = None


@dataclass(frozen=True)
class QueryResult:
    """Nearest indexed point: position in the colored cloud + squared distance."""

    index: int
    sq_distance: float


@dataclass(frozen=True)
class OutputRecord:
    x: float
    y: float
    z: float
    sq_distance: float
    matched: bool
    color: Color


class PointCloud:
    """Ordered, growable point collection backed by numpy buffers.

    Capacity grows in fixed ``growth_chunk`` increments while records are
    appended; ``shrink_to_fit`` truncates the buffers to the exact size.
    Every point of a colored cloud carries a color, an uncolored cloud
    stores none. After ``freeze`` the buffers are read-only.
    """

    def __init__(self, *, has_color: bool, growth_chunk: int = DEFAULT_GROWTH_CHUNK):
        if growth_chunk < 1:
            raise ValueError("growth_chunk must be positive")
        self.has_color = has_color
        self.growth_chunk = int(growth_chunk)
        self._size = 0
        self._xyz = np.empty((0, 3), dtype=np.float64)
        self._rgb: Optional[np.ndarray] = np.empty((0, 3), dtype=np.uint8) if has_color else None
        self._frozen = False

    @classmethod
    def from_arrays(
        cls,
        points: np.ndarray,
        colors: Optional[np.ndarray] = None,
        *,
        growth_chunk: int = DEFAULT_GROWTH_CHUNK,
    ) -> "PointCloud":
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        cloud = cls(has_color=colors is not None, growth_chunk=growth_chunk)
        cloud.extend(points, colors)
        return cloud

    # ------------------------------------------------------------------
    # Growth
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._xyz.shape[0]

    def _ensure_capacity(self, needed: int) -> None:
        if needed <= self.capacity:
            return
        chunks = -(-(needed - self.capacity) // self.growth_chunk)
        new_capacity = self.capacity + chunks * self.growth_chunk
        xyz = np.empty((new_capacity, 3), dtype=np.float64)
        xyz[: self._size] = self._xyz[: self._size]
        self._xyz = xyz
        if self._rgb is not None:
            rgb = np.empty((new_capacity, 3), dtype=np.uint8)
            rgb[: self._size] = self._rgb[: self._size]
            self._rgb = rgb

    def _check_writable(self) -> None:
        if self._frozen:
            raise RuntimeError("point cloud is frozen")

    def append(self, x: float, y: float, z: float, color: Optional[Tuple[int, int, int]] = None) -> None:
        self._check_writable()
        if self.has_color and color is None:
            raise ValueError("colored cloud requires a color for every point")
        self._ensure_capacity(self._size + 1)
        self._xyz[self._size] = (x, y, z)
        if self._rgb is not None:
            self._rgb[self._size] = color
        self._size += 1

    def extend(self, points: np.ndarray, colors: Optional[np.ndarray] = None) -> None:
        """Append a block of points (and colors for colored clouds)."""
        self._check_writable()
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if self.has_color:
            if colors is None:
                raise ValueError("colored cloud requires colors")
            colors = np.asarray(colors).reshape(-1, 3)
            if colors.shape[0] != points.shape[0]:
                raise ValueError("colors and points must have the same number of rows (N)")
        n = points.shape[0]
        self._ensure_capacity(self._size + n)
        self._xyz[self._size : self._size + n] = points
        if self._rgb is not None:
            self._rgb[self._size : self._size + n] = colors
        self._size += n

    def shrink_to_fit(self) -> None:
        self._check_writable()
        self._xyz = self._xyz[: self._size].copy()
        if self._rgb is not None:
            self._rgb = self._rgb[: self._size].copy()

    def freeze(self) -> "PointCloud":
        if not self._frozen:
            self.shrink_to_fit()
            self._xyz.setflags(write=False)
            if self._rgb is not None:
                self._rgb.setflags(write=False)
            self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    @property
    def points(self) -> np.ndarray:
        """(N, 3) float64 view of the coordinates."""
        return self._xyz[: self._size]

    @property
    def colors(self) -> Optional[np.ndarray]:
        """(N, 3) uint8 view of the colors, ``None`` for an uncolored cloud."""
        if self._rgb is None:
            return None
        return self._rgb[: self._size]

    def __len__(self) -> int:
        return self._size

    def __getitem__(self, i: int) -> PointRecord:
        if i < 0:
            i += self._size
        if not 0 <= i < self._size:
            raise IndexError("point index out of range")
        x, y, z = (float(v) for v in self._xyz[i])
        color = None
        if self._rgb is not None:
            color = Color(*(int(c) for c in self._rgb[i]))
        return PointRecord(x, y, z, color)

    def __iter__(self) -> Iterator[PointRecord]:
        for i in range(self._size):
            yield self[i]


class ColorizedCloud:
    """Colorization result stored in order-indexed buffers.

    Slot ``i`` always belongs to point ``i`` of the target cloud, so the
    records come out in target order whatever order they were computed in.
    """

    def __init__(self, points: np.ndarray):
        n = points.shape[0]
        self.points = points
        self.sq_distances = np.full(n, NO_NEIGHBOR_SQ_DISTANCE, dtype=np.float64)
        self.matched = np.zeros(n, dtype=bool)
        self.colors = np.zeros((n, 3), dtype=np.uint8)

    def __len__(self) -> int:
        return self.points.shape[0]

    def __getitem__(self, i: int) -> OutputRecord:
        x, y, z = (float(v) for v in self.points[i])
        return OutputRecord(
            x=x,
            y=y,
            z=z,
            sq_distance=float(self.sq_distances[i]),
            matched=bool(self.matched[i]),
            color=Color(*(int(c) for c in self.colors[i])),
        )

    def __iter__(self) -> Iterator[OutputRecord]:
        for i in range(len(self)):
            yield self[i]

    @property
    def matched_count(self) -> int:
        return int(self.matched.sum())


@dataclass(frozen=True)
class ColorizationSettings:
    """Explicit run configuration handed to the colorization stage.

    ``max_sq_distance`` is already squared; ``workers`` is already resolved
    to a concrete thread count.
    """

    max_sq_distance: float = float("inf")
    default_color: Color = BLACK
    workers: int = 1
    chunk_size: int = 65_536

    def __post_init__(self) -> None:
        if not self.max_sq_distance >= 0:
            raise ValueError(f"max_sq_distance must be a non-negative number, got {self.max_sq_distance}")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        if self.chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")

    @classmethod
    def from_max_distance(
        cls,
        max_distance: Optional[float],
        *,
        default_color: Color = BLACK,
        workers: int = 1,
        chunk_size: int = 65_536,
    ) -> "ColorizationSettings":
        max_sq = float("inf") if max_distance is None else float(max_distance) ** 2
        return cls(
            max_sq_distance=max_sq,
            default_color=default_color,
            workers=workers,
            chunk_size=chunk_size,
        )


@dataclass(frozen=True)
class RunReport:
    target_points: int
    colored_points: int
    matched: int
    unmatched: int
    mean_matched_sq_distance: Optional[float]
    output_path: Path
    timings: dict = field(default_factory=dict)
    sources: tuple = ()
