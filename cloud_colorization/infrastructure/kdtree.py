"""Static nearest-neighbour indexes over 3D points.

``KdTreeIndex`` is the production index: a balanced k-d tree with point
buckets at the leaves, built once by median splits along the axis of
widest spread. ``BruteForceIndex`` scans every point and serves as the
reference implementation in tests.

Both answer single queries (``nearest``) and batches (``nearest_many``).
A batch is searched with array operations over all of its queries at once,
so the numpy work dominates and runs without holding the GIL.
"""
from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from cloud_colorization.domain.model import PointCloud, QueryResult

logger = logging.getLogger(__name__)

_LEAF = -1

# Queries searched together by nearest_many; bounds the (pairs, leaf, 3) temporaries.
_QUERY_BLOCK = 4096


def _as_points(points) -> np.ndarray:
    arr = np.array(points, dtype=np.float64).reshape(-1, 3)
    if not np.all(np.isfinite(arr)):
        raise ValueError("indexed points must be finite")
    return arr


def _sq_norm(diff: np.ndarray) -> np.ndarray:
    """Squared length over the last axis, summed x + y + z in that order."""
    return diff[..., 0] ** 2 + diff[..., 1] ** 2 + diff[..., 2] ** 2


def _no_neighbours(count: int) -> Tuple[np.ndarray, np.ndarray]:
    return np.full(count, -1, dtype=np.int64), np.full(count, np.inf)


class KdTreeIndex:
    """Balanced k-d tree answering 1-nearest-neighbour queries.

    Nodes are kept in flat parallel lists. An inner node stores its split
    axis and value; its left subtree holds points with coordinate ``<=``
    the split value and its right subtree points ``>=`` it. A leaf stores
    the range ``[start, stop)`` of its bucket in the reordered point array.
    The structure is never modified after ``__init__``, so any number of
    threads may query it at once.
    """

    def __init__(self, points, *, leaf_size: int = 16):
        if leaf_size < 1:
            raise ValueError("leaf_size must be >= 1")
        source = _as_points(points)
        self.leaf_size = int(leaf_size)
        self._order = np.arange(source.shape[0], dtype=np.int64)

        self._axis: List[int] = []
        self._split: List[float] = []
        self._left: List[int] = []
        self._right: List[int] = []
        self._start: List[int] = []
        self._stop: List[int] = []

        if source.shape[0]:
            self._build(source, 0, source.shape[0])

        self._points = source[self._order]
        self._points.setflags(write=False)
        self._order.setflags(write=False)
        self._pack()
        logger.debug(
            "k-d tree built over %d points (%d nodes, leaf size %d)",
            len(self), len(self._axis), self.leaf_size,
        )

    @classmethod
    def build(cls, cloud: PointCloud, *, leaf_size: int = 16) -> "KdTreeIndex":
        return cls(cloud.points, leaf_size=leaf_size)

    def __len__(self) -> int:
        return self._points.shape[0]

    @property
    def depth(self) -> int:
        """Number of levels from the root to the deepest leaf."""
        if not self._axis:
            return 0
        best = 0
        stack = [(0, 1)]
        while stack:
            node, level = stack.pop()
            best = max(best, level)
            if self._axis[node] != _LEAF:
                stack.append((self._left[node], level + 1))
                stack.append((self._right[node], level + 1))
        return best

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _new_node(self) -> int:
        self._axis.append(_LEAF)
        self._split.append(0.0)
        self._left.append(-1)
        self._right.append(-1)
        self._start.append(0)
        self._stop.append(0)
        return len(self._axis) - 1

    def _build(self, source: np.ndarray, start: int, stop: int) -> int:
        node = self._new_node()
        count = stop - start
        if count <= self.leaf_size:
            self._start[node] = start
            self._stop[node] = stop
            return node

        idx = self._order[start:stop]
        block = source[idx]
        axis = int(np.argmax(block.max(axis=0) - block.min(axis=0)))
        mid = count // 2
        part = np.argpartition(block[:, axis], mid)
        self._order[start:stop] = idx[part]
        split = float(source[self._order[start + mid], axis])

        self._axis[node] = axis
        self._split[node] = split
        left = self._build(source, start, start + mid)
        right = self._build(source, start + mid, stop)
        self._left[node] = left
        self._right[node] = right
        return node

    def _pack(self) -> None:
        """Array copies of the node lists plus padded leaf buckets for batch queries."""
        self._axis_a = np.asarray(self._axis, dtype=np.int64)
        self._split_a = np.asarray(self._split, dtype=np.float64)
        self._left_a = np.asarray(self._left, dtype=np.int64)
        self._right_a = np.asarray(self._right, dtype=np.int64)

        leaves = [n for n, axis in enumerate(self._axis) if axis == _LEAF]
        self._leaf_of = np.full(len(self._axis), -1, dtype=np.int64)
        self._leaf_of[leaves] = np.arange(len(leaves))
        width = max((self._stop[n] - self._start[n] for n in leaves), default=0)
        # padding sits at infinity so it never wins a distance comparison
        self._leaf_pts = np.full((len(leaves), width, 3), np.inf)
        self._leaf_index = np.full((len(leaves), width), -1, dtype=np.int64)
        for k, n in enumerate(leaves):
            start, stop = self._start[n], self._stop[n]
            self._leaf_pts[k, : stop - start] = self._points[start:stop]
            self._leaf_index[k, : stop - start] = self._order[start:stop]
        self._leaf_pts.setflags(write=False)
        self._leaf_index.setflags(write=False)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def nearest(self, point: Sequence[float]) -> Optional[QueryResult]:
        if not self._axis:
            return None
        q = np.asarray(point, dtype=np.float64).reshape(3)
        coords = (float(q[0]), float(q[1]), float(q[2]))

        axis_of = self._axis
        split_of = self._split
        best_sq = math.inf
        best_pos = -1
        # (node, lower bound of the squared distance to anything below it)
        stack = [(0, 0.0)]
        while stack:
            node, bound = stack.pop()
            if bound >= best_sq:
                continue
            axis = axis_of[node]
            if axis == _LEAF:
                start = self._start[node]
                sq = _sq_norm(self._points[start : self._stop[node]] - q)
                j = int(np.argmin(sq))
                if sq[j] < best_sq:
                    best_sq = float(sq[j])
                    best_pos = start + j
                continue
            delta = coords[axis] - split_of[node]
            if delta < 0.0:
                near, far = self._left[node], self._right[node]
            else:
                near, far = self._right[node], self._left[node]
            # far side first so the near side is popped next
            stack.append((far, max(bound, delta * delta)))
            stack.append((near, bound))

        return QueryResult(index=int(self._order[best_pos]), sq_distance=best_sq)

    def nearest_many(self, points) -> Tuple[np.ndarray, np.ndarray]:
        """Nearest indexed point for every row of ``points``.

        Returns ``(indices, sq_distances)``; rows without a neighbour (empty
        index) get index ``-1`` and distance ``inf``.
        """
        queries = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        best_idx, best_sq = _no_neighbours(queries.shape[0])
        if not self._axis:
            return best_idx, best_sq
        for lo in range(0, queries.shape[0], _QUERY_BLOCK):
            hi = lo + _QUERY_BLOCK
            self._search_block(queries[lo:hi], best_idx[lo:hi], best_sq[lo:hi])
        return best_idx, best_sq

    def _search_block(self, q: np.ndarray, best_idx: np.ndarray, best_sq: np.ndarray) -> None:
        n = q.shape[0]
        rows = np.arange(n)

        # Seed every query with its home leaf so the descent below prunes early.
        home = np.zeros(n, dtype=np.int64)
        inner = self._axis_a[home] != _LEAF
        while inner.any():
            sel = rows[inner]
            cur = home[sel]
            go_left = q[sel, self._axis_a[cur]] < self._split_a[cur]
            home[sel] = np.where(go_left, self._left_a[cur], self._right_a[cur])
            inner = self._axis_a[home] != _LEAF
        self._scan_leaves(q, rows, home, best_idx, best_sq)

        # Level by level over (query, node, bound) pairs.
        pq = rows
        pn = np.zeros(n, dtype=np.int64)
        pb = np.zeros(n)
        while pq.size:
            keep = pb < best_sq[pq]
            pq, pn, pb = pq[keep], pn[keep], pb[keep]
            axis = self._axis_a[pn]

            leaf = axis == _LEAF
            if leaf.any():
                lq, ln = pq[leaf], pn[leaf]
                fresh = ln != home[lq]
                self._scan_leaves(q, lq[fresh], ln[fresh], best_idx, best_sq)

            inner = ~leaf
            pq, pn, pb, axis = pq[inner], pn[inner], pb[inner], axis[inner]
            delta = q[pq, axis] - self._split_a[pn]
            far = np.maximum(pb, delta * delta)
            left_bound = np.where(delta > 0.0, far, pb)
            right_bound = np.where(delta < 0.0, far, pb)
            pn = np.concatenate([self._left_a[pn], self._right_a[pn]])
            pq = np.concatenate([pq, pq])
            pb = np.concatenate([left_bound, right_bound])

    def _scan_leaves(
        self,
        q: np.ndarray,
        qrows: np.ndarray,
        nodes: np.ndarray,
        best_idx: np.ndarray,
        best_sq: np.ndarray,
    ) -> None:
        if qrows.size == 0:
            return
        lid = self._leaf_of[nodes]
        sq = _sq_norm(self._leaf_pts[lid] - q[qrows, None, :])
        j = np.argmin(sq, axis=1)
        d = sq[np.arange(qrows.size), j]
        cand = self._leaf_index[lid, j]

        # a query may reach several leaves in one step: keep its closest
        order = np.lexsort((d, qrows))
        ranked = qrows[order]
        first = np.ones(ranked.size, dtype=bool)
        first[1:] = ranked[1:] != ranked[:-1]
        sel = order[first]
        better = d[sel] < best_sq[qrows[sel]]
        sel = sel[better]
        best_sq[qrows[sel]] = d[sel]
        best_idx[qrows[sel]] = cand[sel]


class BruteForceIndex:
    """Linear-scan reference index; exact but O(N) per query."""

    def __init__(self, points):
        self._points = _as_points(points)
        self._points.setflags(write=False)

    @classmethod
    def build(cls, cloud: PointCloud) -> "BruteForceIndex":
        return cls(cloud.points)

    def __len__(self) -> int:
        return self._points.shape[0]

    def nearest(self, point: Sequence[float]) -> Optional[QueryResult]:
        if self._points.shape[0] == 0:
            return None
        sq = _sq_norm(self._points - np.asarray(point, dtype=np.float64).reshape(3))
        j = int(np.argmin(sq))
        return QueryResult(index=j, sq_distance=float(sq[j]))

    def nearest_many(self, points) -> Tuple[np.ndarray, np.ndarray]:
        queries = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        best_idx, best_sq = _no_neighbours(queries.shape[0])
        n = self._points.shape[0]
        if n == 0:
            return best_idx, best_sq
        # keeps the (block, n) distance temporary near 2**20 entries
        step = max(1, (1 << 20) // n)
        for lo in range(0, queries.shape[0], step):
            block = queries[lo : lo + step]
            sq = _sq_norm(self._points[None, :, :] - block[:, None, :])
            j = np.argmin(sq, axis=1)
            best_idx[lo : lo + block.shape[0]] = j
            best_sq[lo : lo + block.shape[0]] = sq[np.arange(block.shape[0]), j]
        return best_idx, best_sq
