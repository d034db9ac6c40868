"""Spatial indexes used to keep force evaluation sub-quadratic on large graphs."""
from __future__ import annotations

import itertools
import math
from collections import defaultdict
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

_MAX_DEPTH = 24


def neighbour_pairs(points: np.ndarray, cutoff: float) -> Tuple[np.ndarray, np.ndarray]:
    """Return index pairs ``(i, j)`` with ``i < j`` that may lie within ``cutoff``.

    Points are hashed into a uniform grid of cell size ``cutoff``; only points
    in the same or adjacent cells are paired, so every pair closer than the
    cutoff is returned (plus some farther ones the caller must filter).

    Args:
        points: ``(n, d)`` array of coordinates.
        cutoff: Interaction distance; non-positive values yield no pairs.

    Returns:
        Tuple[np.ndarray, np.ndarray]: Parallel index arrays.
    """

    count = points.shape[0]
    empty = (np.empty(0, dtype=np.intp), np.empty(0, dtype=np.intp))
    if count < 2 or cutoff <= 0 or not math.isfinite(cutoff):
        return empty
    keys = np.floor(points / cutoff).astype(np.int64)
    buckets: Dict[Tuple[int, ...], List[int]] = defaultdict(list)
    for index, key in enumerate(map(tuple, keys.tolist())):
        buckets[key].append(index)
    offsets = list(itertools.product((-1, 0, 1), repeat=points.shape[1]))
    members = {key: np.asarray(indices, dtype=np.intp) for key, indices in buckets.items()}
    left: List[np.ndarray] = []
    right: List[np.ndarray] = []
    for key, own in members.items():
        for offset in offsets:
            others = members.get(tuple(k + o for k, o in zip(key, offset)))
            if others is None:
                continue
            first, second = np.meshgrid(own, others, indexing="ij")
            mask = first < second
            if mask.any():
                left.append(first[mask])
                right.append(second[mask])
    if not left:
        return empty
    return np.concatenate(left), np.concatenate(right)


class _Cell:
    """Node of the Barnes-Hut tree."""

    __slots__ = ("width", "count", "centroid", "children", "points")

    def __init__(self, width: float, count: int, centroid: np.ndarray) -> None:
        self.width = width
        self.count = count
        self.centroid = centroid
        self.children: Tuple["_Cell", ...] = ()
        self.points: Optional[np.ndarray] = None


class BarnesHutTree:
    """Quadtree (2D) or octree (3D) aggregating node counts and centroids.

    Distant cells act as a single body at their centroid once their width
    seen from the query point drops below ``theta``; larger ``theta`` means
    coarser, faster evaluation.
    """

    def __init__(self, positions: np.ndarray, *, leaf_capacity: int = 1) -> None:
        self._positions = positions
        self._leaf_capacity = max(1, leaf_capacity)
        self._bits = 1 << np.arange(positions.shape[1])
        if positions.shape[0] == 0:
            self._root: Optional[_Cell] = None
            return
        lower = positions.min(axis=0)
        width = float((positions.max(axis=0) - lower).max())
        if width <= 0.0:
            width = 1.0
        self._root = self._build(np.arange(positions.shape[0]), lower, width, 0)

    def _build(self, indices: np.ndarray, lower: np.ndarray, width: float, depth: int) -> _Cell:
        points = self._positions[indices]
        cell = _Cell(width, len(indices), points.mean(axis=0))
        if len(indices) <= self._leaf_capacity or depth >= _MAX_DEPTH:
            cell.points = indices
            return cell
        half = width / 2.0
        codes = ((points >= lower + half) * self._bits).sum(axis=1)
        children: List[_Cell] = []
        for code in np.unique(codes):
            offset = ((int(code) & self._bits) > 0) * half
            children.append(self._build(indices[codes == code], lower + offset, half, depth + 1))
        cell.children = tuple(children)
        return cell

    def accumulate(
        self,
        strength: float,
        alpha: float,
        theta: float,
        distance_min: float,
        distance_max: float,
    ) -> np.ndarray:
        """Return the many-body velocity contribution for every node.

        Args:
            strength: Per-node charge; negative repels.
            alpha: Current simulation temperature.
            theta: Barnes-Hut opening criterion.
            distance_min: Lower clamp for the interaction distance.
            distance_max: Interactions beyond this distance are ignored.

        Returns:
            np.ndarray: ``(n, d)`` velocity deltas.
        """

        positions = self._positions
        deltas = np.zeros_like(positions)
        if self._root is None:
            return deltas
        theta2 = theta * theta
        min2 = distance_min * distance_min
        max2 = distance_max * distance_max
        scale = strength * alpha
        for index in range(positions.shape[0]):
            origin = positions[index]
            total = np.zeros(positions.shape[1])
            stack: List[_Cell] = [self._root]
            while stack:
                cell = stack.pop()
                offset = cell.centroid - origin
                length2 = float(offset @ offset)
                if cell.children:
                    if cell.width * cell.width / theta2 < length2:
                        if length2 < max2:
                            total += offset * (scale * cell.count / _clamp(length2, min2))
                        continue
                    stack.extend(cell.children)
                    continue
                for other in cell.points if cell.points is not None else ():
                    if other == index:
                        continue
                    offset = positions[other] - origin
                    length2 = float(offset @ offset)
                    if length2 == 0.0 or length2 >= max2:
                        continue
                    total += offset * (scale / _clamp(length2, min2))
            deltas[index] = total
        return deltas


def _clamp(length2: float, min2: float) -> float:
    if length2 < min2:
        return math.sqrt(min2 * length2) if length2 > 0 else min2
    return length2


def exact_many_body(
    positions: np.ndarray,
    strength: float,
    alpha: float,
    distance_min: float,
    distance_max: float,
) -> np.ndarray:
    """Vectorized all-pairs counterpart of :meth:`BarnesHutTree.accumulate`."""

    if positions.shape[0] < 2:
        return np.zeros_like(positions)
    offsets = positions[np.newaxis, :, :] - positions[:, np.newaxis, :]
    length2 = np.einsum("ijk,ijk->ij", offsets, offsets)
    min2 = distance_min * distance_min
    active = (length2 > 0.0) & (length2 < distance_max * distance_max)
    clamped = np.where(length2 < min2, np.sqrt(min2 * length2), length2)
    weights = np.zeros_like(length2)
    weights[active] = strength * alpha / clamped[active]
    return np.einsum("ijk,ij->ik", offsets, weights)


def coincident_groups(positions: np.ndarray) -> Sequence[np.ndarray]:
    """Return index groups of nodes sharing exactly the same position."""

    if positions.shape[0] < 2:
        return ()
    _, inverse, counts = np.unique(positions, axis=0, return_inverse=True, return_counts=True)
    inverse = np.asarray(inverse).reshape(-1)
    return [np.flatnonzero(inverse == group) for group in np.flatnonzero(counts > 1)]


__all__ = ["BarnesHutTree", "coincident_groups", "exact_many_body", "neighbour_pairs"]
