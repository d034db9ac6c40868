"""Mutable per-node simulation state and the viewport it is confined to."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

import numpy as np

from histonet.contracts import EntityCategory


@dataclass(frozen=True)
class Viewport:
    """Layout space: screen rectangle in 2D, origin-centred cube in 3D."""

    width: float = 800.0
    height: float = 600.0
    dimensions: int = 2
    half_extent: float = 600.0

    def __post_init__(self) -> None:
        if self.dimensions not in (2, 3):
            raise ValueError(f"Unsupported dimensionality: {self.dimensions}")
        if self.width <= 0 or self.height <= 0:
            raise ValueError("viewport width and height must be positive")

    def center(self) -> np.ndarray:
        if self.dimensions == 2:
            return np.array([self.width / 2.0, self.height / 2.0])
        return np.zeros(3)

    def bounds(self, padding: float) -> Tuple[np.ndarray, np.ndarray]:
        """Return lower and upper corners nodes are clamped into."""

        if self.dimensions == 2:
            pad_x = min(padding, self.width / 2.0)
            pad_y = min(padding, self.height / 2.0)
            return (
                np.array([pad_x, pad_y]),
                np.array([self.width - pad_x, self.height - pad_y]),
            )
        extent = max(self.half_extent - padding, 0.0)
        return np.full(3, -extent), np.full(3, extent)

    def vertical_span(self) -> Tuple[float, float]:
        """Return the y range that layered bands are mapped onto."""

        if self.dimensions == 2:
            return 0.0, self.height
        return -self.height / 2.0, self.height / 2.0

    def placement_radius(self, fraction: float) -> float:
        return min(self.width, self.height) * fraction


@dataclass
class LayoutState:
    """Position, velocity and pin arrays for the visible nodes.

    Only the simulation writes ``positions``/``velocities``; the interaction
    controller reaches ``pins`` through the simulation handle.
    """

    node_ids: Tuple[str, ...]
    categories: Tuple[EntityCategory, ...]
    positions: np.ndarray
    velocities: np.ndarray
    pinned: np.ndarray
    pins: np.ndarray
    radii: np.ndarray
    link_sources: np.ndarray
    link_targets: np.ndarray
    link_weights: np.ndarray
    viewport: Viewport
    rng: np.random.Generator
    index: Dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.index:
            self.index = {node_id: position for position, node_id in enumerate(self.node_ids)}

    @property
    def count(self) -> int:
        return len(self.node_ids)

    @property
    def dimensions(self) -> int:
        return self.viewport.dimensions

    def as_mapping(self) -> Dict[str, Tuple[float, ...]]:
        return {
            node_id: tuple(float(value) for value in row)
            for node_id, row in zip(self.node_ids, self.positions.tolist())
        }

    def release(self) -> None:
        """Drop array storage once the owning handle stops."""

        dims = self.dimensions
        self.node_ids = ()
        self.categories = ()
        self.index = {}
        self.positions = np.empty((0, dims))
        self.velocities = np.empty((0, dims))
        self.pinned = np.empty(0, dtype=bool)
        self.pins = np.empty((0, dims))
        self.radii = np.empty(0)
        self.link_sources = np.empty(0, dtype=np.intp)
        self.link_targets = np.empty(0, dtype=np.intp)
        self.link_weights = np.empty(0)


__all__ = ["LayoutState", "Viewport"]
