"""Carry node positions across subgraph changes and view-mode switches."""
from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Mapping, Optional, Tuple

import numpy as np
from typing_extensions import Protocol

from histonet.graph.filtering import VisibleSubgraph
from histonet.layout.state import Viewport

LOGGER = logging.getLogger(__name__)

Vector = Tuple[float, ...]


@dataclass(frozen=True)
class PositionSnapshot:
    """Positions, velocities and pins read from a live simulation."""

    dimensions: int
    positions: Mapping[str, Vector] = field(default_factory=dict)
    velocities: Mapping[str, Vector] = field(default_factory=dict)
    pins: Mapping[str, Vector] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.positions)


@dataclass(frozen=True)
class InitialLayout:
    """Starting state handed to ``ForceSimulation.initialize``."""

    dimensions: int
    positions: Mapping[str, Vector]
    velocities: Mapping[str, Vector] = field(default_factory=dict)
    pins: Mapping[str, Vector] = field(default_factory=dict)
    inherited: Tuple[str, ...] = ()
    placed: Tuple[str, ...] = ()


class SupportsCapture(Protocol):
    def capture(self) -> PositionSnapshot:
        """Return the current positions, velocities and pins."""


class PositionContinuityCache:
    """Remember where every node of the current dataset was last seen.

    Memory is keyed by node id and only grows with the dataset; ``reset`` is
    called when the dataset itself is swapped. Placement of unseen nodes is
    seeded, so the same memory and subgraph always restore to the same
    layout.
    """

    def __init__(
        self,
        viewport: Viewport,
        *,
        seed: int = 0,
        spread: float = 100.0,
        neighbour_offset: float = 30.0,
        depth_spread: float = 50.0,
    ) -> None:
        self._viewport = viewport
        self._seed = seed
        self._spread = spread
        self._neighbour_offset = neighbour_offset
        self._depth_spread = depth_spread
        self._positions: Dict[str, Vector] = {}
        self._velocities: Dict[str, Vector] = {}
        self._pins: Dict[str, Vector] = {}

    @property
    def dimensions(self) -> int:
        return self._viewport.dimensions

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    def __len__(self) -> int:
        return len(self._positions)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._positions

    def position(self, node_id: str) -> Optional[Vector]:
        return self._positions.get(node_id)

    def pins(self) -> Dict[str, Vector]:
        return dict(self._pins)

    def capture(self, source: SupportsCapture) -> PositionSnapshot:
        """Read a snapshot from a live handle and merge it into memory."""

        snapshot = source.capture()
        self.remember(snapshot)
        return snapshot

    def remember(self, snapshot: PositionSnapshot) -> None:
        if snapshot.dimensions != self.dimensions:
            LOGGER.warning(
                "Ignoring %dD snapshot for a %dD continuity cache",
                snapshot.dimensions,
                self.dimensions,
            )
            return
        self._positions.update(snapshot.positions)
        self._velocities.update(snapshot.velocities)
        for node_id in snapshot.positions:
            pin = snapshot.pins.get(node_id)
            if pin is None:
                self._pins.pop(node_id, None)
            else:
                self._pins[node_id] = pin
        LOGGER.debug("Captured %d positions (remembered=%d)", len(snapshot), len(self._positions))

    def restore(
        self,
        snapshot: Optional[PositionSnapshot],
        subgraph: VisibleSubgraph,
    ) -> InitialLayout:
        """Build the starting layout for a new visible subgraph.

        Args:
            snapshot: Optional fresh snapshot; merged into memory first.
            subgraph: Subgraph the next simulation will run on.

        Returns:
            InitialLayout: Remembered positions for known ids, seeded
            placements near a positioned neighbour (or around the center)
            for unseen ids, and remembered pins.
        """

        if snapshot is not None:
            self.remember(snapshot)
        rng = np.random.default_rng(self._seed)
        positions: Dict[str, Vector] = {}
        velocities: Dict[str, Vector] = {}
        inherited: List[str] = []
        pending: Deque[str] = deque()
        for node in subgraph.nodes:
            remembered = self._positions.get(node.node_id)
            if remembered is None:
                pending.append(node.node_id)
                continue
            positions[node.node_id] = remembered
            velocities[node.node_id] = self._velocities.get(node.node_id, self._zero())
            inherited.append(node.node_id)

        placed: List[str] = []
        stalled = 0
        while pending and stalled < len(pending):
            node_id = pending.popleft()
            anchor = self._placed_neighbour(subgraph, node_id, positions)
            if anchor is None:
                pending.append(node_id)
                stalled += 1
                continue
            positions[node_id] = self._near(anchor, rng)
            placed.append(node_id)
            stalled = 0
        for node_id in pending:
            positions[node_id] = self._scatter(rng)
            placed.append(node_id)

        pins = {node_id: self._pins[node_id] for node_id in subgraph.node_ids if node_id in self._pins}
        if placed:
            LOGGER.debug("Placed %d unseen nodes (inherited=%d)", len(placed), len(inherited))
        return InitialLayout(
            dimensions=self.dimensions,
            positions=positions,
            velocities=velocities,
            pins=pins,
            inherited=tuple(inherited),
            placed=tuple(placed),
        )

    def reproject(self, viewport: Viewport) -> None:
        """Convert remembered state to another view mode's coordinate space.

        2D screen coordinates are shifted to be origin-centred and given a
        small seeded depth; 3D coordinates drop depth and move back to the
        screen origin. Velocities are discarded.
        """

        source = self._viewport
        self._viewport = viewport
        self._velocities.clear()
        if source.dimensions == viewport.dimensions:
            return
        rng = np.random.default_rng(self._seed)
        self._positions = {
            node_id: self._convert(vector, source, viewport, rng)
            for node_id, vector in self._positions.items()
        }
        self._pins = {
            node_id: self._convert(vector, source, viewport, rng) for node_id, vector in self._pins.items()
        }
        LOGGER.info(
            "Reprojected %d remembered positions from %dD to %dD",
            len(self._positions),
            source.dimensions,
            viewport.dimensions,
        )

    def reset(self) -> None:
        self._positions.clear()
        self._velocities.clear()
        self._pins.clear()

    def _convert(self, vector: Vector, source: Viewport, target: Viewport, rng: np.random.Generator) -> Vector:
        if target.dimensions == 3:
            x, y = vector[0], vector[1]
            depth = float(rng.normal(0.0, self._depth_spread))
            return (x - source.width / 2.0, y - source.height / 2.0, depth)
        return (vector[0] + target.width / 2.0, vector[1] + target.height / 2.0)

    def _placed_neighbour(
        self, subgraph: VisibleSubgraph, node_id: str, positions: Mapping[str, Vector]
    ) -> Optional[Vector]:
        for neighbour in sorted(subgraph.neighbour_ids(node_id)):
            if neighbour in positions:
                return positions[neighbour]
        return None

    def _near(self, anchor: Vector, rng: np.random.Generator) -> Vector:
        if self.dimensions == 2:
            angle = rng.uniform(0.0, 2.0 * math.pi)
            offset = (math.cos(angle), math.sin(angle))
        else:
            direction = rng.normal(size=3)
            norm = float(np.linalg.norm(direction)) or 1.0
            offset = tuple(float(value) / norm for value in direction)
        return tuple(float(a + self._neighbour_offset * o) for a, o in zip(anchor, offset))

    def _scatter(self, rng: np.random.Generator) -> Vector:
        center = self._viewport.center()
        jitter = (rng.random(self.dimensions) - 0.5) * 2.0 * self._spread
        return tuple(float(value) for value in center + jitter)

    def _zero(self) -> Vector:
        return (0.0,) * self.dimensions


__all__ = ["InitialLayout", "PositionContinuityCache", "PositionSnapshot", "SupportsCapture"]
