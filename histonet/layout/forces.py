"""Force terms applied to the layout state on every tick."""
from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np
from typing_extensions import Protocol

from histonet.config import ForceProfileConfig, PlacementConfig
from histonet.contracts import LayoutMode
from histonet.layout.spatial import BarnesHutTree, exact_many_body, neighbour_pairs
from histonet.layout.state import LayoutState

LOGGER = logging.getLogger(__name__)

_JIGGLE = 1e-6


def _jiggle(rng: np.random.Generator, shape) -> np.ndarray:
    return (rng.random(shape) - 0.5) * _JIGGLE


class Force(Protocol):
    """A term contributing to node velocities."""

    name: str

    def apply(self, state: LayoutState, alpha: float) -> None:
        """Add this force's velocity contribution for the current alpha."""


class LinkForce:
    """Spring pulling linked nodes toward a rest distance.

    The endpoint with fewer links moves more; the pull strength defaults to
    the reciprocal of the smaller endpoint degree, scaled by the link weight.
    """

    name = "link"

    def __init__(self, distance: float, strength: Optional[float] = None) -> None:
        self.distance = distance
        self.strength = strength

    def apply(self, state: LayoutState, alpha: float) -> None:
        sources = state.link_sources
        targets = state.link_targets
        if sources.size == 0:
            return
        real = sources != targets
        sources = sources[real]
        targets = targets[real]
        weights = state.link_weights[real]
        if sources.size == 0:
            return
        counts = np.bincount(sources, minlength=state.count) + np.bincount(
            targets, minlength=state.count
        )
        source_counts = counts[sources].astype(float)
        target_counts = counts[targets].astype(float)
        bias = source_counts / (source_counts + target_counts)
        if self.strength is None:
            base = 1.0 / np.minimum(source_counts, target_counts)
        else:
            base = np.full(sources.size, self.strength)
        strength = np.minimum(base * weights, 1.0)

        positions = state.positions
        velocities = state.velocities
        delta = (positions[targets] + velocities[targets]) - (positions[sources] + velocities[sources])
        length = np.linalg.norm(delta, axis=1)
        degenerate = length == 0.0
        if degenerate.any():
            delta[degenerate] = _jiggle(state.rng, (int(degenerate.sum()), state.dimensions))
            length = np.linalg.norm(delta, axis=1)
        factor = (length - self.distance) / length * alpha * strength
        delta *= factor[:, np.newaxis]
        np.add.at(velocities, targets, -delta * bias[:, np.newaxis])
        np.add.at(velocities, sources, delta * (1.0 - bias)[:, np.newaxis])


class ChargeForce:
    """Many-body repulsion capped at ``distance_max``.

    Graphs up to ``exact_limit`` nodes are evaluated exactly; larger ones use
    a Barnes-Hut tree with opening angle ``theta``.
    """

    name = "charge"

    def __init__(
        self,
        strength: float,
        *,
        distance_min: float,
        distance_max: float,
        theta: float,
        exact_limit: int,
    ) -> None:
        self.strength = strength
        self.distance_min = distance_min
        self.distance_max = distance_max
        self.theta = theta
        self.exact_limit = exact_limit

    def apply(self, state: LayoutState, alpha: float) -> None:
        if state.count < 2:
            return
        if state.count <= self.exact_limit:
            deltas = exact_many_body(
                state.positions, self.strength, alpha, self.distance_min, self.distance_max
            )
        else:
            tree = BarnesHutTree(state.positions)
            deltas = tree.accumulate(
                self.strength, alpha, self.theta, self.distance_min, self.distance_max
            )
        state.velocities += deltas


class CenterForce:
    """Translate free nodes so their mean moves toward the viewport center."""

    name = "center"

    def __init__(self, strength: float) -> None:
        self.strength = strength

    def apply(self, state: LayoutState, alpha: float) -> None:
        free = ~state.pinned
        if not free.any() or self.strength <= 0.0:
            return
        shift = (state.positions[free].mean(axis=0) - state.viewport.center()) * self.strength
        state.positions[free] -= shift


class CollisionForce:
    """Push apart nodes whose predicted circles/spheres overlap."""

    name = "collision"

    def __init__(self, strength: float) -> None:
        self.strength = strength

    def apply(self, state: LayoutState, alpha: float) -> None:
        if state.count < 2 or self.strength <= 0.0:
            return
        radii = state.radii
        predicted = state.positions + state.velocities
        first, second = neighbour_pairs(predicted, 2.0 * float(radii.max()))
        if first.size == 0:
            return
        delta = predicted[first] - predicted[second]
        reach = radii[first] + radii[second]
        length2 = np.einsum("ij,ij->i", delta, delta)
        overlapping = length2 < reach * reach
        if not overlapping.any():
            return
        first = first[overlapping]
        second = second[overlapping]
        delta = delta[overlapping]
        reach = reach[overlapping]
        length2 = length2[overlapping]
        degenerate = length2 == 0.0
        if degenerate.any():
            delta[degenerate] = _jiggle(state.rng, (int(degenerate.sum()), state.dimensions))
            length2 = np.einsum("ij,ij->i", delta, delta)
        length = np.sqrt(length2)
        delta *= ((reach - length) / length * self.strength)[:, np.newaxis]
        first_r2 = radii[first] ** 2
        second_r2 = radii[second] ** 2
        share = second_r2 / (first_r2 + second_r2)
        np.add.at(state.velocities, first, delta * share[:, np.newaxis])
        np.add.at(state.velocities, second, -delta * (1.0 - share)[:, np.newaxis])


class RadialForce:
    """Pull nodes toward a ring of fixed radius around the center."""

    name = "radial"

    def __init__(self, radius: float, strength: float) -> None:
        self.radius = radius
        self.strength = strength

    def apply(self, state: LayoutState, alpha: float) -> None:
        if state.count == 0:
            return
        offset = state.positions - state.viewport.center()
        distance = np.linalg.norm(offset, axis=1)
        degenerate = distance == 0.0
        if degenerate.any():
            offset[degenerate] = _jiggle(state.rng, (int(degenerate.sum()), state.dimensions))
            distance = np.linalg.norm(offset, axis=1)
        factor = (self.radius - distance) * self.strength * alpha / distance
        state.velocities += offset * factor[:, np.newaxis]


class LayeredForce:
    """Pull nodes toward a horizontal band keyed by entity category."""

    name = "layered"

    def __init__(self, placement: PlacementConfig) -> None:
        self.placement = placement

    def apply(self, state: LayoutState, alpha: float) -> None:
        if state.count == 0:
            return
        low, high = state.viewport.vertical_span()
        bands = np.array([self.placement.band(category) for category in state.categories])
        target_y = low + bands * (high - low)
        center = state.viewport.center()
        axis = self.placement.layered_axis_strength * alpha
        state.velocities[:, 0] += (center[0] - state.positions[:, 0]) * axis
        state.velocities[:, 1] += (
            (target_y - state.positions[:, 1]) * self.placement.layered_band_strength * alpha
        )
        if state.dimensions == 3:
            state.velocities[:, 2] += (center[2] - state.positions[:, 2]) * axis


def build_forces(
    profile: ForceProfileConfig,
    placement: PlacementConfig,
    mode: LayoutMode,
    state: LayoutState,
) -> List[Force]:
    """Assemble the ordered force set for a placement mode.

    Order: link, charge, center (plain mode only), collision, placement.
    """

    if mode == LayoutMode.RADIAL:
        charge_strength = placement.radial_charge_strength
    elif mode == LayoutMode.LAYERED:
        charge_strength = placement.layered_charge_strength
    else:
        charge_strength = profile.charge_strength
    forces: List[Force] = [
        LinkForce(profile.link_distance, profile.link_strength),
        ChargeForce(
            charge_strength,
            distance_min=profile.charge_distance_min,
            distance_max=profile.charge_distance_max,
            theta=profile.theta,
            exact_limit=profile.exact_charge_limit,
        ),
    ]
    if mode == LayoutMode.PLAIN:
        forces.append(CenterForce(profile.center_strength))
    forces.append(CollisionForce(profile.collision_strength))
    if mode == LayoutMode.RADIAL:
        radius = state.viewport.placement_radius(placement.radial_radius_fraction)
        forces.append(RadialForce(radius, placement.radial_strength))
    elif mode == LayoutMode.LAYERED:
        forces.append(LayeredForce(placement))
    LOGGER.debug("Built force set for %s mode: %s", mode.value, [force.name for force in forces])
    return forces


__all__ = [
    "CenterForce",
    "ChargeForce",
    "CollisionForce",
    "Force",
    "LayeredForce",
    "LinkForce",
    "RadialForce",
    "build_forces",
]
