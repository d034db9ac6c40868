"""Force-directed position solver driven one frame at a time."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Tuple

import numpy as np

from histonet.config import AppConfig, ForceProfileConfig
from histonet.contracts import LayoutMode
from histonet.graph.filtering import VisibleSubgraph
from histonet.layout.continuity import InitialLayout, PositionSnapshot
from histonet.layout.cooling import CoolingPhase, CoolingSchedule, CoolingStep
from histonet.layout.forces import Force, build_forces
from histonet.layout.scheduling import FrameScheduler, ManualFrameScheduler
from histonet.layout.spatial import coincident_groups
from histonet.layout.state import LayoutState, Viewport

LOGGER = logging.getLogger(__name__)

Positions = Dict[str, Tuple[float, ...]]
PositionListener = Callable[[Positions], None]

_COINCIDENT_JIGGLE = 1e-3


class SimulationStatus(str, Enum):
    """Lifecycle of a simulation handle."""

    EMPTY = "empty"
    RUNNING = "running"
    SETTLED = "settled"
    STOPPED = "stopped"


class SimulationStoppedError(RuntimeError):
    """Raised when a stopped simulation handle is used."""


class SimulationHandle:
    """Live simulation over one visible subgraph.

    The handle owns the state arrays. Pins are the only external writes to
    positions; everything else goes through :meth:`tick`.
    """

    def __init__(
        self,
        owner: "ForceSimulation",
        state: LayoutState,
        *,
        placement: LayoutMode,
        alpha: float,
        schedule: CoolingSchedule,
    ) -> None:
        self._owner = owner
        self._config = owner.config
        self._profile = owner.profile
        self._scheduler = owner.scheduler
        self._state = state
        self._placement = placement
        self._alpha = alpha
        self._alpha_target = 0.0
        self._alpha_decay = self._profile.alpha_decay
        self._alpha_min = self._profile.alpha_min
        self._velocity_decay = self._profile.velocity_decay
        self._schedule = schedule
        self._forces: List[Force] = build_forces(
            self._profile, self._config.simulation.placement, placement, state
        )
        self._listeners: List[PositionListener] = []
        self._token: Optional[int] = None
        self._started = False
        self._ticks = 0
        self._status = SimulationStatus.EMPTY if state.count == 0 else SimulationStatus.RUNNING

    @property
    def status(self) -> SimulationStatus:
        return self._status

    @property
    def alpha(self) -> float:
        return self._alpha

    @property
    def alpha_target(self) -> float:
        return self._alpha_target

    @property
    def alpha_min(self) -> float:
        return self._alpha_min

    @property
    def phase(self) -> CoolingPhase:
        return self._schedule.phase

    @property
    def placement(self) -> LayoutMode:
        return self._placement

    @property
    def dimensions(self) -> int:
        return self._state.dimensions

    @property
    def node_ids(self) -> Tuple[str, ...]:
        return self._state.node_ids

    @property
    def tick_count(self) -> int:
        return self._ticks

    @property
    def frame_pending(self) -> bool:
        return self._token is not None

    @property
    def forces(self) -> Tuple[Force, ...]:
        return tuple(self._forces)

    def is_pinned(self, node_id: str) -> bool:
        self._ensure_live()
        return bool(self._state.pinned[self._index(node_id)])

    def tick(self) -> Positions:
        """Advance the simulation by one step and return the new positions."""

        self._ensure_live()
        if self._status == SimulationStatus.EMPTY:
            return {}
        step = self._schedule.advance()
        if step is not None:
            self._apply_cooling_step(step)
        self._alpha += (self._alpha_target - self._alpha) * self._alpha_decay
        state = self._state
        for force in self._forces:
            force.apply(state, self._alpha)
        state.velocities *= 1.0 - self._velocity_decay
        state.positions += state.velocities
        self._constrain()
        self._ticks += 1
        if self._alpha < self._alpha_min and self._status == SimulationStatus.RUNNING:
            self._status = SimulationStatus.SETTLED
            LOGGER.debug("Simulation settled after %d ticks (alpha=%.5f)", self._ticks, self._alpha)
        positions = state.as_mapping()
        for listener in list(self._listeners):
            listener(positions)
        return positions

    def _constrain(self) -> None:
        state = self._state
        pinned = state.pinned
        if pinned.any():
            state.positions[pinned] = state.pins[pinned]
            state.velocities[pinned] = 0.0
        free = ~pinned
        lower, upper = state.viewport.bounds(self._profile.bounds_padding)
        state.positions[free] = np.clip(state.positions[free], lower, upper)
        for group in coincident_groups(state.positions):
            movable = [index for index in group if not pinned[index]]
            if len(movable) == len(group):
                movable = movable[1:]
            if movable:
                state.positions[movable] += (
                    state.rng.random((len(movable), state.dimensions)) - 0.5
                ) * _COINCIDENT_JIGGLE

    def _apply_cooling_step(self, step: CoolingStep) -> None:
        if step.alpha_cap is not None:
            self._alpha = min(self._alpha, step.alpha_cap)
        self._alpha_target = min(step.alpha_target, self._alpha)
        LOGGER.debug(
            "Cooling step entered %s (alpha=%.4f, target=%.4f)",
            step.enter.value,
            self._alpha,
            self._alpha_target,
        )

    def reheat(self, intensity: float, *, schedule: Optional[CoolingSchedule] = None, sustain: bool = False) -> None:
        """Raise alpha so the layout moves again.

        Args:
            intensity: New alpha, clamped to ``[0, 1]``.
            schedule: Cooling schedule replacing the current one.
            sustain: Also hold the alpha target at ``intensity``.
        """

        self._ensure_live()
        if self._status == SimulationStatus.EMPTY:
            return
        self._alpha = min(max(intensity, 0.0), 1.0)
        if sustain:
            self._alpha_target = self._alpha
        if schedule is not None:
            self._schedule.cancel()
            self._schedule = schedule
        self._wake()

    def set_alpha_target(self, target: float) -> None:
        """Hold alpha near ``target``; interaction overrides any cooling schedule."""

        self._ensure_live()
        if self._status == SimulationStatus.EMPTY:
            return
        self._alpha_target = min(max(target, 0.0), 1.0)
        self._schedule.cancel()
        if self._alpha_target >= self._alpha_min:
            self._wake()

    def pin(self, node_id: str, position: Optional[Tuple[float, ...]]) -> None:
        """Fix a node at ``position``; ``None`` releases it.

        Raises:
            KeyError: If the node is not part of this simulation.
            ValueError: If the position has the wrong dimensionality.
        """

        self._ensure_live()
        index = self._index(node_id)
        state = self._state
        if position is None:
            state.pinned[index] = False
            return
        if len(position) != state.dimensions:
            raise ValueError(f"Expected a {state.dimensions}D position for node '{node_id}'")
        state.pins[index] = position
        state.pinned[index] = True
        state.positions[index] = state.pins[index]
        state.velocities[index] = 0.0

    def set_placement(self, mode: LayoutMode) -> None:
        """Swap the placement force and reheat through the transition schedule."""

        self._ensure_live()
        if mode == self._placement:
            return
        self._placement = mode
        self._forces = build_forces(self._profile, self._config.simulation.placement, mode, self._state)
        LOGGER.info("Layout placement changed to %s", mode.value)
        transition = self._config.cooling.layout_transition
        self.reheat(
            transition.reheat_alpha,
            schedule=CoolingSchedule.from_config(transition.steps, self._config.engine.frame_rate),
        )

    def set_radii(self, sizes: Mapping[str, float]) -> None:
        """Update collision radii from node display sizes."""

        self._ensure_live()
        padding = self._profile.collision_padding
        for node_id, size in sizes.items():
            index = self._state.index.get(node_id)
            if index is not None:
                self._state.radii[index] = size + padding

    def set_viewport(self, viewport: Viewport) -> None:
        self._ensure_live()
        if viewport.dimensions != self._state.dimensions:
            raise ValueError("viewport dimensionality cannot change on a live simulation")
        self._state.viewport = viewport
        self._forces = build_forces(
            self._profile, self._config.simulation.placement, self._placement, self._state
        )

    def subscribe(self, listener: PositionListener) -> Callable[[], None]:
        """Register a per-tick position listener; returns an unsubscribe callable."""

        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def start(self) -> None:
        """Arm the frame loop; settled or empty handles schedule nothing."""

        self._ensure_live()
        self._started = True
        self._wake()

    def _wake(self) -> None:
        if self._status == SimulationStatus.SETTLED:
            self._status = SimulationStatus.RUNNING
        if self._started and self._status == SimulationStatus.RUNNING and self._token is None:
            self._token = self._scheduler.request_frame(self._on_frame)

    def _on_frame(self) -> None:
        self._token = None
        if self._status != SimulationStatus.RUNNING:
            return
        self.tick()
        if self._status == SimulationStatus.RUNNING:
            self._token = self._scheduler.request_frame(self._on_frame)

    def run(self, max_ticks: int) -> int:
        """Tick synchronously until settled or ``max_ticks``; return ticks run."""

        self._ensure_live()
        ran = 0
        while self._status == SimulationStatus.RUNNING and ran < max_ticks:
            self.tick()
            ran += 1
        if self._status != SimulationStatus.RUNNING:
            self._cancel_frame()
        return ran

    def stop(self) -> None:
        """Cancel the pending frame, then release state. Idempotent."""

        if self._status == SimulationStatus.STOPPED:
            return
        self._cancel_frame()
        self._schedule.cancel()
        self._listeners.clear()
        self._state.release()
        self._status = SimulationStatus.STOPPED
        self._owner._release(self)
        LOGGER.debug("Simulation stopped after %d ticks", self._ticks)

    def _cancel_frame(self) -> None:
        if self._token is not None:
            self._scheduler.cancel(self._token)
            self._token = None

    def positions(self) -> Positions:
        self._ensure_live()
        return self._state.as_mapping()

    def position(self, node_id: str) -> Tuple[float, ...]:
        self._ensure_live()
        return tuple(float(value) for value in self._state.positions[self._index(node_id)])

    def capture(self) -> PositionSnapshot:
        """Return positions, velocities and active pins for continuity."""

        self._ensure_live()
        state = self._state
        velocities = {
            node_id: tuple(float(value) for value in row)
            for node_id, row in zip(state.node_ids, state.velocities.tolist())
        }
        pins = {
            node_id: tuple(float(value) for value in state.pins[index])
            for node_id, index in state.index.items()
            if state.pinned[index]
        }
        return PositionSnapshot(
            dimensions=state.dimensions,
            positions=state.as_mapping(),
            velocities=velocities,
            pins=pins,
        )

    def _index(self, node_id: str) -> int:
        try:
            return self._state.index[node_id]
        except KeyError:
            raise KeyError(f"Node '{node_id}' is not part of the simulation") from None

    def _ensure_live(self) -> None:
        if self._status == SimulationStatus.STOPPED:
            raise SimulationStoppedError("Simulation handle has been stopped")


class ForceSimulation:
    """Factory for simulation handles; at most one handle is live at a time."""

    def __init__(
        self,
        config: AppConfig,
        *,
        dimensions: int = 2,
        viewport: Optional[Viewport] = None,
        scheduler: Optional[FrameScheduler] = None,
        seed: Optional[int] = None,
    ) -> None:
        self._config = config
        self._profile = config.simulation.profile(dimensions)
        if viewport is None:
            viewport = Viewport(
                width=config.service.default_width,
                height=config.service.default_height,
                dimensions=dimensions,
                half_extent=self._profile.half_extent,
            )
        elif viewport.dimensions != dimensions:
            raise ValueError("viewport dimensionality does not match the simulation")
        self._viewport = viewport
        self._scheduler: FrameScheduler = scheduler if scheduler is not None else ManualFrameScheduler()
        self._seed = config.engine.random_seed if seed is None else seed
        self._active: Optional[SimulationHandle] = None

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def profile(self) -> ForceProfileConfig:
        return self._profile

    @property
    def scheduler(self) -> FrameScheduler:
        return self._scheduler

    @property
    def dimensions(self) -> int:
        return self._viewport.dimensions

    @property
    def viewport(self) -> Viewport:
        return self._viewport

    @property
    def active(self) -> Optional[SimulationHandle]:
        return self._active

    def set_viewport(self, viewport: Viewport) -> None:
        if viewport.dimensions != self.dimensions:
            raise ValueError("viewport dimensionality does not match the simulation")
        self._viewport = viewport
        if self._active is not None:
            self._active.set_viewport(viewport)

    def initialize(
        self,
        subgraph: VisibleSubgraph,
        prior: Optional[InitialLayout] = None,
        *,
        radii: Optional[Mapping[str, float]] = None,
        placement: LayoutMode = LayoutMode.PLAIN,
        alpha: Optional[float] = None,
        schedule: Optional[CoolingSchedule] = None,
    ) -> SimulationHandle:
        """Create a handle for ``subgraph``, stopping any live one first.

        Args:
            subgraph: Visible nodes and links to lay out.
            prior: Starting positions, velocities and pins; nodes missing from
                it are seeded around the center.
            radii: Node display sizes; collision padding is added here.
            placement: Placement mode selecting the force set.
            alpha: Starting alpha (profile default when omitted).
            schedule: Cooling schedule (structural default when omitted).

        Returns:
            SimulationHandle: Handle in ``running`` state, or ``empty``.
        """

        if self._active is not None:
            self._active.stop()
        profile = self._profile
        dims = self.dimensions
        rng = np.random.default_rng(self._seed)
        node_ids = tuple(node.node_id for node in subgraph.nodes)
        count = len(node_ids)
        positions = np.empty((count, dims))
        velocities = np.zeros((count, dims))
        pinned = np.zeros(count, dtype=bool)
        pins = np.zeros((count, dims))
        center = self._viewport.center()
        seeded = 0
        for index, node_id in enumerate(node_ids):
            known = _vector(prior.positions.get(node_id), dims) if prior is not None else None
            if known is None:
                positions[index] = center + (rng.random(dims) - 0.5) * 2.0 * profile.initial_spread
                seeded += 1
                continue
            positions[index] = known
            velocity = _vector(prior.velocities.get(node_id), dims)
            if velocity is not None:
                velocities[index] = velocity
            pin = _vector(prior.pins.get(node_id), dims)
            if pin is not None:
                pinned[index] = True
                pins[index] = pin
                positions[index] = pin
        sizes = np.full(count, self._config.node_sizing.profile(dims).equal_size)
        if radii:
            for index, node_id in enumerate(node_ids):
                sizes[index] = radii.get(node_id, sizes[index])
        state = LayoutState(
            node_ids=node_ids,
            categories=tuple(node.category for node in subgraph.nodes),
            positions=positions,
            velocities=velocities,
            pinned=pinned,
            pins=pins,
            radii=sizes + profile.collision_padding,
            link_sources=np.array([link.source_index for link in subgraph.links], dtype=np.intp),
            link_targets=np.array([link.target_index for link in subgraph.links], dtype=np.intp),
            link_weights=np.array([link.link.weight for link in subgraph.links], dtype=float),
            viewport=self._viewport,
            rng=rng,
        )
        if schedule is None:
            schedule = CoolingSchedule.from_config(self._config.cooling.structural, self._config.engine.frame_rate)
        handle = SimulationHandle(
            self,
            state,
            placement=placement,
            alpha=profile.initial_alpha if alpha is None else alpha,
            schedule=schedule,
        )
        self._active = handle
        LOGGER.info(
            "Simulation initialized (nodes=%d, links=%d, dimensions=%d, placement=%s, seeded=%d)",
            count,
            len(subgraph.links),
            dims,
            placement.value,
            seeded,
        )
        return handle

    def stop(self) -> None:
        if self._active is not None:
            self._active.stop()

    def _release(self, handle: SimulationHandle) -> None:
        if self._active is handle:
            self._active = None


def _vector(value: Optional[Tuple[float, ...]], dims: int) -> Optional[np.ndarray]:
    if value is None or len(value) != dims:
        return None
    return np.asarray(value, dtype=float)


__all__ = [
    "ForceSimulation",
    "PositionListener",
    "Positions",
    "SimulationHandle",
    "SimulationStatus",
    "SimulationStoppedError",
]
