"""Graph view composing filtering, simulation, continuity, styling and rendering."""
from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from typing import Callable, Dict, FrozenSet, Iterable, List, Optional

from histonet.config import AppConfig, load_config
from histonet.contracts import FilterState, GraphData
from histonet.graph.filtering import SubgraphFilter, VisibleSubgraph, identity_changed
from histonet.graph.model import GraphModel
from histonet.graph.sizing import node_sizes
from histonet.interaction.controller import InteractionController, InteractionEvent, SelectionChanged
from histonet.layout.continuity import PositionContinuityCache
from histonet.layout.scheduling import FrameScheduler, ManualFrameScheduler
from histonet.layout.simulation import ForceSimulation, Positions, SimulationHandle, SimulationStatus
from histonet.layout.state import Viewport
from histonet.rendering.capabilities import RenderCapabilities
from histonet.rendering.renderer import GraphRenderer, RenderFrame
from histonet.visibility.resolver import StyleMap, resolve_styles

LOGGER = logging.getLogger(__name__)


class ViewMode(str, Enum):
    TWO_D = "2d"
    THREE_D = "3d"

    @property
    def dimensions(self) -> int:
        return 3 if self is ViewMode.THREE_D else 2


class GraphView:
    """Owning view of one dataset.

    Structural filter changes (node or link identity) re-initialize the
    simulation from the continuity cache; every other change restyles in
    place.
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        *,
        mode: ViewMode = ViewMode.TWO_D,
        width: Optional[float] = None,
        height: Optional[float] = None,
        scheduler: Optional[FrameScheduler] = None,
        capabilities: Optional[RenderCapabilities] = None,
        seed: Optional[int] = None,
        autostart: bool = True,
    ) -> None:
        self._config = config or load_config()
        self._capabilities = capabilities or RenderCapabilities.detect(self._config.rendering)
        self._scheduler: FrameScheduler = scheduler if scheduler is not None else ManualFrameScheduler()
        self._seed = self._config.engine.random_seed if seed is None else seed
        self._autostart = autostart
        self._width = float(width or self._config.service.default_width)
        self._height = float(height or self._config.service.default_height)
        dimensions = self._capabilities.resolve_dimensions(mode.dimensions)
        self._mode = ViewMode.THREE_D if dimensions == 3 else ViewMode.TWO_D
        self._filter = SubgraphFilter(link_policy=self._config.filtering.link_policy)
        self._model = GraphModel.empty()
        start, end = self._config.filtering.default_time_range
        self._filters = FilterState(timeRange=(start, end))
        self._subgraph = VisibleSubgraph.empty()
        self._sizes: Dict[str, float] = {}
        self._styles = StyleMap()
        self._highlighted: FrozenSet[str] = frozenset()
        self._handle: Optional[SimulationHandle] = None
        self._unsubscribe_handle: Optional[Callable[[], None]] = None
        self._position_listeners: List[Callable[[Positions], None]] = []
        self._unmounted = False
        viewport = self._viewport(dimensions)
        self._simulation = ForceSimulation(
            self._config, dimensions=dimensions, viewport=viewport, scheduler=self._scheduler, seed=self._seed
        )
        self._continuity = PositionContinuityCache(
            viewport, seed=self._seed, spread=self._simulation.profile.initial_spread
        )
        self._renderer = GraphRenderer(self._config, dimensions=dimensions)
        self._controller = InteractionController(self._config.interaction)
        self._controller.subscribe(self._on_interaction)

    @property
    def mode(self) -> ViewMode:
        return self._mode

    @property
    def dimensions(self) -> int:
        return self._mode.dimensions

    @property
    def model(self) -> GraphModel:
        return self._model

    @property
    def filters(self) -> FilterState:
        return self._filters

    @property
    def subgraph(self) -> VisibleSubgraph:
        return self._subgraph

    @property
    def handle(self) -> Optional[SimulationHandle]:
        return self._handle

    @property
    def controller(self) -> InteractionController:
        return self._controller

    @property
    def continuity(self) -> PositionContinuityCache:
        return self._continuity

    @property
    def renderer(self) -> GraphRenderer:
        return self._renderer

    @property
    def styles(self) -> StyleMap:
        return self._styles

    @property
    def sizes(self) -> Dict[str, float]:
        return dict(self._sizes)

    @property
    def highlighted_ids(self) -> FrozenSet[str]:
        return self._highlighted

    def load(self, data: GraphData, filters: Optional[FilterState] = None) -> None:
        """Swap in a new dataset and lay it out from scratch."""

        self._ensure_mounted()
        self._stop_handle()
        self._continuity.reset()
        self._controller.reset()
        self._highlighted = frozenset()
        self._model = GraphModel.from_data(data)
        if filters is not None:
            self._filters = filters
        LOGGER.info(
            "Loaded dataset (nodes=%d, links=%d, dropped_links=%d)",
            len(self._model.nodes),
            len(self._model.links),
            self._model.dropped_links,
        )
        self._rebuild(self._filter.derive(self._model, self._filters))

    def apply_filters(self, filters: FilterState) -> None:
        """Apply new filter state, re-laying out only on identity change."""

        self._ensure_mounted()
        previous = self._filters
        self._filters = filters
        subgraph = self._filter.derive(self._model, filters)
        if identity_changed(self._subgraph, subgraph):
            self._rebuild(subgraph)
            return
        self._subgraph = subgraph
        handle = self._live_handle()
        if filters.node_size_attribute != previous.node_size_attribute:
            self._sizes = self._compute_sizes(subgraph)
            if handle is not None:
                handle.set_radii(self._sizes)
        if handle is not None:
            if filters.layout_mode != previous.layout_mode:
                handle.set_placement(filters.layout_mode)
            elif filters != previous:
                handle.reheat(self._config.cooling.filter_reheat_alpha)
        self._restyle()

    def select(self, node_id: Optional[str]) -> None:
        self._ensure_mounted()
        self._controller.select(node_id)

    def highlight(self, node_ids: Iterable[str]) -> None:
        self._ensure_mounted()
        self._highlighted = frozenset(node_ids)
        self._restyle()

    def set_mode(self, mode: ViewMode) -> None:
        """Switch between 2D and 3D, carrying positions across.

        Raises:
            RenderBackendUnavailableError: If 3D is requested without a 3D
                backend; nothing is torn down in that case.
        """

        self._ensure_mounted()
        if mode == self._mode:
            return
        if mode == ViewMode.THREE_D:
            self._capabilities.require_3d()
        handle = self._live_handle()
        if handle is not None:
            self._continuity.capture(handle)
        self._stop_handle()
        self._renderer.dispose()
        self._mode = mode
        viewport = self._viewport(mode.dimensions)
        self._continuity.reproject(viewport)
        self._simulation = ForceSimulation(
            self._config,
            dimensions=mode.dimensions,
            viewport=viewport,
            scheduler=self._scheduler,
            seed=self._seed,
        )
        self._renderer = GraphRenderer(self._config, dimensions=mode.dimensions)
        LOGGER.info("View mode switched to %s", mode.value)
        self._rebuild(self._subgraph, capture=False)

    def resize(self, width: float, height: float) -> None:
        self._ensure_mounted()
        self._width = float(width)
        self._height = float(height)
        self._simulation.set_viewport(self._viewport(self.dimensions))

    def on_positions(self, listener: Callable[[Positions], None]) -> Callable[[], None]:
        """Subscribe to per-tick positions across simulation re-initializations."""

        self._position_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._position_listeners:
                self._position_listeners.remove(listener)

        return _unsubscribe

    def positions(self) -> Positions:
        handle = self._live_handle()
        return handle.positions() if handle is not None else {}

    def render(self) -> RenderFrame:
        """Run a render pass over the current subgraph."""

        self._ensure_mounted()
        return self._renderer.render(
            self._subgraph,
            self.positions(),
            self._styles,
            self._sizes,
            selected_id=self._controller.selected_id,
            highlighted_ids=self._highlighted,
        )

    def unmount(self) -> None:
        """Stop the simulation and dispose every drawable. Idempotent."""

        if self._unmounted:
            return
        self._stop_handle()
        disposed = self._renderer.dispose()
        self._position_listeners.clear()
        self._unmounted = True
        LOGGER.info("View unmounted (disposed=%d)", disposed)

    def _rebuild(self, subgraph: VisibleSubgraph, *, capture: bool = True) -> None:
        snapshot = None
        handle = self._live_handle()
        if capture and handle is not None:
            snapshot = handle.capture()
        prior = self._continuity.restore(snapshot, subgraph)
        held = self._controller.pinned_ids | {self._controller.dragging_id}
        prior = replace(prior, pins={k: v for k, v in prior.pins.items() if k in held})
        self._controller.adopt_pins(prior.pins)
        self._subgraph = subgraph
        self._sizes = self._compute_sizes(subgraph)
        self._detach_handle()
        handle = self._simulation.initialize(
            subgraph, prior, radii=self._sizes, placement=self._filters.layout_mode
        )
        self._handle = handle
        self._unsubscribe_handle = handle.subscribe(self._on_tick)
        self._controller.attach(handle)
        if self._autostart:
            handle.start()
        self._restyle()

    def _compute_sizes(self, subgraph: VisibleSubgraph) -> Dict[str, float]:
        profile = self._config.node_sizing.profile(self.dimensions)
        return node_sizes(subgraph, self._filters.node_size_attribute, profile)

    def _restyle(self) -> None:
        self._styles = resolve_styles(
            self._subgraph,
            self._controller.selected_id,
            self._highlighted,
            self._filters.relationship_types,
            self._config.visibility,
        )

    def _on_interaction(self, event: InteractionEvent) -> None:
        if isinstance(event, SelectionChanged):
            self._restyle()

    def _on_tick(self, positions: Positions) -> None:
        for listener in list(self._position_listeners):
            listener(positions)

    def _live_handle(self) -> Optional[SimulationHandle]:
        handle = self._handle
        if handle is None or handle.status == SimulationStatus.STOPPED:
            return None
        return handle

    def _detach_handle(self) -> None:
        if self._unsubscribe_handle is not None:
            self._unsubscribe_handle()
            self._unsubscribe_handle = None

    def _stop_handle(self) -> None:
        self._detach_handle()
        if self._handle is not None:
            self._handle.stop()
        self._handle = None

    def _viewport(self, dimensions: int) -> Viewport:
        profile = self._config.simulation.profile(dimensions)
        return Viewport(
            width=self._width,
            height=self._height,
            dimensions=dimensions,
            half_extent=profile.half_extent,
        )

    def _ensure_mounted(self) -> None:
        if self._unmounted:
            raise RuntimeError("GraphView has been unmounted")


__all__ = ["GraphView", "ViewMode"]
