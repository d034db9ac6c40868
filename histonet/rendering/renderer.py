"""Render pass turning positions and styles into cached drawables."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import AbstractSet, Any, Dict, List, Mapping, Optional, Tuple

from histonet.config import AppConfig
from histonet.graph.filtering import VisibleSubgraph
from histonet.rendering.cache import CacheStats, RenderObjectCache
from histonet.rendering.drawables import DrawableFactory, RenderKey, StyleInputs, VisualState, factory_for
from histonet.visibility.resolver import ElementStyle, StyleMap

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderFrame:
    """Serialized drawables produced by one render pass."""

    dimensions: int
    nodes: Tuple[Dict[str, Any], ...] = ()
    links: Tuple[Dict[str, Any], ...] = ()
    empty: bool = False
    stats: Optional[CacheStats] = field(default=None, compare=False)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "dimensions": self.dimensions,
            "empty": self.empty,
            "nodes": list(self.nodes),
            "links": list(self.links),
        }


class GraphRenderer:
    """Drive the render object cache for one view."""

    def __init__(
        self,
        config: AppConfig,
        *,
        dimensions: int = 2,
        factory: Optional[DrawableFactory] = None,
    ) -> None:
        self._rendering = config.rendering
        self._dimensions = dimensions
        self._cache = RenderObjectCache(factory or factory_for(dimensions, config.rendering))

    @property
    def cache(self) -> RenderObjectCache:
        return self._cache

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def render(
        self,
        subgraph: VisibleSubgraph,
        positions: Mapping[str, Tuple[float, ...]],
        styles: StyleMap,
        sizes: Mapping[str, float],
        *,
        selected_id: Optional[str] = None,
        highlighted_ids: AbstractSet[str] = frozenset(),
    ) -> RenderFrame:
        """Run one render pass; drawables not used by it are disposed.

        Nodes without a position yet are skipped, as are links with an
        unpositioned endpoint.
        """

        color_mode = self._rendering.color_mode
        quantum = self._rendering.size_quantum
        node_payloads: List[Dict[str, Any]] = []
        link_payloads: List[Dict[str, Any]] = []
        with self._cache.render_pass() as cache:
            for node in subgraph.nodes:
                position = positions.get(node.node_id)
                if position is None:
                    continue
                size = sizes.get(node.node_id, 0.0)
                state = VisualState(
                    selected=node.node_id == selected_id,
                    highlighted=node.node_id in highlighted_ids,
                    color_mode=color_mode,
                    size=VisualState.quantize(size, quantum),
                )
                drawable = cache.get_or_create(
                    RenderKey("node", node.node_id, state),
                    StyleInputs(self._rendering.entity_color(node.category), node.name, state.size),
                )
                drawable.update((position,), styles.node(node.node_id) or _DEFAULT_STYLE)
                node_payloads.append(drawable.to_payload())
            for visible in subgraph.links:
                source = positions.get(visible.source_id)
                target = positions.get(visible.target_id)
                if source is None or target is None:
                    continue
                link = visible.link
                state = VisualState(
                    selected=selected_id is not None and link.touches(selected_id),
                    highlighted=link.source_id in highlighted_ids or link.target_id in highlighted_ids,
                    color_mode=color_mode,
                )
                drawable = cache.get_or_create(
                    RenderKey("link", visible.link_id, state),
                    StyleInputs(self._rendering.relationship_color(link.category)),
                )
                drawable.update((source, target), styles.link(visible.link_id) or _DEFAULT_STYLE)
                link_payloads.append(drawable.to_payload())
        stats = self._cache.stats
        LOGGER.debug(
            "Render pass drew %d nodes and %d links (live=%d)",
            len(node_payloads),
            len(link_payloads),
            stats.live,
        )
        return RenderFrame(
            dimensions=self._dimensions,
            nodes=tuple(node_payloads),
            links=tuple(link_payloads),
            empty=not node_payloads,
            stats=stats,
        )

    def dispose(self) -> int:
        return self._cache.dispose_all()


_DEFAULT_STYLE = ElementStyle(opacity=1.0)


__all__ = ["GraphRenderer", "RenderFrame"]
