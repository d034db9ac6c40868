"""Headless layout computation backing the HTTP surface and CLI."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from histonet.config import AppConfig
from histonet.contracts import FilterState, GraphData
from histonet.layout.scheduling import ManualFrameScheduler
from histonet.rendering.capabilities import RenderCapabilities
from histonet.view import GraphView, ViewMode

LOGGER = logging.getLogger(__name__)


class LayoutRequestError(ValueError):
    """Raised when a layout request exceeds the service limits."""


@dataclass(frozen=True)
class NodePlacement:
    """Node payload returned to clients."""

    id: str
    name: str
    type: str
    position: Tuple[float, ...]
    size: float
    opacity: float


@dataclass(frozen=True)
class LinkPlacement:
    id: str
    source: str
    target: str
    type: str
    opacity: float
    dash: Optional[Tuple[float, ...]] = None


@dataclass(frozen=True)
class LayoutResult:
    """Settled layout including summary counts."""

    dimensions: int
    status: str
    ticks: int
    nodes: List[NodePlacement] = field(default_factory=list)
    links: List[LinkPlacement] = field(default_factory=list)
    dropped_links: int = 0

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def link_count(self) -> int:
        return len(self.links)


class LayoutService:
    """Settle a layout for a dataset and filter state without a frame loop."""

    def __init__(self, config: AppConfig, *, capabilities: Optional[RenderCapabilities] = None) -> None:
        self._config = config
        self._capabilities = capabilities or RenderCapabilities.detect(config.rendering)

    def compute(
        self,
        data: GraphData,
        filters: Optional[FilterState] = None,
        *,
        width: Optional[float] = None,
        height: Optional[float] = None,
        dimensions: int = 2,
        max_ticks: Optional[int] = None,
        selected_id: Optional[str] = None,
    ) -> LayoutResult:
        """Run the simulation until it settles or the tick budget runs out.

        Raises:
            LayoutRequestError: If the dataset or tick budget exceeds the
                configured service limits.
        """

        limits = self._config.service
        if len(data.nodes) > limits.max_nodes:
            raise LayoutRequestError(
                f"Graph has {len(data.nodes)} nodes; the limit is {limits.max_nodes}"
            )
        budget = limits.max_ticks if max_ticks is None else max_ticks
        if budget < 0 or budget > limits.max_ticks:
            raise LayoutRequestError(f"max_ticks must lie within [0, {limits.max_ticks}]")
        view = GraphView(
            self._config,
            mode=ViewMode.THREE_D if dimensions == 3 else ViewMode.TWO_D,
            width=width,
            height=height,
            scheduler=ManualFrameScheduler(),
            capabilities=self._capabilities,
            autostart=False,
        )
        try:
            view.load(data, filters)
            if selected_id is not None and selected_id in view.subgraph:
                view.select(selected_id)
            handle = view.handle
            ticks = handle.run(budget) if handle is not None else 0
            status = handle.status.value if handle is not None else "empty"
            positions = view.positions()
            sizes = view.sizes
            styles = view.styles
            nodes = [
                NodePlacement(
                    id=node.node_id,
                    name=node.name,
                    type=node.category.value,
                    position=positions[node.node_id],
                    size=sizes.get(node.node_id, 0.0),
                    opacity=styles.nodes[node.node_id].opacity,
                )
                for node in view.subgraph.nodes
            ]
            links = [
                LinkPlacement(
                    id=visible.link_id,
                    source=visible.source_id,
                    target=visible.target_id,
                    type=visible.link.category.value,
                    opacity=styles.links[visible.link_id].opacity,
                    dash=styles.links[visible.link_id].dash,
                )
                for visible in view.subgraph.links
            ]
            result = LayoutResult(
                dimensions=view.dimensions,
                status=status,
                ticks=ticks,
                nodes=nodes,
                links=links,
                dropped_links=view.model.dropped_links,
            )
        finally:
            view.unmount()
        LOGGER.info(
            "Computed layout (nodes=%d, links=%d, ticks=%d, status=%s)",
            result.node_count,
            result.link_count,
            result.ticks,
            result.status,
        )
        return result


__all__ = ["LayoutRequestError", "LayoutResult", "LayoutService", "LinkPlacement", "NodePlacement"]
