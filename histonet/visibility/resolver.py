"""Opacity and dash resolution for nodes and links.

Every function here is pure: styles are recomputed from the selection,
highlight set and relationship filters and never touch the simulation.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Mapping, Optional, Tuple

from histonet.config import VisibilityConfig
from histonet.contracts import RelationshipCategory
from histonet.graph.filtering import VisibleSubgraph
from histonet.graph.model import GraphLink

Dash = Optional[Tuple[float, ...]]


class Emphasis(str, Enum):
    """Which precedence rule produced a style."""

    FOCUS = "focus"
    FADED = "faded"
    FILTERED = "filtered"
    NORMAL = "normal"


@dataclass(frozen=True)
class ElementStyle:
    opacity: float
    dash: Dash = None
    emphasis: Emphasis = Emphasis.NORMAL


@dataclass(frozen=True)
class StyleMap:
    """Resolved styles keyed by node id and link id."""

    nodes: Mapping[str, ElementStyle] = field(default_factory=dict)
    links: Mapping[str, ElementStyle] = field(default_factory=dict)

    def node(self, node_id: str) -> Optional[ElementStyle]:
        return self.nodes.get(node_id)

    def link(self, link_id: str) -> Optional[ElementStyle]:
        return self.links.get(link_id)


def resolve_node_style(
    node_id: str,
    selected_id: Optional[str],
    highlighted_ids: AbstractSet[str],
    config: VisibilityConfig,
) -> ElementStyle:
    """Return the style of a node.

    The selected node and highlighted nodes are shown at full opacity; any
    other node is faded while a selection or highlight is active.
    """

    if selected_id is not None and node_id == selected_id:
        return ElementStyle(config.full_opacity, None, Emphasis.FOCUS)
    if highlighted_ids and node_id in highlighted_ids:
        return ElementStyle(config.full_opacity, None, Emphasis.FOCUS)
    if selected_id is not None or highlighted_ids:
        return ElementStyle(config.faded_node_opacity, None, Emphasis.FADED)
    return ElementStyle(config.default_node_opacity, None, Emphasis.NORMAL)


def link_dash(category: RelationshipCategory, enabled: bool, config: VisibilityConfig) -> Dash:
    """Filtered categories use the filtered dash; otherwise the category's own, if any."""

    if not enabled:
        return config.filtered_dash
    return config.category_dashes.get(category)


def resolve_link_style(
    link: GraphLink,
    selected_id: Optional[str],
    highlighted_ids: AbstractSet[str],
    relationship_enabled: Mapping[RelationshipCategory, bool],
    config: VisibilityConfig,
) -> ElementStyle:
    """Return the style of a link.

    Precedence, first match wins: touches the selected node, touches a
    highlighted node, unrelated while a selection or highlight is active,
    category filtered off, default.
    """

    enabled = bool(relationship_enabled.get(link.category, True))
    dash = link_dash(link.category, enabled, config)
    if selected_id is not None and link.touches(selected_id):
        return ElementStyle(config.full_opacity, dash, Emphasis.FOCUS)
    if highlighted_ids and (link.source_id in highlighted_ids or link.target_id in highlighted_ids):
        return ElementStyle(config.full_opacity, dash, Emphasis.FOCUS)
    if selected_id is not None or highlighted_ids:
        return ElementStyle(config.faded_link_opacity, dash, Emphasis.FADED)
    if not enabled:
        return ElementStyle(config.filtered_link_opacity, dash, Emphasis.FILTERED)
    return ElementStyle(config.default_link_opacity, dash, Emphasis.NORMAL)


def resolve_styles(
    subgraph: VisibleSubgraph,
    selected_id: Optional[str],
    highlighted_ids: AbstractSet[str],
    relationship_enabled: Mapping[RelationshipCategory, bool],
    config: VisibilityConfig,
) -> StyleMap:
    """Resolve every visible node and link.

    A selection or highlight referring to nodes outside the subgraph is
    treated as inactive.
    """

    if selected_id is not None and selected_id not in subgraph:
        selected_id = None
    highlighted = frozenset(node_id for node_id in highlighted_ids if node_id in subgraph)
    nodes = {
        node.node_id: resolve_node_style(node.node_id, selected_id, highlighted, config)
        for node in subgraph.nodes
    }
    links = {
        visible.link_id: resolve_link_style(visible.link, selected_id, highlighted, relationship_enabled, config)
        for visible in subgraph.links
    }
    return StyleMap(nodes=nodes, links=links)


__all__ = [
    "ElementStyle",
    "Emphasis",
    "StyleMap",
    "link_dash",
    "resolve_link_style",
    "resolve_node_style",
    "resolve_styles",
]
