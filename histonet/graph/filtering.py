"""Derivation of the visible subgraph from the graph model and filter state."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from typing_extensions import Literal

from histonet.contracts import FilterState
from histonet.graph.model import GraphLink, GraphModel, GraphNode

LOGGER = logging.getLogger(__name__)

LinkPolicy = Literal["all_between_visible", "enabled_relationships"]


@dataclass(frozen=True)
class VisibleLink:
    """Link with endpoints resolved to indices of the visible node order."""

    link: GraphLink
    source_index: int
    target_index: int

    @property
    def link_id(self) -> str:
        return self.link.link_id

    @property
    def source_id(self) -> str:
        return self.link.source_id

    @property
    def target_id(self) -> str:
        return self.link.target_id


@dataclass(frozen=True)
class VisibleSubgraph:
    """Filter-derived node/link subset eligible for layout and rendering."""

    nodes: Tuple[GraphNode, ...]
    links: Tuple[VisibleLink, ...]
    index: Mapping[str, int] = field(default_factory=dict, repr=False, compare=False)
    _incident: Mapping[str, Tuple[int, ...]] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def build(cls, nodes: Sequence[GraphNode], links: Sequence[GraphLink]) -> "VisibleSubgraph":
        """Resolve link endpoints against the node order.

        Links whose endpoint is not among ``nodes`` are excluded so that no
        dangling reference ever leaves this module.
        """

        index = {node.node_id: position for position, node in enumerate(nodes)}
        resolved: List[VisibleLink] = []
        incident: Dict[str, List[int]] = {node.node_id: [] for node in nodes}
        for link in links:
            source_index = index.get(link.source_id)
            target_index = index.get(link.target_id)
            if source_index is None or target_index is None:
                continue
            incident[link.source_id].append(len(resolved))
            if link.target_id != link.source_id:
                incident[link.target_id].append(len(resolved))
            resolved.append(VisibleLink(link, source_index, target_index))
        return cls(
            nodes=tuple(nodes),
            links=tuple(resolved),
            index=index,
            _incident={node_id: tuple(items) for node_id, items in incident.items()},
        )

    @classmethod
    def empty(cls) -> "VisibleSubgraph":
        return cls.build((), ())

    @property
    def node_ids(self) -> FrozenSet[str]:
        return frozenset(self.index)

    @property
    def link_ids(self) -> FrozenSet[str]:
        return frozenset(link.link_id for link in self.links)

    @property
    def is_empty(self) -> bool:
        return not self.nodes

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.index

    def node(self, node_id: str) -> GraphNode:
        return self.nodes[self.index[node_id]]

    def incident_links(self, node_id: str) -> Tuple[VisibleLink, ...]:
        return tuple(self.links[i] for i in self._incident.get(node_id, ()))

    def degree(self, node_id: str) -> int:
        """Number of visible links touching the node (parallel links counted)."""

        return len(self._incident.get(node_id, ()))

    def neighbour_ids(self, node_id: str) -> FrozenSet[str]:
        return frozenset(link.link.other_end(node_id) for link in self.incident_links(node_id))

    def neighbour_count(self, node_id: str) -> int:
        """Number of distinct visible neighbours; cheap stand-in for centrality."""

        return len(self.neighbour_ids(node_id) - {node_id})


class SubgraphFilter:
    """Apply entity-type, time-range and relationship predicates to a model."""

    def __init__(self, *, link_policy: LinkPolicy = "all_between_visible") -> None:
        self._link_policy = link_policy

    @property
    def link_policy(self) -> LinkPolicy:
        return self._link_policy

    def derive(self, model: GraphModel, filters: FilterState) -> VisibleSubgraph:
        """Return the visible subgraph for the supplied filters.

        Nodes pass when their category is enabled and their start year lies
        in the time range (undated nodes always pass). Under the default
        ``all_between_visible`` policy every link between visible nodes is
        kept regardless of relationship filters, which only affect styling.
        The ``enabled_relationships`` policy also drops links whose category
        is disabled.

        Args:
            model: Authoritative graph model.
            filters: Active filter state.

        Returns:
            VisibleSubgraph: Derived view owning no physics state.
        """

        nodes = [node for node in model.nodes if self._node_visible(node, filters)]
        visible_ids = {node.node_id for node in nodes}
        links: List[GraphLink] = []
        for link in model.links:
            if link.source_id not in visible_ids or link.target_id not in visible_ids:
                continue
            if self._link_policy == "enabled_relationships" and not filters.relationship_enabled(
                link.category
            ):
                continue
            links.append(link)
        subgraph = VisibleSubgraph.build(nodes, links)
        if len(nodes) > 1 and not subgraph.links:
            LOGGER.warning(
                "No links between %d visible nodes; check relationship data or filters",
                len(nodes),
            )
        LOGGER.debug(
            "Derived visible subgraph (nodes=%d/%d, links=%d/%d)",
            len(subgraph.nodes),
            len(model.nodes),
            len(subgraph.links),
            len(model.links),
        )
        return subgraph

    @staticmethod
    def _node_visible(node: GraphNode, filters: FilterState) -> bool:
        if not filters.entity_enabled(node.category):
            return False
        return filters.includes_year(node.temporal.start_year)


def identity_changed(previous: Optional[VisibleSubgraph], current: VisibleSubgraph) -> bool:
    """Return whether the node or link identity sets differ."""

    if previous is None:
        return True
    return previous.node_ids != current.node_ids or previous.link_ids != current.link_ids


__all__ = ["LinkPolicy", "SubgraphFilter", "VisibleLink", "VisibleSubgraph", "identity_changed"]
