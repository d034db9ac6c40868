"""Node display sizes from cheap connectivity approximations."""
from __future__ import annotations

from typing import Dict

from histonet.config import SizingProfileConfig
from histonet.contracts import NodeSizeAttribute
from histonet.graph.filtering import VisibleSubgraph


def node_size(
    subgraph: VisibleSubgraph,
    node_id: str,
    attribute: NodeSizeAttribute,
    profile: SizingProfileConfig,
) -> float:
    """Return the display size of a node.

    ``degree`` counts incident links, ``neighborCount`` counts distinct
    neighbours; both are mapped linearly and clamped to the profile bounds.
    """

    if attribute == NodeSizeAttribute.EQUAL:
        return profile.equal_size
    if attribute == NodeSizeAttribute.DEGREE:
        connections = subgraph.degree(node_id)
    else:
        connections = subgraph.neighbour_count(node_id)
    raw = profile.base_size + connections * profile.per_connection
    return max(profile.min_size, min(profile.max_size, raw))


def node_sizes(
    subgraph: VisibleSubgraph,
    attribute: NodeSizeAttribute,
    profile: SizingProfileConfig,
) -> Dict[str, float]:
    return {node.node_id: node_size(subgraph, node.node_id, attribute, profile) for node in subgraph.nodes}


__all__ = ["node_size", "node_sizes"]
