"""Graph model, subgraph derivation and node sizing."""

from histonet.graph.filtering import LinkPolicy, SubgraphFilter, VisibleLink, VisibleSubgraph, identity_changed
from histonet.graph.model import GraphLink, GraphModel, GraphNode, TemporalRange, parse_year
from histonet.graph.sizing import node_size, node_sizes

__all__ = [
    "GraphLink",
    "GraphModel",
    "GraphNode",
    "LinkPolicy",
    "SubgraphFilter",
    "TemporalRange",
    "VisibleLink",
    "VisibleSubgraph",
    "identity_changed",
    "node_size",
    "node_sizes",
    "parse_year",
]
