"""Normalized node/link structure built from raw entity and relationship records."""
from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from histonet.contracts import (
    EntityCategory,
    EntityRecord,
    GraphData,
    RelationshipCategory,
    RelationshipRecord,
)

LOGGER = logging.getLogger(__name__)

_YEAR_PATTERN = re.compile(r"^\s*(-?\d{1,4})(?!\d)")


def parse_year(value: Optional[str]) -> Optional[int]:
    """Return the leading year of an ISO-like date string.

    ``"1512-03-04"``, ``"1512"`` and ``"1512/3"`` all map to ``1512``. Values
    without a leading year yield ``None``.
    """

    if not value:
        return None
    match = _YEAR_PATTERN.match(value)
    if match is None:
        return None
    return int(match.group(1))


@dataclass(frozen=True)
class TemporalRange:
    """Inclusive year range; either bound may be open."""

    start_year: Optional[int] = None
    end_year: Optional[int] = None

    @classmethod
    def from_dates(cls, start: Optional[str], end: Optional[str]) -> "TemporalRange":
        return cls(start_year=parse_year(start), end_year=parse_year(end))

    @property
    def is_open(self) -> bool:
        return self.start_year is None and self.end_year is None


@dataclass(frozen=True)
class GraphNode:
    """Entity node with stable identity.

    Position, velocity and pins are owned by the simulation state, not by
    the node.
    """

    node_id: str
    name: str
    category: EntityCategory
    temporal: TemporalRange = field(default_factory=TemporalRange)
    description: Optional[str] = None
    location: Optional[str] = None
    coordinates: Optional[Tuple[float, float]] = None


@dataclass(frozen=True)
class GraphLink:
    """Typed relationship between two node identities."""

    link_id: str
    source_id: str
    target_id: str
    category: RelationshipCategory
    weight: float = 1.0
    temporal: TemporalRange = field(default_factory=TemporalRange)
    description: Optional[str] = None

    def touches(self, node_id: str) -> bool:
        return self.source_id == node_id or self.target_id == node_id

    def other_end(self, node_id: str) -> str:
        return self.target_id if self.source_id == node_id else self.source_id


@dataclass(frozen=True)
class GraphModel:
    """Authoritative dataset with links referencing known nodes only."""

    nodes: Tuple[GraphNode, ...]
    links: Tuple[GraphLink, ...]
    dropped_links: int = 0
    duplicate_nodes: int = 0
    _node_index: Mapping[str, GraphNode] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def empty(cls) -> "GraphModel":
        return cls(nodes=(), links=())

    @classmethod
    def from_data(cls, data: GraphData) -> "GraphModel":
        """Normalize a dataset into a graph model.

        Duplicate entity ids keep their first record. Relationships whose
        endpoint does not exist are dropped and counted; they are never
        surfaced as errors because upstream data is untrusted.

        Args:
            data: Immutable dataset delivered by the data-loading collaborator.

        Returns:
            GraphModel: Model with stable node and link identities.
        """

        node_index: Dict[str, GraphNode] = {}
        ordered_nodes: List[GraphNode] = []
        duplicates = 0
        for record in data.nodes:
            if record.id in node_index:
                duplicates += 1
                continue
            node = _node_from_record(record)
            node_index[node.node_id] = node
            ordered_nodes.append(node)

        links: List[GraphLink] = []
        dropped = 0
        seen_ids: Counter[str] = Counter()
        for record in data.links:
            if record.source not in node_index or record.target not in node_index:
                dropped += 1
                LOGGER.debug(
                    "Dropping relationship %s with unknown endpoint (%s -> %s)",
                    record.id,
                    record.source,
                    record.target,
                )
                continue
            link_id = _link_identity(record, seen_ids)
            links.append(_link_from_record(record, link_id))

        if duplicates:
            LOGGER.warning("Ignored %d duplicate entity records", duplicates)
        if dropped:
            LOGGER.warning("Dropped %d relationships with malformed references", dropped)
        LOGGER.info("Graph model built (nodes=%d, links=%d)", len(ordered_nodes), len(links))
        return cls(
            nodes=tuple(ordered_nodes),
            links=tuple(links),
            dropped_links=dropped,
            duplicate_nodes=duplicates,
            _node_index=node_index,
        )

    def node(self, node_id: str) -> GraphNode:
        return self._node_index[node_id]

    def has_node(self, node_id: str) -> bool:
        return node_id in self._node_index

    def node_ids(self) -> Iterable[str]:
        return (node.node_id for node in self.nodes)

    @property
    def is_empty(self) -> bool:
        return not self.nodes


def _node_from_record(record: EntityRecord) -> GraphNode:
    coordinates: Optional[Tuple[float, float]] = None
    if record.lon is not None and record.lat is not None:
        coordinates = (float(record.lon), float(record.lat))
    return GraphNode(
        node_id=record.id,
        name=record.name.strip() or record.id,
        category=record.type,
        temporal=TemporalRange.from_dates(record.start_date, record.end_date),
        description=record.description,
        location=record.location,
        coordinates=coordinates,
    )


def _link_identity(record: RelationshipRecord, seen: Counter[str]) -> str:
    base = record.id or f"{record.source}->{record.target}:{record.type.value}"
    seen[base] += 1
    if seen[base] == 1:
        return base
    return f"{base}#{seen[base] - 1}"


def _link_from_record(record: RelationshipRecord, link_id: str) -> GraphLink:
    return GraphLink(
        link_id=link_id,
        source_id=record.source,
        target_id=record.target,
        category=record.type,
        weight=float(record.strength),
        temporal=TemporalRange.from_dates(record.start_date, record.end_date),
        description=record.description,
    )


__all__ = [
    "GraphLink",
    "GraphModel",
    "GraphNode",
    "TemporalRange",
    "parse_year",
]
