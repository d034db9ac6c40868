"""Immutable data contracts exchanged with the data-loading and UI collaborators."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

LOGGER = logging.getLogger(__name__)


class EntityCategory(str, Enum):
    """Fixed enumeration of entity kinds rendered as nodes."""

    PERSON = "person"
    ORGANIZATION = "organization"
    EVENT = "event"
    LOCATION = "location"


class RelationshipCategory(str, Enum):
    """Fixed enumeration of relationship kinds rendered as links."""

    FAMILY = "family"
    PROFESSIONAL = "professional"
    SOCIAL = "social"
    POLITICAL = "political"
    CONFLICT = "conflict"
    CULTURAL = "cultural"


class LayoutMode(str, Enum):
    """Placement force applied on top of the plain force layout."""

    PLAIN = "plain"
    RADIAL = "radial"
    LAYERED = "layered"


class NodeSizeAttribute(str, Enum):
    """Attribute driving node display size."""

    DEGREE = "degree"
    NEIGHBOR_COUNT = "neighborCount"
    EQUAL = "equal"


_LAYOUT_ALIASES = {"force": LayoutMode.PLAIN, "hierarchical": LayoutMode.LAYERED}
_SIZE_ALIASES = {
    "betweenness": NodeSizeAttribute.NEIGHBOR_COUNT,
    "neighbor_count": NodeSizeAttribute.NEIGHBOR_COUNT,
    "neighbourcount": NodeSizeAttribute.NEIGHBOR_COUNT,
    "neighborcount": NodeSizeAttribute.NEIGHBOR_COUNT,
}


class _FrozenBaseModel(BaseModel):
    """Base model enforcing immutability after creation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


def _reference_id(value: object) -> object:
    """Collapse an embedded entity object into its identifier."""

    if isinstance(value, Mapping):
        return value.get("id")
    identifier = getattr(value, "id", None)
    if identifier is not None and not isinstance(value, str):
        return identifier
    return value


class EntityRecord(_FrozenBaseModel):
    """Entity as delivered by the data-loading collaborator."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: EntityCategory
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    description: Optional[str] = None
    location: Optional[str] = None
    lon: Optional[float] = None
    lat: Optional[float] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _blank_dates(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class RelationshipRecord(_FrozenBaseModel):
    """Relationship between two entities; endpoints may arrive embedded."""

    id: Optional[str] = None
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    type: RelationshipCategory
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")
    description: Optional[str] = None
    strength: float = Field(1.0, ge=0.0)

    @field_validator("source", "target", mode="before")
    @classmethod
    def _resolve_reference(cls, value: object) -> object:
        resolved = _reference_id(value)
        if resolved is None:
            raise ValueError("relationship endpoint must reference an entity id")
        return str(resolved)

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("strength", mode="before")
    @classmethod
    def _default_strength(cls, value: object) -> object:
        if value is None:
            return 1.0
        return value

    @field_validator("id", mode="before")
    @classmethod
    def _blank_id(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class GraphData(_FrozenBaseModel):
    """Immutable dataset: ordered entities and relationships."""

    nodes: Tuple[EntityRecord, ...] = Field(default_factory=tuple)
    links: Tuple[RelationshipRecord, ...] = Field(default_factory=tuple)


def _default_entity_flags() -> Dict[EntityCategory, bool]:
    return {category: True for category in EntityCategory}


def _default_relationship_flags() -> Dict[RelationshipCategory, bool]:
    return {category: True for category in RelationshipCategory}


class FilterState(_FrozenBaseModel):
    """Filter and layout options selected in the UI."""

    entity_types: Dict[EntityCategory, bool] = Field(
        default_factory=_default_entity_flags, alias="entityTypes"
    )
    relationship_types: Dict[RelationshipCategory, bool] = Field(
        default_factory=_default_relationship_flags, alias="relationshipTypes"
    )
    time_range: Tuple[int, int] = Field((1400, 2025), alias="timeRange")
    layout_mode: LayoutMode = Field(LayoutMode.PLAIN, alias="layoutMode")
    node_size_attribute: NodeSizeAttribute = Field(
        NodeSizeAttribute.DEGREE, alias="nodeSizeAttribute"
    )

    @field_validator("entity_types", mode="after")
    @classmethod
    def _complete_entity_flags(
        cls, value: Dict[EntityCategory, bool]
    ) -> Dict[EntityCategory, bool]:
        flags = _default_entity_flags()
        flags.update(value)
        return flags

    @field_validator("relationship_types", mode="after")
    @classmethod
    def _complete_relationship_flags(
        cls, value: Dict[RelationshipCategory, bool]
    ) -> Dict[RelationshipCategory, bool]:
        flags = _default_relationship_flags()
        flags.update(value)
        return flags

    @field_validator("layout_mode", mode="before")
    @classmethod
    def _legacy_layout(cls, value: object) -> object:
        if isinstance(value, str):
            lowered = value.strip().lower()
            return _LAYOUT_ALIASES.get(lowered, lowered)
        return value

    @field_validator("node_size_attribute", mode="before")
    @classmethod
    def _legacy_size_attribute(cls, value: object) -> object:
        if isinstance(value, str):
            cleaned = value.strip()
            return _SIZE_ALIASES.get(cleaned.lower(), cleaned)
        return value

    @model_validator(mode="after")
    def _validate_time_range(self) -> "FilterState":
        start, end = self.time_range
        if start > end:
            raise ValueError("timeRange start must not exceed end")
        return self

    def entity_enabled(self, category: EntityCategory) -> bool:
        """Return whether nodes of the category are eligible for display."""

        return bool(self.entity_types.get(category, True))

    def relationship_enabled(self, category: RelationshipCategory) -> bool:
        """Return whether links of the category are shown at full emphasis."""

        return bool(self.relationship_types.get(category, True))

    def includes_year(self, year: Optional[int]) -> bool:
        """Return whether a start year falls inside the active time range.

        Undated elements always pass.
        """

        if year is None:
            return True
        start, end = self.time_range
        return start <= year <= end


def parse_graph_payload(raw: Mapping[str, object]) -> GraphData:
    """Build ``GraphData`` from an untrusted mapping, skipping invalid records.

    Args:
        raw: Mapping with ``nodes`` and ``links`` sequences as produced by the
            data-loading collaborator.

    Returns:
        GraphData: Validated dataset containing every record that parsed.
    """

    entities: List[EntityRecord] = []
    relationships: List[RelationshipRecord] = []
    skipped_nodes = 0
    skipped_links = 0
    for item in _as_sequence(raw.get("nodes")):
        try:
            entities.append(EntityRecord.model_validate(item))
        except ValidationError as exc:
            skipped_nodes += 1
            LOGGER.debug("Skipping invalid entity record: %s", exc)
    for item in _as_sequence(raw.get("links")):
        try:
            relationships.append(RelationshipRecord.model_validate(item))
        except ValidationError as exc:
            skipped_links += 1
            LOGGER.debug("Skipping invalid relationship record: %s", exc)
    if skipped_nodes or skipped_links:
        LOGGER.warning(
            "Dropped invalid graph records (entities=%d, relationships=%d)",
            skipped_nodes,
            skipped_links,
        )
    return GraphData(nodes=tuple(entities), links=tuple(relationships))


def _as_sequence(value: object) -> Sequence[object]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return value
    if value is not None:
        LOGGER.warning("Expected a sequence of graph records, got %s", type(value))
    return ()


__all__ = [
    "EntityCategory",
    "RelationshipCategory",
    "LayoutMode",
    "NodeSizeAttribute",
    "EntityRecord",
    "RelationshipRecord",
    "GraphData",
    "FilterState",
    "parse_graph_payload",
]
