from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from histonet.contracts import (
    EntityCategory,
    EntityRecord,
    FilterState,
    GraphData,
    LayoutMode,
    NodeSizeAttribute,
    RelationshipCategory,
    RelationshipRecord,
    parse_graph_payload,
)

FIXTURE_PATH = Path(__file__).resolve().parents[1] / "fixtures" / "golden" / "sample_network.json"


@pytest.fixture()
def sample_payload() -> dict:
    with FIXTURE_PATH.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def test_entity_record_normalises_type_and_blank_dates() -> None:
    record = EntityRecord(id="e1", name="Uffizi", type=" Location ", startDate="  ")
    assert record.type is EntityCategory.LOCATION
    assert record.start_date is None


def test_relationship_endpoints_accept_embedded_entities() -> None:
    record = RelationshipRecord.model_validate(
        {"source": {"id": "a", "name": "A"}, "target": "b", "type": "Family", "strength": None}
    )
    assert record.source == "a"
    assert record.target == "b"
    assert record.type is RelationshipCategory.FAMILY
    assert record.strength == 1.0


def test_relationship_requires_resolvable_endpoint() -> None:
    with pytest.raises(ValidationError):
        RelationshipRecord.model_validate({"source": {"name": "anonymous"}, "target": "b", "type": "social"})


def test_negative_strength_is_rejected() -> None:
    with pytest.raises(ValidationError):
        RelationshipRecord(source="a", target="b", type="social", strength=-0.5)


def test_contracts_are_frozen() -> None:
    record = EntityRecord(id="e1", name="Uffizi", type="location")
    with pytest.raises(ValidationError):
        record.name = "Pitti"


def test_filter_state_defaults_enable_every_category() -> None:
    filters = FilterState()
    assert all(filters.entity_enabled(category) for category in EntityCategory)
    assert all(filters.relationship_enabled(category) for category in RelationshipCategory)
    assert filters.layout_mode is LayoutMode.PLAIN
    assert filters.node_size_attribute is NodeSizeAttribute.DEGREE


def test_filter_state_fills_missing_category_flags() -> None:
    filters = FilterState.model_validate({"entityTypes": {"person": False}})
    assert filters.entity_enabled(EntityCategory.PERSON) is False
    assert filters.entity_enabled(EntityCategory.EVENT) is True
    assert set(filters.entity_types) == set(EntityCategory)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("force", LayoutMode.PLAIN), ("hierarchical", LayoutMode.LAYERED), ("Radial", LayoutMode.RADIAL)],
)
def test_filter_state_accepts_legacy_layout_names(raw: str, expected: LayoutMode) -> None:
    assert FilterState.model_validate({"layoutMode": raw}).layout_mode is expected


def test_filter_state_maps_betweenness_to_neighbour_count() -> None:
    filters = FilterState.model_validate({"nodeSizeAttribute": "betweenness"})
    assert filters.node_size_attribute is NodeSizeAttribute.NEIGHBOR_COUNT


def test_filter_state_rejects_reversed_time_range() -> None:
    with pytest.raises(ValidationError):
        FilterState.model_validate({"timeRange": [1600, 1500]})


def test_includes_year_passes_undated_elements() -> None:
    filters = FilterState.model_validate({"timeRange": [1450, 1500]})
    assert filters.includes_year(None)
    assert filters.includes_year(1450)
    assert not filters.includes_year(1449)


def test_parse_graph_payload_reads_fixture(sample_payload: dict) -> None:
    data = parse_graph_payload(sample_payload)
    assert isinstance(data, GraphData)
    assert len(data.nodes) == 6
    assert len(data.links) == 6
    assert data.links[3].source == "pazzi"


def test_parse_graph_payload_skips_invalid_records(caplog) -> None:
    raw = {
        "nodes": [
            {"id": "a", "name": "A", "type": "person"},
            {"id": "b", "type": "person"},
            {"id": "c", "name": "C", "type": "dragon"},
        ],
        "links": [
            {"source": "a", "target": "a", "type": "family"},
            {"source": "a", "target": "c", "type": "rivalry"},
        ],
    }
    with caplog.at_level("WARNING"):
        data = parse_graph_payload(raw)
    assert [node.id for node in data.nodes] == ["a"]
    assert len(data.links) == 1
    assert "Dropped invalid graph records" in caplog.text


def test_parse_graph_payload_tolerates_missing_sections() -> None:
    data = parse_graph_payload({"nodes": None})
    assert data.nodes == ()
    assert data.links == ()
