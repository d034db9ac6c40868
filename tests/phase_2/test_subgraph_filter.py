from __future__ import annotations

import json
from pathlib import Path

import pytest

from histonet.config import load_config
from histonet.contracts import FilterState, GraphData, NodeSizeAttribute, parse_graph_payload
from histonet.graph.filtering import SubgraphFilter, VisibleSubgraph, identity_changed
from histonet.graph.model import GraphModel
from histonet.graph.sizing import node_size, node_sizes

FIXTURE_PATH = Path(__file__).resolve().parents[1] / "fixtures" / "golden" / "sample_network.json"


@pytest.fixture(scope="module")
def model() -> GraphModel:
    with FIXTURE_PATH.open("r", encoding="utf-8") as handle:
        return GraphModel.from_data(parse_graph_payload(json.load(handle)))


@pytest.fixture(scope="module")
def sizing_profile():
    load_config.cache_clear()
    return load_config().node_sizing.profile(2)


def _derive(model: GraphModel, raw_filters: dict, **kwargs) -> VisibleSubgraph:
    return SubgraphFilter(**kwargs).derive(model, FilterState.model_validate(raw_filters))


def test_default_filters_show_everything(model: GraphModel) -> None:
    subgraph = _derive(model, {})
    assert subgraph.node_ids == frozenset(model.node_ids())
    assert len(subgraph.links) == 6


def test_entity_filter_removes_nodes_and_their_links(model: GraphModel) -> None:
    subgraph = _derive(model, {"entityTypes": {"person": False}})
    assert subgraph.node_ids == {"medici_bank", "pazzi", "florence"}
    assert [(link.source_id, link.target_id) for link in subgraph.links] == [("pazzi", "florence")]


def test_time_range_uses_start_year_and_keeps_undated(model: GraphModel) -> None:
    subgraph = _derive(model, {"timeRange": [1450, 1500]})
    assert subgraph.node_ids == {"machiavelli", "savonarola", "pazzi", "florence"}
    assert len(subgraph.links) == 3
    for link in subgraph.links:
        assert link.target_id == "florence"


def test_relationship_filter_is_non_destructive_by_default(model: GraphModel) -> None:
    subgraph = _derive(model, {"relationshipTypes": {"political": False}})
    assert len(subgraph.links) == 6


def test_enabled_relationships_policy_drops_disabled_links(model: GraphModel) -> None:
    subgraph = _derive(
        model,
        {"relationshipTypes": {"political": False}},
        link_policy="enabled_relationships",
    )
    assert len(subgraph.links) == 4
    assert "rivalry" not in subgraph.link_ids


def test_link_indices_follow_visible_node_order(model: GraphModel) -> None:
    subgraph = _derive(model, {"entityTypes": {"organization": False}})
    for link in subgraph.links:
        assert subgraph.nodes[link.source_index].node_id == link.source_id
        assert subgraph.nodes[link.target_index].node_id == link.target_id


def test_identity_changed(model: GraphModel) -> None:
    everything = _derive(model, {})
    again = _derive(model, {"relationshipTypes": {"social": False}})
    fewer = _derive(model, {"entityTypes": {"event": False}})
    assert identity_changed(None, everything)
    assert not identity_changed(everything, again)
    assert identity_changed(everything, fewer)


def test_degree_and_neighbour_queries(model: GraphModel) -> None:
    subgraph = _derive(model, {})
    assert subgraph.degree("lorenzo") == 3
    assert subgraph.degree("florence") == 3
    assert subgraph.degree("medici_bank") == 1
    assert subgraph.neighbour_ids("lorenzo") == {"medici_bank", "pazzi", "savonarola"}
    assert {link.link_id for link in subgraph.incident_links("savonarola")} == {
        "rivalry",
        "savonarola->florence:cultural",
    }
    assert "pazzi" in subgraph
    assert "ghost" not in subgraph
    assert subgraph.degree("ghost") == 0


def test_neighbour_count_collapses_parallel_links() -> None:
    data = GraphData.model_validate(
        {
            "nodes": [
                {"id": "a", "name": "A", "type": "person"},
                {"id": "b", "name": "B", "type": "person"},
            ],
            "links": [
                {"source": "a", "target": "b", "type": "family"},
                {"source": "b", "target": "a", "type": "social"},
                {"source": "a", "target": "a", "type": "cultural"},
            ],
        }
    )
    subgraph = SubgraphFilter().derive(GraphModel.from_data(data), FilterState())
    assert subgraph.degree("a") == 3
    assert subgraph.neighbour_count("a") == 1


def test_empty_subgraph() -> None:
    subgraph = VisibleSubgraph.empty()
    assert subgraph.is_empty
    assert subgraph.node_ids == frozenset()


def test_isolated_nodes_log_a_warning(model: GraphModel, caplog) -> None:
    with caplog.at_level("WARNING"):
        subgraph = _derive(
            model,
            {"entityTypes": {"location": False, "event": False}},
            link_policy="enabled_relationships",
        )
        assert len(subgraph.links) == 2
        _derive(model, {"entityTypes": {"person": False, "location": False}})
    assert "No links between" in caplog.text


def test_node_sizes_follow_the_attribute(model: GraphModel, sizing_profile) -> None:
    subgraph = _derive(model, {})
    degree_sizes = node_sizes(subgraph, NodeSizeAttribute.DEGREE, sizing_profile)
    assert degree_sizes["lorenzo"] == pytest.approx(6.0 + 3 * 1.2)
    assert degree_sizes["medici_bank"] == pytest.approx(8.0)
    equal_sizes = node_sizes(subgraph, NodeSizeAttribute.EQUAL, sizing_profile)
    assert set(equal_sizes.values()) == {10.0}
    assert node_size(subgraph, "florence", NodeSizeAttribute.NEIGHBOR_COUNT, sizing_profile) == pytest.approx(9.6)


def test_node_size_is_clamped_to_the_profile_maximum(sizing_profile) -> None:
    nodes = [{"id": "hub", "name": "Hub", "type": "location"}]
    nodes += [{"id": f"n{i}", "name": f"N{i}", "type": "person"} for i in range(20)]
    links = [{"source": f"n{i}", "target": "hub", "type": "social"} for i in range(20)]
    model = GraphModel.from_data(GraphData.model_validate({"nodes": nodes, "links": links}))
    subgraph = SubgraphFilter().derive(model, FilterState())
    assert node_size(subgraph, "hub", NodeSizeAttribute.DEGREE, sizing_profile) == sizing_profile.max_size
