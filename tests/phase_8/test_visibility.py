from __future__ import annotations

import json
from pathlib import Path

import pytest

from histonet.config import VisibilityConfig, load_config
from histonet.contracts import FilterState, RelationshipCategory, parse_graph_payload
from histonet.graph.filtering import SubgraphFilter, VisibleSubgraph
from histonet.graph.model import GraphModel
from histonet.visibility.resolver import Emphasis, link_dash, resolve_styles

FIXTURE_PATH = Path(__file__).resolve().parents[1] / "fixtures" / "golden" / "sample_network.json"


@pytest.fixture(scope="module")
def visibility() -> VisibilityConfig:
    load_config.cache_clear()
    return load_config().visibility


@pytest.fixture(scope="module")
def subgraph() -> VisibleSubgraph:
    with FIXTURE_PATH.open("r", encoding="utf-8") as handle:
        model = GraphModel.from_data(parse_graph_payload(json.load(handle)))
    return SubgraphFilter().derive(model, FilterState())


def _flags(**disabled: bool):
    return FilterState.model_validate({"relationshipTypes": disabled}).relationship_types


def test_defaults_without_selection(subgraph: VisibleSubgraph, visibility: VisibilityConfig) -> None:
    styles = resolve_styles(subgraph, None, frozenset(), _flags(), visibility)
    assert {style.opacity for style in styles.nodes.values()} == {0.9}
    social = styles.link("machiavelli->florence:social")
    assert social.opacity == pytest.approx(0.7)
    assert social.dash is None
    assert social.emphasis is Emphasis.NORMAL
    assert styles.link("lorenzo->pazzi:conflict").dash == (5.0, 5.0)


def test_selection_focuses_node_and_incident_links(subgraph: VisibleSubgraph, visibility: VisibilityConfig) -> None:
    styles = resolve_styles(subgraph, "lorenzo", frozenset(), _flags(), visibility)
    assert styles.node("lorenzo").opacity == 1.0
    for node_id in subgraph.node_ids - {"lorenzo"}:
        assert styles.node(node_id).opacity == pytest.approx(0.2)
        assert styles.node(node_id).emphasis is Emphasis.FADED
    incident = {link.link_id for link in subgraph.incident_links("lorenzo")}
    assert len(incident) == 3
    for link_id, style in styles.links.items():
        if link_id in incident:
            assert style.opacity == 1.0
        else:
            assert style.opacity == pytest.approx(0.1)


def test_highlight_focuses_like_selection(subgraph: VisibleSubgraph, visibility: VisibilityConfig) -> None:
    styles = resolve_styles(subgraph, None, {"florence", "medici_bank"}, _flags(), visibility)
    assert styles.node("florence").emphasis is Emphasis.FOCUS
    assert styles.node("medici_bank").opacity == 1.0
    assert styles.node("lorenzo").opacity == pytest.approx(0.2)
    assert styles.link("lorenzo->medici_bank:professional").opacity == 1.0
    assert styles.link("rivalry").opacity == pytest.approx(0.1)


def test_filtered_relationships_fade_and_dash(subgraph: VisibleSubgraph, visibility: VisibilityConfig) -> None:
    styles = resolve_styles(subgraph, None, frozenset(), _flags(political=False, conflict=False), visibility)
    rivalry = styles.link("rivalry")
    assert rivalry.opacity == pytest.approx(0.3)
    assert rivalry.dash == (2.0, 2.0)
    assert rivalry.emphasis is Emphasis.FILTERED
    assert styles.link("lorenzo->pazzi:conflict").dash == (2.0, 2.0)
    assert styles.link("machiavelli->florence:social").opacity == pytest.approx(0.7)


def test_selection_outranks_relationship_filter(subgraph: VisibleSubgraph, visibility: VisibilityConfig) -> None:
    styles = resolve_styles(subgraph, "lorenzo", frozenset(), _flags(political=False), visibility)
    rivalry = styles.link("rivalry")
    assert rivalry.opacity == 1.0
    assert rivalry.dash == (2.0, 2.0)
    assert styles.link("pazzi->florence:political").opacity == pytest.approx(0.1)


def test_selection_outside_subgraph_is_inactive(subgraph: VisibleSubgraph, visibility: VisibilityConfig) -> None:
    styles = resolve_styles(subgraph, "ghost", {"phantom"}, _flags(), visibility)
    assert {style.opacity for style in styles.nodes.values()} == {0.9}
    assert all(style.emphasis is not Emphasis.FADED for style in styles.links.values())


def test_link_dash_rules(visibility: VisibilityConfig) -> None:
    assert link_dash(RelationshipCategory.CONFLICT, True, visibility) == (5.0, 5.0)
    assert link_dash(RelationshipCategory.FAMILY, True, visibility) is None
    assert link_dash(RelationshipCategory.FAMILY, False, visibility) == (2.0, 2.0)
