from __future__ import annotations

import json
import math
from pathlib import Path

import pytest

from histonet.config import load_config
from histonet.contracts import FilterState, parse_graph_payload
from histonet.graph.filtering import SubgraphFilter, VisibleSubgraph
from histonet.graph.model import GraphModel
from histonet.layout.continuity import PositionContinuityCache, PositionSnapshot
from histonet.layout.simulation import ForceSimulation
from histonet.layout.state import Viewport

FIXTURE_PATH = Path(__file__).resolve().parents[1] / "fixtures" / "golden" / "sample_network.json"

FLAT = Viewport(800.0, 600.0, 2)
SCENE = Viewport(800.0, 600.0, 3)


@pytest.fixture(scope="module")
def model() -> GraphModel:
    with FIXTURE_PATH.open("r", encoding="utf-8") as handle:
        return GraphModel.from_data(parse_graph_payload(json.load(handle)))


def _subgraph(model: GraphModel, raw_filters: dict | None = None) -> VisibleSubgraph:
    return SubgraphFilter().derive(model, FilterState.model_validate(raw_filters or {}))


def _grid_snapshot(node_ids, *, pins=None) -> PositionSnapshot:
    positions = {node_id: (100.0 + 50.0 * index, 200.0) for index, node_id in enumerate(sorted(node_ids))}
    return PositionSnapshot(
        dimensions=2,
        positions=positions,
        velocities={node_id: (1.0, -1.0) for node_id in positions},
        pins=pins or {},
    )


def test_toggle_round_trip_keeps_positions(model: GraphModel) -> None:
    load_config.cache_clear()
    simulation = ForceSimulation(load_config(), seed=1)
    cache = PositionContinuityCache(FLAT, seed=1)
    full = _subgraph(model)
    handle = simulation.initialize(full)
    handle.run(40)
    before = handle.positions()
    cache.capture(handle)

    reduced = _subgraph(model, {"entityTypes": {"event": False}})
    layout = cache.restore(None, reduced)
    assert set(layout.positions) == reduced.node_ids
    assert layout.placed == ()

    restored = cache.restore(None, full)
    assert restored.positions == before
    assert set(restored.inherited) == full.node_ids


def test_unseen_node_is_placed_near_positioned_neighbour(model: GraphModel) -> None:
    full = _subgraph(model)
    cache = PositionContinuityCache(FLAT, seed=4)
    cache.remember(_grid_snapshot(full.node_ids - {"medici_bank"}))
    layout = cache.restore(None, full)
    assert layout.placed == ("medici_bank",)
    anchor = layout.positions["lorenzo"]
    placed = layout.positions["medici_bank"]
    assert math.dist(anchor, placed) == pytest.approx(30.0)
    assert layout.velocities["lorenzo"] == (1.0, -1.0)
    assert "medici_bank" not in layout.velocities


def test_unseen_nodes_chain_through_placed_neighbours(model: GraphModel) -> None:
    full = _subgraph(model)
    cache = PositionContinuityCache(FLAT, seed=4)
    cache.remember(_grid_snapshot({"lorenzo"}))
    layout = cache.restore(None, full)
    assert set(layout.placed) == full.node_ids - {"lorenzo"}
    for node_id in layout.placed:
        distances = [
            math.dist(layout.positions[node_id], layout.positions[neighbour])
            for neighbour in full.neighbour_ids(node_id)
        ]
        assert any(distance == pytest.approx(30.0) for distance in distances)


def test_isolated_unseen_nodes_scatter_around_center(model: GraphModel) -> None:
    cache = PositionContinuityCache(FLAT, seed=2, spread=100.0)
    layout = cache.restore(None, _subgraph(model))
    assert len(layout.placed) == 6
    for x, y in layout.positions.values():
        assert abs(x - 400.0) <= 100.0
        assert abs(y - 300.0) <= 100.0


def test_restore_is_deterministic(model: GraphModel) -> None:
    full = _subgraph(model)
    cache = PositionContinuityCache(FLAT, seed=9)
    cache.remember(_grid_snapshot({"florence", "lorenzo"}))
    assert cache.restore(None, full) == cache.restore(None, full)


def test_pins_follow_latest_capture(model: GraphModel) -> None:
    full = _subgraph(model)
    cache = PositionContinuityCache(FLAT)
    cache.remember(_grid_snapshot(full.node_ids, pins={"pazzi": (10.0, 20.0)}))
    assert cache.restore(None, full).pins == {"pazzi": (10.0, 20.0)}

    reduced = _subgraph(model, {"entityTypes": {"event": False}})
    assert cache.restore(None, reduced).pins == {}
    assert cache.pins() == {"pazzi": (10.0, 20.0)}

    cache.remember(_grid_snapshot(full.node_ids))
    assert cache.pins() == {}


def test_snapshot_with_other_dimensionality_is_ignored(caplog) -> None:
    cache = PositionContinuityCache(FLAT)
    with caplog.at_level("WARNING"):
        cache.remember(PositionSnapshot(dimensions=3, positions={"a": (1.0, 2.0, 3.0)}))
    assert len(cache) == 0
    assert "Ignoring 3D snapshot" in caplog.text


def test_reprojection_between_view_modes() -> None:
    cache = PositionContinuityCache(FLAT, seed=5)
    cache.remember(
        PositionSnapshot(
            dimensions=2,
            positions={"a": (500.0, 400.0), "b": (400.0, 300.0)},
            velocities={"a": (3.0, 3.0)},
            pins={"b": (400.0, 300.0)},
        )
    )
    cache.reproject(SCENE)
    assert cache.dimensions == 3
    x, y, _ = cache.position("a")
    assert (x, y) == (100.0, 100.0)
    assert cache.pins()["b"][:2] == (0.0, 0.0)

    cache.reproject(FLAT)
    assert cache.position("a") == (500.0, 400.0)
    assert cache.pins() == {"b": (400.0, 300.0)}


def test_reprojected_restore_has_zero_velocities() -> None:
    nodes = GraphModel.from_data(
        parse_graph_payload({"nodes": [{"id": "a", "name": "A", "type": "person"}], "links": []})
    )
    subgraph = SubgraphFilter().derive(nodes, FilterState())
    cache = PositionContinuityCache(FLAT)
    cache.remember(PositionSnapshot(dimensions=2, positions={"a": (1.0, 2.0)}, velocities={"a": (5.0, 5.0)}))
    cache.reproject(SCENE)
    layout = cache.restore(None, subgraph)
    assert layout.dimensions == 3
    assert layout.velocities == {"a": (0.0, 0.0, 0.0)}


def test_reset_forgets_everything() -> None:
    cache = PositionContinuityCache(FLAT)
    cache.remember(PositionSnapshot(dimensions=2, positions={"a": (1.0, 2.0)}, pins={"a": (1.0, 2.0)}))
    assert "a" in cache
    cache.reset()
    assert "a" not in cache
    assert cache.pins() == {}
