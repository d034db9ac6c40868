from __future__ import annotations

import json
from pathlib import Path

import pytest

from histonet.config import AppConfig, load_config
from histonet.contracts import FilterState, parse_graph_payload
from histonet.graph.filtering import SubgraphFilter, VisibleSubgraph
from histonet.graph.model import GraphModel
from histonet.rendering.cache import DisposalOrderError, RenderObjectCache
from histonet.rendering.capabilities import RenderBackendUnavailableError, RenderCapabilities
from histonet.rendering.drawables import (
    FlatDrawableFactory,
    RenderKey,
    SceneDrawableFactory,
    StyleInputs,
    VisualState,
    factory_for,
)
from histonet.rendering.renderer import GraphRenderer
from histonet.visibility.resolver import ElementStyle, StyleMap, resolve_styles

FIXTURE_PATH = Path(__file__).resolve().parents[1] / "fixtures" / "golden" / "sample_network.json"


@pytest.fixture(scope="module")
def config() -> AppConfig:
    load_config.cache_clear()
    return load_config()


@pytest.fixture(scope="module")
def subgraph() -> VisibleSubgraph:
    with FIXTURE_PATH.open("r", encoding="utf-8") as handle:
        model = GraphModel.from_data(parse_graph_payload(json.load(handle)))
    return SubgraphFilter().derive(model, FilterState())


def _cache(config: AppConfig) -> RenderObjectCache:
    return RenderObjectCache(FlatDrawableFactory(config.rendering))


def _key(element_id: str, **state) -> RenderKey:
    return RenderKey("node", element_id, VisualState(**state))


def _inputs() -> StyleInputs:
    return StyleInputs("#000000", "label", 10.0)


def _positions(subgraph: VisibleSubgraph):
    return {node.node_id: (100.0 + 40.0 * index, 200.0) for index, node in enumerate(subgraph.nodes)}


def test_get_or_create_memoizes_by_key(config: AppConfig) -> None:
    cache = _cache(config)
    first = cache.get_or_create(_key("a"), _inputs())
    assert cache.get_or_create(_key("a"), _inputs()) is first
    selected = cache.get_or_create(_key("a", selected=True), _inputs())
    assert selected is not first
    assert cache.stats.created == 2
    assert len(cache) == 2


def test_render_pass_sweeps_unused_entries(config: AppConfig) -> None:
    cache = _cache(config)
    stale = cache.get_or_create(_key("a"), _inputs())
    with cache.render_pass():
        kept = cache.get_or_create(_key("b"), _inputs())
    assert stale.disposed
    assert stale.geometry.disposed and stale.material.disposed and stale.label.disposed
    assert not kept.disposed
    assert cache.keys() == {_key("b")}
    assert cache.stats.disposed == 1
    assert not cache.in_pass


def test_sweep_refuses_to_dispose_acquired_drawables(config: AppConfig) -> None:
    cache = _cache(config)
    with pytest.raises(DisposalOrderError):
        with cache.render_pass():
            drawable = cache.get_or_create(_key("a"), _inputs())
            cache.sweep(())
    assert not drawable.disposed


def test_failed_pass_does_not_sweep(config: AppConfig) -> None:
    cache = _cache(config)
    previous = cache.get_or_create(_key("a"), _inputs())
    with pytest.raises(ValueError):
        with cache.render_pass():
            cache.get_or_create(_key("b"), _inputs())
            raise ValueError("boom")
    assert not previous.disposed
    assert len(cache) == 2
    assert not cache.in_pass


def test_nested_pass_and_dispose_all_during_pass_fail(config: AppConfig) -> None:
    cache = _cache(config)
    with cache.render_pass():
        with pytest.raises(DisposalOrderError):
            with cache.render_pass():
                pass
        with pytest.raises(DisposalOrderError):
            cache.dispose_all()


def test_dispose_all_releases_everything_once(config: AppConfig) -> None:
    cache = _cache(config)
    drawables = [cache.get_or_create(_key(name), _inputs()) for name in "abc"]
    assert cache.dispose_all() == 3
    assert all(drawable.disposed for drawable in drawables)
    assert cache.stats.live == 0
    with pytest.raises(RuntimeError):
        drawables[0].geometry.dispose()
    with pytest.raises(RuntimeError):
        drawables[0].update([(0.0, 0.0)], ElementStyle(1.0))


def test_factories_differ_by_dimensionality(config: AppConfig) -> None:
    flat = factory_for(2, config.rendering)
    scene = factory_for(3, config.rendering)
    assert isinstance(flat, FlatDrawableFactory)
    assert isinstance(scene, SceneDrawableFactory)
    node = scene.create(_key("a"), _inputs())
    assert node.geometry.shape == "sphere"
    assert node.label.sprite
    link = flat.create(RenderKey("link", "l", VisualState(selected=True)), StyleInputs("#111111"))
    assert link.geometry.shape == "path"
    assert link.geometry.size == 2.0
    highlighted = flat.create(_key("b", highlighted=True), _inputs())
    assert highlighted.material.color == config.rendering.highlight_color


def test_size_quantization() -> None:
    assert VisualState.quantize(9.6, 0.5) == pytest.approx(9.5)
    assert VisualState.quantize(9.8, 0.5) == pytest.approx(10.0)


def test_renderer_draws_positioned_elements(config: AppConfig, subgraph: VisibleSubgraph) -> None:
    renderer = GraphRenderer(config)
    styles = resolve_styles(subgraph, None, frozenset(), {}, config.visibility)
    frame = renderer.render(subgraph, _positions(subgraph), styles, {})
    assert not frame.empty
    assert len(frame.nodes) == 6
    assert len(frame.links) == 6
    assert frame.nodes[0]["position"] == [100.0, 200.0]
    assert frame.nodes[0]["opacity"] == pytest.approx(0.9)
    conflict = [link for link in frame.links if link["id"] == "lorenzo->pazzi:conflict"][0]
    assert conflict["dash"] == [5.0, 5.0]
    assert frame.to_payload()["dimensions"] == 2


def test_renderer_skips_unpositioned_nodes_and_their_links(config: AppConfig, subgraph: VisibleSubgraph) -> None:
    positions = _positions(subgraph)
    del positions["florence"]
    frame = GraphRenderer(config).render(subgraph, positions, StyleMap(), {})
    assert len(frame.nodes) == 5
    assert len(frame.links) == 3


def test_renderer_reports_empty_frame(config: AppConfig) -> None:
    frame = GraphRenderer(config).render(VisibleSubgraph.empty(), {}, StyleMap(), {})
    assert frame.empty
    assert frame.nodes == ()


def test_selection_change_replaces_affected_drawables(config: AppConfig, subgraph: VisibleSubgraph) -> None:
    renderer = GraphRenderer(config)
    positions = _positions(subgraph)
    renderer.render(subgraph, positions, StyleMap(), {})
    created = renderer.cache.stats.created
    renderer.render(subgraph, positions, StyleMap(), {})
    assert renderer.cache.stats.created == created

    renderer.render(subgraph, positions, StyleMap(), {}, selected_id="medici_bank")
    stats = renderer.cache.stats
    # the selected node and its single link get new drawables
    assert stats.created == created + 2
    assert stats.disposed == 2
    assert stats.live == 12
    assert renderer.dispose() == 12


def test_capabilities_follow_configuration(config: AppConfig, monkeypatch) -> None:
    monkeypatch.delenv("HISTONET_DISABLE_3D", raising=False)
    assert RenderCapabilities.detect(config.rendering).supports_3d
    disabled = config.rendering.model_copy(update={"enable_3d": False})
    assert not RenderCapabilities.detect(disabled).supports_3d
    monkeypatch.setenv("HISTONET_DISABLE_3D", "yes")
    assert RenderCapabilities.detect(config.rendering).reason == "disabled by HISTONET_DISABLE_3D"


def test_capabilities_probe_results(config: AppConfig, monkeypatch) -> None:
    monkeypatch.delenv("HISTONET_DISABLE_3D", raising=False)

    def _broken() -> bool:
        raise OSError("no GL context")

    assert not RenderCapabilities.detect(config.rendering, probe=lambda: False).supports_3d
    failed = RenderCapabilities.detect(config.rendering, probe=_broken)
    assert not failed.supports_3d
    assert "no GL context" in failed.reason
    assert RenderCapabilities.detect(config.rendering, probe=lambda: True).supports_3d


def test_require_and_resolve_dimensions() -> None:
    missing = RenderCapabilities(False, "test")
    with pytest.raises(RenderBackendUnavailableError):
        missing.require_3d()
    assert missing.resolve_dimensions(3) == 2
    assert missing.resolve_dimensions(2) == 2
    available = RenderCapabilities(True)
    available.require_3d()
    assert available.resolve_dimensions(3) == 3
