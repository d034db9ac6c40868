"""Render object cache, drawables and backend capability detection."""

from histonet.rendering.cache import CacheStats, DisposalOrderError, RenderObjectCache
from histonet.rendering.capabilities import RenderBackendUnavailableError, RenderCapabilities
from histonet.rendering.drawables import (
    Drawable,
    DrawableFactory,
    FlatDrawableFactory,
    RenderKey,
    SceneDrawableFactory,
    StyleInputs,
    VisualState,
    factory_for,
)
from histonet.rendering.renderer import GraphRenderer, RenderFrame

__all__ = [
    "CacheStats",
    "DisposalOrderError",
    "Drawable",
    "DrawableFactory",
    "FlatDrawableFactory",
    "GraphRenderer",
    "RenderBackendUnavailableError",
    "RenderCapabilities",
    "RenderFrame",
    "RenderKey",
    "RenderObjectCache",
    "SceneDrawableFactory",
    "StyleInputs",
    "VisualState",
    "factory_for",
]
