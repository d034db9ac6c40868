"""Per-node and per-link drawables and the factories that build them."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Tuple

from typing_extensions import Literal, Protocol

from histonet.config import RenderingConfig
from histonet.visibility.resolver import ElementStyle

LOGGER = logging.getLogger(__name__)

ElementKind = Literal["node", "link"]
Point = Tuple[float, ...]


@dataclass(frozen=True)
class VisualState:
    """Discrete style factors that select a distinct drawable."""

    selected: bool = False
    highlighted: bool = False
    color_mode: str = "light"
    size: float = 0.0

    @staticmethod
    def quantize(size: float, quantum: float) -> float:
        return round(size / quantum) * quantum


@dataclass(frozen=True)
class RenderKey:
    kind: ElementKind
    element_id: str
    state: VisualState = VisualState()


@dataclass(frozen=True)
class StyleInputs:
    """Values a factory needs to build a drawable."""

    color: str
    label: Optional[str] = None
    size: float = 0.0


class _Resource:
    """GPU-side or DOM-side allocation released exactly once."""

    kind = "resource"

    def __init__(self) -> None:
        self.disposed = False

    def dispose(self) -> None:
        if self.disposed:
            raise RuntimeError(f"{self.kind} disposed twice")
        self.disposed = True


class Geometry(_Resource):
    kind = "geometry"

    def __init__(self, shape: str, size: float) -> None:
        super().__init__()
        self.shape = shape
        self.size = size


class Material(_Resource):
    kind = "material"

    def __init__(self, color: str) -> None:
        super().__init__()
        self.color = color
        self.opacity = 1.0
        self.dash: Optional[Tuple[float, ...]] = None


class Label(_Resource):
    kind = "label"

    def __init__(self, text: str, offset: float, *, sprite: bool) -> None:
        super().__init__()
        self.text = text
        self.offset = offset
        self.sprite = sprite


class Drawable:
    """Geometry, material and optional label for one graph element."""

    def __init__(
        self,
        key: RenderKey,
        geometry: Geometry,
        material: Material,
        label: Optional[Label] = None,
    ) -> None:
        self.key = key
        self.geometry = geometry
        self.material = material
        self.label = label
        self.points: Tuple[Point, ...] = ()
        self.disposed = False

    @property
    def element_id(self) -> str:
        return self.key.element_id

    def update(self, points: Sequence[Point], style: ElementStyle) -> None:
        """Move the drawable and apply per-frame opacity and dash."""

        if self.disposed:
            raise RuntimeError(f"Drawable for '{self.element_id}' is disposed")
        self.points = tuple(tuple(float(value) for value in point) for point in points)
        self.material.opacity = style.opacity
        self.material.dash = style.dash

    def dispose(self) -> None:
        self.geometry.dispose()
        self.material.dispose()
        if self.label is not None:
            self.label.dispose()
        self.disposed = True

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "kind": self.key.kind,
            "id": self.element_id,
            "shape": self.geometry.shape,
            "size": self.geometry.size,
            "color": self.material.color,
            "opacity": self.material.opacity,
            "dash": list(self.material.dash) if self.material.dash else None,
            "selected": self.key.state.selected,
            "highlighted": self.key.state.highlighted,
        }
        if self.key.kind == "node":
            payload["position"] = list(self.points[0]) if self.points else None
        else:
            payload["points"] = [list(point) for point in self.points]
        if self.label is not None:
            payload["label"] = self.label.text
        return payload


class DrawableFactory(Protocol):
    dimensions: int

    def create(self, key: RenderKey, inputs: StyleInputs) -> Drawable:
        """Build a new drawable for ``key``."""


class FlatDrawableFactory:
    """2D circles, paths and text labels."""

    dimensions = 2

    def __init__(self, config: RenderingConfig) -> None:
        self._config = config

    def create(self, key: RenderKey, inputs: StyleInputs) -> Drawable:
        color = self._config.highlight_color if key.state.highlighted else inputs.color
        if key.kind == "node":
            label = None
            if inputs.label:
                label = Label(inputs.label, inputs.size + self._config.label_offset, sprite=False)
            return Drawable(key, Geometry("circle", inputs.size), Material(color), label)
        return Drawable(key, Geometry("path", 2.0 if key.state.selected else 1.0), Material(color))


class SceneDrawableFactory:
    """3D sphere meshes with sprite labels and line links."""

    dimensions = 3

    def __init__(self, config: RenderingConfig) -> None:
        self._config = config

    def create(self, key: RenderKey, inputs: StyleInputs) -> Drawable:
        color = self._config.highlight_color if key.state.highlighted else inputs.color
        if key.kind == "node":
            label = None
            if inputs.label:
                label = Label(inputs.label, inputs.size + self._config.label_offset, sprite=True)
            return Drawable(key, Geometry("sphere", inputs.size), Material(color), label)
        return Drawable(key, Geometry("line", 1.0), Material(color))


def factory_for(dimensions: int, config: RenderingConfig) -> DrawableFactory:
    if dimensions == 3:
        return SceneDrawableFactory(config)
    return FlatDrawableFactory(config)


__all__ = [
    "Drawable",
    "DrawableFactory",
    "FlatDrawableFactory",
    "Geometry",
    "Label",
    "Material",
    "RenderKey",
    "SceneDrawableFactory",
    "StyleInputs",
    "VisualState",
    "factory_for",
]
