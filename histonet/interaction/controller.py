"""Pointer interaction: drag-to-pin, hold-to-keep-pinned, selection and hover."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

from histonet.config import InteractionConfig
from histonet.layout.simulation import SimulationHandle, SimulationStatus

LOGGER = logging.getLogger(__name__)

Point = Tuple[float, ...]


class PinState(str, Enum):
    FREE = "free"
    DRAGGING = "dragging"
    PINNED = "pinned"


@dataclass(frozen=True)
class SelectionChanged:
    selected_id: Optional[str]
    previous_id: Optional[str]


@dataclass(frozen=True)
class HoverChanged:
    hovered_id: Optional[str]
    previous_id: Optional[str]


InteractionEvent = Union[SelectionChanged, HoverChanged]
InteractionListener = Callable[[InteractionEvent], None]


@dataclass
class _Press:
    node_id: Optional[str]
    origin: Point
    dragging: bool = False
    last: Optional[Point] = None


class InteractionController:
    """Translate pointer input into pins, selection and hover events.

    Nodes are ``free`` unless being dragged or held ``pinned``. Only pins are
    written to the simulation; selection and hover are reported to
    listeners.
    """

    def __init__(self, config: InteractionConfig) -> None:
        self._config = config
        self._handle: Optional[SimulationHandle] = None
        self._pinned: Dict[str, Point] = {}
        self._press: Optional[_Press] = None
        self._selected: Optional[str] = None
        self._hovered: Optional[str] = None
        self._listeners: List[InteractionListener] = []

    @property
    def selected_id(self) -> Optional[str]:
        return self._selected

    @property
    def hovered_id(self) -> Optional[str]:
        return self._hovered

    @property
    def dragging_id(self) -> Optional[str]:
        if self._press is not None and self._press.dragging:
            return self._press.node_id
        return None

    @property
    def pinned_ids(self) -> FrozenSet[str]:
        return frozenset(self._pinned)

    def state(self, node_id: str) -> PinState:
        if self.dragging_id == node_id:
            return PinState.DRAGGING
        if node_id in self._pinned:
            return PinState.PINNED
        return PinState.FREE

    def subscribe(self, listener: InteractionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def attach(self, handle: Optional[SimulationHandle]) -> None:
        """Bind a new simulation handle.

        State for nodes that left the subgraph is dropped. Held pins and the
        pin of a drag in progress are re-applied to the new handle.
        """

        self._handle = handle
        present = frozenset(handle.node_ids) if handle is not None else frozenset()
        if self._press is not None and self._press.node_id is not None and self._press.node_id not in present:
            self._press = None
        for node_id in [node_id for node_id in self._pinned if node_id not in present]:
            del self._pinned[node_id]
        if handle is not None:
            for node_id, point in self._pinned.items():
                handle.pin(node_id, point)
            press = self._press
            if press is not None and press.dragging and press.last is not None:
                handle.pin(press.node_id, press.last)
                handle.set_alpha_target(self._config.drag_alpha_target)
        if self._hovered is not None and self._hovered not in present:
            self.hover(None)
        if self._selected is not None and self._selected not in present:
            self.select(None)

    def adopt_pins(self, pins: Mapping[str, Point]) -> None:
        """Replace coordinates of held pins, e.g. after a view-mode reprojection."""

        for node_id, point in pins.items():
            if node_id in self._pinned:
                self._pinned[node_id] = tuple(point)
        press = self._press
        if press is not None and press.dragging and press.node_id in pins:
            press.last = tuple(pins[press.node_id])

    def pointer_down(self, node_id: Optional[str], point: Point) -> None:
        self._press = _Press(node_id=node_id, origin=tuple(point))

    def pointer_move(self, point: Point) -> None:
        press = self._press
        if press is None or press.node_id is None:
            return
        handle = self._live_handle()
        if handle is None:
            return
        if not press.dragging:
            if _distance(point, press.origin) <= self._config.click_threshold:
                return
            press.dragging = True
            handle.pin(press.node_id, handle.position(press.node_id))
            handle.set_alpha_target(self._config.drag_alpha_target)
            LOGGER.debug("Drag started on node %s", press.node_id)
        press.last = tuple(point)
        handle.pin(press.node_id, press.last)

    def pointer_up(self, point: Optional[Point] = None, *, hold: bool = False) -> None:
        """Finish a press: end a drag, or treat it as a click.

        Args:
            point: Pointer position at release.
            hold: Keep the dragged node pinned (modifier key held).
        """

        press = self._press
        self._press = None
        if press is None:
            return
        if not press.dragging:
            self.select(press.node_id)
            return
        node_id = press.node_id
        handle = self._live_handle()
        if node_id is None or handle is None:
            return
        if point is not None:
            press.last = tuple(point)
            handle.pin(node_id, press.last)
        handle.set_alpha_target(0.0)
        if hold:
            self._pinned[node_id] = handle.position(node_id)
            LOGGER.debug("Node %s held pinned", node_id)
        else:
            self._pinned.pop(node_id, None)
            handle.pin(node_id, None)

    def release(self, node_id: str) -> None:
        """Unpin a held node."""

        if self._pinned.pop(node_id, None) is None:
            return
        handle = self._live_handle()
        if handle is not None and node_id in handle.node_ids:
            handle.pin(node_id, None)

    def hover(self, node_id: Optional[str]) -> None:
        if node_id == self._hovered:
            return
        event = HoverChanged(hovered_id=node_id, previous_id=self._hovered)
        self._hovered = node_id
        self._emit(event)

    def select(self, node_id: Optional[str]) -> None:
        if node_id == self._selected:
            return
        event = SelectionChanged(selected_id=node_id, previous_id=self._selected)
        self._selected = node_id
        self._emit(event)

    def reset(self) -> None:
        """Forget all pins and presses (dataset swap)."""

        self._press = None
        self._pinned.clear()
        self.hover(None)
        self.select(None)

    def _emit(self, event: InteractionEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    def _live_handle(self) -> Optional[SimulationHandle]:
        handle = self._handle
        if handle is None or handle.status in (SimulationStatus.STOPPED, SimulationStatus.EMPTY):
            return None
        return handle


def _distance(a: Point, b: Point) -> float:
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


__all__ = [
    "HoverChanged",
    "InteractionController",
    "InteractionEvent",
    "PinState",
    "SelectionChanged",
]
