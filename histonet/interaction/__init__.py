"""Pointer interaction controller."""

from histonet.interaction.controller import (
    HoverChanged,
    InteractionController,
    InteractionEvent,
    PinState,
    SelectionChanged,
)

__all__ = ["HoverChanged", "InteractionController", "InteractionEvent", "PinState", "SelectionChanged"]
