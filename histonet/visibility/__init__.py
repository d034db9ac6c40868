"""Selection, highlight and filter driven styling."""

from histonet.visibility.resolver import (
    ElementStyle,
    Emphasis,
    StyleMap,
    link_dash,
    resolve_link_style,
    resolve_node_style,
    resolve_styles,
)

__all__ = [
    "ElementStyle",
    "Emphasis",
    "StyleMap",
    "link_dash",
    "resolve_link_style",
    "resolve_node_style",
    "resolve_styles",
]
