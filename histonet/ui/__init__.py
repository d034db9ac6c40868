"""Headless layout service."""

from histonet.ui.service import LayoutRequestError, LayoutResult, LayoutService, LinkPlacement, NodePlacement

__all__ = ["LayoutRequestError", "LayoutResult", "LayoutService", "LinkPlacement", "NodePlacement"]
