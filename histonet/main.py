"""FastAPI application factory for the HistoNet layout engine."""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Dict, List, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from histonet.config import AppConfig, load_config
from histonet.contracts import FilterState, GraphData
from histonet.rendering.capabilities import RenderCapabilities
from histonet.ui.service import LayoutRequestError, LayoutService

LOGGER = logging.getLogger(__name__)


class LayoutRequest(BaseModel):
    """Request payload for the layout endpoint."""

    graph: GraphData
    filters: FilterState = Field(default_factory=FilterState)
    width: Optional[float] = Field(default=None, gt=0)
    height: Optional[float] = Field(default=None, gt=0)
    dimensions: int = Field(default=2, ge=2, le=3)
    max_ticks: Optional[int] = Field(default=None, ge=0, alias="maxTicks")
    selected_id: Optional[str] = Field(default=None, alias="selectedId")

    model_config = {"populate_by_name": True}


class LayoutSettingsResponse(BaseModel):
    """Layout defaults served to the frontend."""

    frame_rate: int
    supports_3d: bool
    default_time_range: List[int]
    link_policy: str
    max_nodes: int
    max_ticks: int
    entity_colors: Dict[str, str]
    relationship_colors: Dict[str, str]


def create_app(
    config: AppConfig | None = None,
    capabilities: Optional[RenderCapabilities] = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        config: Optional pre-loaded configuration. If omitted, the default
            configuration defined in config.yaml is used.
        capabilities: Optional render capability probe result; detected from
            configuration when omitted.

    Returns:
        FastAPI: Configured FastAPI application.
    """

    resolved_config = config or load_config()
    resolved_capabilities = capabilities or RenderCapabilities.detect(resolved_config.rendering)
    app = FastAPI(title="HistoNet Layout API", version=resolved_config.engine.version)
    app.state.app_config = resolved_config
    app.state.layout_service = LayoutService(resolved_config, capabilities=resolved_capabilities)

    allowed_origins = resolved_config.service.allowed_origins
    if allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.get("/health", tags=["system"], summary="Service health probe")
    def health() -> dict[str, str]:
        """Return service health information."""

        return {"status": "ok", "engine_version": resolved_config.engine.version}

    @app.get("/api/layout/settings", tags=["layout"], summary="Layout configuration defaults")
    def layout_settings() -> LayoutSettingsResponse:
        """Return layout defaults sourced from the configuration file."""

        rendering = resolved_config.rendering
        return LayoutSettingsResponse(
            frame_rate=resolved_config.engine.frame_rate,
            supports_3d=resolved_capabilities.supports_3d,
            default_time_range=list(resolved_config.filtering.default_time_range),
            link_policy=resolved_config.filtering.link_policy,
            max_nodes=resolved_config.service.max_nodes,
            max_ticks=resolved_config.service.max_ticks,
            entity_colors={category.value: color for category, color in rendering.entity_colors.items()},
            relationship_colors={
                category.value: color for category, color in rendering.relationship_colors.items()
            },
        )

    @app.post("/api/layout", tags=["layout"], summary="Compute a settled layout")
    def compute_layout(request: LayoutRequest) -> dict:
        """Settle a layout for the posted graph and filters."""

        service: LayoutService = app.state.layout_service
        try:
            result = service.compute(
                request.graph,
                request.filters,
                width=request.width,
                height=request.height,
                dimensions=request.dimensions,
                max_ticks=request.max_ticks,
                selected_id=request.selected_id,
            )
        except LayoutRequestError as exc:
            LOGGER.warning("Rejected layout request: %s", exc)
            raise HTTPException(status_code=413, detail=str(exc)) from exc
        payload = asdict(result)
        payload["node_count"] = result.node_count
        payload["link_count"] = result.link_count
        return payload

    return app


__all__ = ["create_app", "LayoutRequest", "LayoutSettingsResponse"]
