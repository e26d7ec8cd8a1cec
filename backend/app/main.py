"""FastAPI application factory for the relationship explorer backend."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.app.canonicalization import style_table
from backend.app.config import AppConfig, load_config
from backend.app.orchestration import GraphExplorer

LOGGER = logging.getLogger(__name__)


class ExploreRequest(BaseModel):
    """Request payload for the graph exploration endpoint."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    graph: Dict[str, Any] = Field(..., description="Raw {center, nodes, edges} payload")
    focal_id: Optional[str] = Field(None, description="Identifier of the focal entity")
    filters: Dict[str, Any] = Field(default_factory=dict)
    layout: Dict[str, Any] = Field(default_factory=dict)


class ExplorerSettingsResponse(BaseModel):
    """Filter and layout defaults served to the frontend."""

    pipeline_version: str
    filters: Dict[str, object]
    layout: Dict[str, object]
    edge_styles: Dict[str, Dict[str, object]]


def create_app(
    config: AppConfig | None = None,
    explorer: Optional[GraphExplorer] = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        config: Optional pre-loaded configuration. If omitted, the default
            configuration defined in config.yaml is used.
        explorer: Optional explorer instance. When omitted one is built from
            ``config``.

    Returns:
        FastAPI: Configured FastAPI application.
    """

    resolved_config = config or load_config()
    app = FastAPI(title="Relationship Explorer API", version=resolved_config.pipeline.version)
    app.state.app_config = resolved_config
    app.state.explorer = explorer or GraphExplorer(resolved_config)

    allowed_origins = resolved_config.api.allowed_origins
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

        return {"status": "ok", "pipeline_version": resolved_config.pipeline.version}

    @app.get("/api/explorer/settings", tags=["explorer"], summary="Explorer defaults")
    def explorer_settings() -> ExplorerSettingsResponse:
        """Return filter defaults, layout presets and edge styles from configuration."""

        layout_cfg = resolved_config.layout
        layout_payload = {
            "default_type": layout_cfg.default_type,
            "default_mode": layout_cfg.default_mode,
            "presets": {mode: preset.model_dump() for mode, preset in layout_cfg.presets.items()},
        }
        return ExplorerSettingsResponse(
            pipeline_version=resolved_config.pipeline.version,
            filters=resolved_config.filters.model_dump(),
            layout=layout_payload,
            edge_styles=style_table(),
        )

    @app.post("/api/explorer/graph", tags=["explorer"], summary="Filter and lay out a graph")
    async def explore_graph(request: ExploreRequest) -> Dict[str, Any]:
        """Run the explorer pipeline over the submitted graph.

        Pipeline failures are reported in the ``error`` field of a normal
        response so the client can fall back to a simpler view.
        """

        explorer_instance: GraphExplorer = app.state.explorer
        result = await explorer_instance.explore_async(
            request.graph,
            request.focal_id,
            request.filters,
            request.layout,
        )
        if result.error is not None:
            LOGGER.warning(
                "Explorer request for %s failed in stage %s: %s",
                request.focal_id,
                result.error.stage,
                result.error.message,
            )
        return result.to_payload()

    return app
