"""Pipeline orchestration for the relationship explorer."""

from backend.app.orchestration.orchestrator import (
    ExplorerError,
    ExplorerResult,
    GraphExplorer,
    LayoutSettings,
    explore,
)

__all__ = [
    "ExplorerError",
    "ExplorerResult",
    "GraphExplorer",
    "LayoutSettings",
    "explore",
]
