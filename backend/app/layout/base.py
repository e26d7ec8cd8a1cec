"""Shared helpers for the layout strategies."""
from __future__ import annotations

import math
from collections import deque
from typing import Dict, List, Mapping, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from backend.app.contracts import CanonicalEdge, CanonicalNode, Position


class LayoutError(RuntimeError):
    """Raised when a layout cannot be computed for the supplied graph."""


class LayoutOptions(BaseModel):
    """Base class for strategy options; unknown keys are ignored."""

    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


OptionsT = TypeVar("OptionsT", bound=LayoutOptions)


def parse_options(model: Type[OptionsT], options: Optional[Mapping[str, object]]) -> OptionsT:
    """Validate raw layout options into ``model``.

    Raises:
        LayoutError: If the options fail validation.
    """

    if isinstance(options, model):
        return options
    try:
        return model.model_validate(dict(options or {}))
    except ValidationError as exc:
        raise LayoutError(f"Invalid {model.__name__}: {exc.error_count()} validation error(s)") from exc


def ensure_unique_ids(nodes: Sequence[CanonicalNode]) -> None:
    """Reject node lists that reuse an identifier.

    Raises:
        LayoutError: If two nodes share an identifier.
    """

    seen = set()
    for node in nodes:
        if node.id in seen:
            raise LayoutError(f"Duplicate node id '{node.id}' cannot be laid out")
        seen.add(node.id)


def undirected_adjacency(
    nodes: Sequence[CanonicalNode], edges: Sequence[CanonicalEdge]
) -> Dict[str, List[str]]:
    """Return neighbours per node in edge order, ignoring dangling edges and self-loops."""

    adjacency: Dict[str, List[str]] = {node.id: [] for node in nodes}
    for edge in edges:
        if edge.source == edge.target:
            continue
        if edge.source not in adjacency or edge.target not in adjacency:
            continue
        if edge.target not in adjacency[edge.source]:
            adjacency[edge.source].append(edge.target)
        if edge.source not in adjacency[edge.target]:
            adjacency[edge.target].append(edge.source)
    return adjacency


def bfs_distances(root: str, adjacency: Mapping[str, Sequence[str]]) -> Dict[str, int]:
    """Return hop distances from ``root`` for every reachable node."""

    distances = {root: 0}
    queue: deque[str] = deque([root])
    while queue:
        current = queue.popleft()
        for neighbour in adjacency.get(current, ()):
            if neighbour not in distances:
                distances[neighbour] = distances[current] + 1
                queue.append(neighbour)
    return distances


def root_id(nodes: Sequence[CanonicalNode]) -> str:
    """Return the focal node id, or the first node when none is centred."""

    for node in nodes:
        if node.is_center:
            return node.id
    return nodes[0].id


def place(node: CanonicalNode, center_x: float, center_y: float, **meta: float) -> CanonicalNode:
    """Return a copy of ``node`` centred on ``(center_x, center_y)``.

    Raises:
        LayoutError: If the coordinates are not finite.
    """

    if not (math.isfinite(center_x) and math.isfinite(center_y)):
        raise LayoutError(f"Layout produced non-finite coordinates for node '{node.id}'")
    layout = {"center_x": float(center_x), "center_y": float(center_y)}
    layout.update({key: float(value) for key, value in meta.items()})
    return node.model_copy(
        update={
            "position": Position(x=center_x - node.width / 2.0, y=center_y - node.height / 2.0),
            "layout": layout,
        }
    )
