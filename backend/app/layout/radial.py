"""Concentric ring layout around the focal node."""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

from pydantic import Field, field_validator

from backend.app.contracts import CanonicalEdge, CanonicalNode
from backend.app.grouping.forest import effective_parent
from backend.app.layout.base import (
    LayoutOptions,
    bfs_distances,
    ensure_unique_ids,
    place,
    root_id,
    undirected_adjacency,
)

LOGGER = logging.getLogger(__name__)


class RadialOptions(LayoutOptions):
    """Options for :func:`layout_radial`."""

    center: Tuple[float, float] = (400.0, 300.0)
    base_radius: float = Field(250.0, gt=0)
    layer_separation: float = Field(100.0, gt=0)
    node_separation: float = Field(20.0, ge=0)
    max_nodes_per_layer: List[int] = Field(default_factory=lambda: [5, 10, 15])

    @field_validator("max_nodes_per_layer")
    @classmethod
    def _validate_capacities(cls, value: List[int]) -> List[int]:
        if not value or any(capacity < 1 for capacity in value):
            raise ValueError("max_nodes_per_layer must list positive capacities")
        return value

    def capacity(self, ring: int) -> int:
        """Return how many nodes ring ``ring`` (1-based) can hold."""

        index = min(ring - 1, len(self.max_nodes_per_layer) - 1)
        return self.max_nodes_per_layer[index]

    def radius(self, ring: int) -> float:
        """Return the radius of ring ``ring`` (1-based)."""

        return self.base_radius + (ring - 1) * self.layer_separation


def _cluster_by_parent(members: List[CanonicalNode], present: set) -> List[CanonicalNode]:
    """Keep siblings, and a parent with its children, next to each other."""

    clusters: Dict[str, List[CanonicalNode]] = defaultdict(list)
    order: List[str] = []
    for node in members:
        key = effective_parent(node, present) or node.id
        if key not in clusters:
            order.append(key)
        clusters[key].append(node)
    return [node for key in order for node in clusters[key]]


def layout_radial(
    nodes: Sequence[CanonicalNode],
    edges: Sequence[CanonicalEdge],
    options: RadialOptions,
) -> List[CanonicalNode]:
    """Place the focal node at ``options.center`` and the rest on rings.

    Nodes are banded by hop distance from the focal node; nodes it cannot
    reach share one band past the farthest reachable one. Each band fills rings
    outward, moving to the next ring once ``max_nodes_per_layer`` for the
    current ring is reached (the last capacity repeats). A new band always
    starts on a fresh ring. A ring too small to fit its nodes side by side,
    each padded by ``node_separation``, is widened until they fit.

    Raises:
        LayoutError: If node identifiers repeat.
    """

    if not nodes:
        return []
    ensure_unique_ids(nodes)

    center_x, center_y = options.center
    origin = root_id(nodes)
    distances = bfs_distances(origin, undirected_adjacency(nodes, edges))
    unreachable_band = max(distances.values()) + 1

    bands: Dict[int, List[CanonicalNode]] = defaultdict(list)
    for node in nodes:
        if node.id != origin:
            bands[distances.get(node.id, unreachable_band)].append(node)

    present = {node.id for node in nodes}
    placed: Dict[str, CanonicalNode] = {}
    ring = 1
    for band in sorted(bands):
        members = _cluster_by_parent(bands[band], present)
        start = 0
        while start < len(members):
            chunk = members[start : start + options.capacity(ring)]
            widest = max(node.width for node in chunk) + options.node_separation
            radius = max(options.radius(ring), len(chunk) * widest / (2.0 * math.pi))
            step = 2.0 * math.pi / len(chunk)
            offset = (ring - 1) * step / 2.0
            for index, node in enumerate(chunk):
                angle = offset + index * step
                placed[node.id] = place(
                    node,
                    center_x + radius * math.cos(angle),
                    center_y + radius * math.sin(angle),
                    ring=ring,
                    angle=angle,
                    distance=band,
                )
            start += len(chunk)
            ring += 1

    by_id = {node.id: node for node in nodes}
    placed[origin] = place(by_id[origin], center_x, center_y, ring=0, angle=0.0, distance=0)
    LOGGER.debug("Radial layout placed %d nodes on %d rings", len(nodes), ring - 1)
    return [placed[node.id] for node in nodes]
