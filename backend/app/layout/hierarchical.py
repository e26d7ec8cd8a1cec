"""Layered (rank-based) layout with orbit nudging of grouped children."""
from __future__ import annotations

import logging
import math
from collections import defaultdict, deque
from typing import Dict, List, Sequence, Tuple

from pydantic import Field
from typing_extensions import Literal

from backend.app.contracts import CanonicalEdge, CanonicalNode
from backend.app.grouping.forest import effective_parent, parent_depths
from backend.app.layout.base import (
    LayoutOptions,
    ensure_unique_ids,
    place,
    root_id,
    undirected_adjacency,
)

LOGGER = logging.getLogger(__name__)

# Angle (radians) of the first child around its parent, per flow direction.
_ORBIT_START = {"TB": math.pi / 2, "BT": -math.pi / 2, "LR": 0.0, "RL": math.pi}


class HierarchicalOptions(LayoutOptions):
    """Options for :func:`layout_hierarchical`."""

    rankdir: Literal["TB", "BT", "LR", "RL"] = "TB"
    nodesep: float = Field(90.0, ge=0)
    ranksep: float = Field(120.0, ge=0)
    marginx: float = Field(30.0, ge=0)
    marginy: float = Field(30.0, ge=0)
    orbit_radius: float = Field(110.0, ge=0)
    orbit_strength: float = Field(0.75, ge=0.0, le=1.0)
    ordering_sweeps: int = Field(4, ge=0)


def _directed_steps(
    nodes: Sequence[CanonicalNode], edges: Sequence[CanonicalEdge]
) -> Dict[str, List[Tuple[str, int]]]:
    """Return ``(neighbour, rank step)`` pairs: +1 along an edge, -1 against it."""

    steps: Dict[str, List[Tuple[str, int]]] = {node.id: [] for node in nodes}
    for edge in edges:
        if edge.source == edge.target or edge.source not in steps or edge.target not in steps:
            continue
        steps[edge.source].append((edge.target, 1))
        steps[edge.target].append((edge.source, -1))
    return steps


def _rank_component(root: str, steps: Dict[str, List[Tuple[str, int]]]) -> Dict[str, int]:
    ranks = {root: 0}
    queue: deque[str] = deque([root])
    while queue:
        current = queue.popleft()
        for neighbour, step in steps[current]:
            if neighbour not in ranks:
                ranks[neighbour] = ranks[current] + step
                queue.append(neighbour)
    lowest = min(ranks.values())
    return {node_id: rank - lowest for node_id, rank in ranks.items()}


def _assign_ranks(nodes: Sequence[CanonicalNode], edges: Sequence[CanonicalEdge]) -> Dict[str, int]:
    """Layer nodes along edge direction, one traversal per component.

    Each component is walked from the focal node (or its first node). A node
    reached along an edge sits one rank below its predecessor, a node reached
    against an edge one rank above; on cycles the first visit wins. Every
    component is shifted so its topmost rank is zero.
    """

    steps = _directed_steps(nodes, edges)
    ranks = _rank_component(root_id(nodes), steps)
    for node in nodes:
        if node.id not in ranks:
            ranks.update(_rank_component(node.id, steps))
    return ranks


def _order_layers(
    layers: Dict[int, List[str]], adjacency: Dict[str, List[str]], sweeps: int
) -> Dict[int, List[str]]:
    """Reduce crossings with alternating barycenter sweeps."""

    ordered = {rank: list(members) for rank, members in layers.items()}
    ranks = sorted(ordered)

    def _reorder(rank: int, reference_rank: int) -> None:
        reference = {node_id: index for index, node_id in enumerate(ordered.get(reference_rank, []))}
        current = ordered[rank]
        keys: Dict[str, Tuple[float, int]] = {}
        for index, node_id in enumerate(current):
            positions = [reference[neighbour] for neighbour in adjacency[node_id] if neighbour in reference]
            barycenter = sum(positions) / len(positions) if positions else float(index)
            keys[node_id] = (barycenter, index)
        current.sort(key=lambda node_id: keys[node_id])

    for _ in range(sweeps):
        for rank in ranks[1:]:
            _reorder(rank, rank - 1)
        for rank in reversed(ranks[:-1]):
            _reorder(rank, rank + 1)
    return ordered


def _orbit_children(
    nodes: Sequence[CanonicalNode],
    centers: Dict[str, Tuple[float, float]],
    options: HierarchicalOptions,
) -> None:
    """Pull grouped children toward evenly spaced slots around their parent."""

    if options.orbit_strength == 0.0 or options.orbit_radius == 0.0:
        return
    present = {node.id for node in nodes}
    children: Dict[str, List[str]] = defaultdict(list)
    for node in nodes:
        parent_id = effective_parent(node, present)
        if parent_id is not None:
            children[parent_id].append(node.id)
    if not children:
        return

    depths = parent_depths(nodes)
    start = _ORBIT_START[options.rankdir]
    for parent_id in sorted(children, key=lambda node_id: depths.get(node_id, 0)):
        parent_x, parent_y = centers[parent_id]
        members = children[parent_id]
        for index, child_id in enumerate(members):
            angle = start + 2.0 * math.pi * index / len(members)
            target_x = parent_x + options.orbit_radius * math.cos(angle)
            target_y = parent_y + options.orbit_radius * math.sin(angle)
            child_x, child_y = centers[child_id]
            centers[child_id] = (
                child_x + options.orbit_strength * (target_x - child_x),
                child_y + options.orbit_strength * (target_y - child_y),
            )


def layout_hierarchical(
    nodes: Sequence[CanonicalNode],
    edges: Sequence[CanonicalEdge],
    options: HierarchicalOptions,
) -> List[CanonicalNode]:
    """Place nodes on ranks flowing in ``options.rankdir``.

    Ranks follow edge direction, walked from the focal node (or the first
    node when none is centred); each component starts at rank zero. Within a
    rank, nodes are ordered by barycenter sweeps and separated by ``nodesep``;
    ranks are separated by ``ranksep``. Children with a parent are then nudged
    toward an orbit around that parent, parents first. The final drawing is
    shifted so its bounding box starts at ``(marginx, marginy)``.

    Args:
        nodes: Canonical nodes with sizes.
        edges: Canonical edges between the nodes.
        options: Validated hierarchical options.

    Returns:
        List[CanonicalNode]: Copies of the nodes with positions, in input order.

    Raises:
        LayoutError: If node identifiers repeat.
    """

    if not nodes:
        return []
    ensure_unique_ids(nodes)

    adjacency = undirected_adjacency(nodes, edges)
    ranks = _assign_ranks(nodes, edges)
    layers: Dict[int, List[str]] = defaultdict(list)
    for node in nodes:
        layers[ranks[node.id]].append(node.id)
    ordered = _order_layers(layers, adjacency, options.ordering_sweeps)

    by_id = {node.id: node for node in nodes}
    horizontal = options.rankdir in ("LR", "RL")
    reverse = options.rankdir in ("BT", "RL")

    def _rank_extent(node: CanonicalNode) -> float:
        return node.width if horizontal else node.height

    def _cross_extent(node: CanonicalNode) -> float:
        return node.height if horizontal else node.width

    rank_offsets: Dict[int, float] = {}
    offset = 0.0
    for rank in sorted(ordered):
        thickness = max(_rank_extent(by_id[node_id]) for node_id in ordered[rank])
        rank_offsets[rank] = offset + thickness / 2.0
        offset += thickness + options.ranksep

    centers: Dict[str, Tuple[float, float]] = {}
    orders: Dict[str, int] = {}
    for rank, members in ordered.items():
        total = sum(_cross_extent(by_id[node_id]) for node_id in members)
        total += options.nodesep * (len(members) - 1)
        cursor = -total / 2.0
        main = -rank_offsets[rank] if reverse else rank_offsets[rank]
        for order, node_id in enumerate(members):
            extent = _cross_extent(by_id[node_id])
            cross = cursor + extent / 2.0
            cursor += extent + options.nodesep
            centers[node_id] = (main, cross) if horizontal else (cross, main)
            orders[node_id] = order

    _orbit_children(nodes, centers, options)

    left = min(centers[node.id][0] - node.width / 2.0 for node in nodes)
    top = min(centers[node.id][1] - node.height / 2.0 for node in nodes)
    shift_x = options.marginx - left
    shift_y = options.marginy - top

    LOGGER.debug("Hierarchical layout placed %d nodes on %d ranks", len(nodes), len(ordered))
    return [
        place(
            node,
            centers[node.id][0] + shift_x,
            centers[node.id][1] + shift_y,
            rank=ranks[node.id],
            order=orders[node.id],
        )
        for node in nodes
    ]
