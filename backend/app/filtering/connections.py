"""Single-point-of-connection pruning of redundant edges to the focal node."""
from __future__ import annotations

import logging
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple

from backend.app.canonicalization.relations import normalize_relation
from backend.app.contracts import CanonicalEdge, CanonicalNode, EntityKind

LOGGER = logging.getLogger(__name__)

UNCONDITIONAL_STRONG: FrozenSet[str] = frozenset(
    normalize_relation(tag)
    for tag in (
        "Requires",
        "Required By",
        "Rewards",
        "Reward From",
        "Unlocks",
        "Locked In",
        "Sub-Puzzle Of",
        "Has Sub-Puzzle",
        "Evidence For",
    )
)
CONDITIONAL_STRONG: FrozenSet[str] = frozenset(
    normalize_relation(tag) for tag in ("Owns", "Owned By", "Contains", "Inside")
)
WEAK_RELATIONSHIPS: FrozenSet[str] = frozenset(
    normalize_relation(tag)
    for tag in (
        "Associated",
        "Associated With",
        "Involves",
        "Involved In",
        "Participates In",
        "Appears In",
    )
)
INTERMEDIARY_HUB_TYPES: FrozenSet[EntityKind] = frozenset(
    {EntityKind.PUZZLE, EntityKind.TIMELINE, EntityKind.ELEMENT}
)


def _is_strong(tag: str) -> bool:
    return tag in UNCONDITIONAL_STRONG or tag in CONDITIONAL_STRONG


def _has_strong_indirect_path(
    direct: CanonicalEdge,
    center_id: str,
    far_id: str,
    edges: Sequence[CanonicalEdge],
    nodes: Dict[str, CanonicalNode],
) -> bool:
    """Return whether ``center -> hub -> far`` exists over strong edges only."""

    for first in edges:
        if first.id == direct.id or not first.touches(center_id):
            continue
        hub_id = first.other_end(center_id)
        hub = nodes.get(hub_id)
        if hub_id == far_id or hub is None or hub.type not in INTERMEDIARY_HUB_TYPES:
            continue
        if not _is_strong(normalize_relation(first.short_label)):
            continue
        for second in edges:
            if second.id in (first.id, direct.id):
                continue
            joins = (second.source == hub_id and second.target == far_id) or (
                second.source == far_id and second.target == hub_id
            )
            if joins and _is_strong(normalize_relation(second.short_label)):
                return True
    return False


def prune_redundant_connections(
    nodes: Sequence[CanonicalNode],
    edges: Sequence[CanonicalEdge],
    center_id: Optional[str],
) -> Tuple[List[CanonicalNode], List[CanonicalEdge]]:
    """Drop direct focal edges that a stronger two-hop path already explains.

    Direct edges tagged with an unconditional strong relationship are always
    kept. A conditional strong edge is dropped when its far node already sits
    inside a parent group. Conditional strong and weak edges are dropped when
    the centre reaches the far node through a hub (Puzzle, Timeline or
    Element) using strong tags on both hops. Any other tag is kept. Nodes left
    without edges are then removed, except the centre.

    Args:
        nodes: Grouped canonical nodes.
        edges: Canonical edges.
        center_id: Focal node identifier.

    Returns:
        Tuple of surviving nodes and edges, both in input order.
    """

    node_map = {node.id: node for node in nodes}
    if center_id is None or center_id not in node_map or not edges:
        return list(nodes), list(edges)

    kept: List[CanonicalEdge] = []
    removed = 0
    for edge in edges:
        if not edge.touches(center_id):
            kept.append(edge)
            continue
        tag = normalize_relation(edge.short_label)
        far_id = edge.other_end(center_id)
        if tag in UNCONDITIONAL_STRONG:
            kept.append(edge)
            continue
        far_node = node_map.get(far_id)
        if tag in CONDITIONAL_STRONG and far_node is not None and far_node.parent_id:
            removed += 1
            continue
        if tag in CONDITIONAL_STRONG or tag in WEAK_RELATIONSHIPS:
            if _has_strong_indirect_path(edge, center_id, far_id, edges, node_map):
                removed += 1
                continue
        kept.append(edge)

    connected = {center_id}
    for edge in kept:
        connected.add(edge.source)
        connected.add(edge.target)
    surviving = [node for node in nodes if node.is_center or node.id in connected]
    LOGGER.debug(
        "Connection pruning removed %d direct edges and %d orphaned nodes",
        removed,
        len(nodes) - len(surviving),
    )
    return surviving, kept
