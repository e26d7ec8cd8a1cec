"""Helpers for the flat ``parent_id`` forest encoded on canonical nodes."""
from __future__ import annotations

from typing import AbstractSet, Dict, Iterable, Mapping, Optional, Sequence, Set

from backend.app.contracts import CanonicalNode


def effective_parent(node: CanonicalNode, present_ids: AbstractSet[str]) -> Optional[str]:
    """Return the node's parent id, treating a dangling reference as no parent."""

    parent_id = node.parent_id
    if parent_id is None or parent_id == node.id or parent_id not in present_ids:
        return None
    return parent_id


def would_create_cycle(child_id: str, parent_id: str, parents: Mapping[str, Optional[str]]) -> bool:
    """Return whether linking ``child_id`` under ``parent_id`` closes a cycle."""

    if child_id == parent_id:
        return True
    seen: Set[str] = set()
    current: Optional[str] = parent_id
    while current is not None and current not in seen:
        if current == child_id:
            return True
        seen.add(current)
        current = parents.get(current)
    return False


def readmit_descendants(admitted: Iterable[str], candidates: Sequence[CanonicalNode]) -> Set[str]:
    """Grow ``admitted`` with every candidate whose parent is admitted.

    Repeats until no candidate is added, so whole subtrees hanging off an
    admitted node are kept.

    Args:
        admitted: Identifiers already admitted.
        candidates: Nodes eligible for re-admission.

    Returns:
        Set[str]: The admitted identifiers after reaching a fixed point.
    """

    result: Set[str] = set(admitted)
    pending = [node for node in candidates if node.id not in result]
    changed = True
    while changed and pending:
        changed = False
        remaining = []
        for node in pending:
            if node.parent_id is not None and node.parent_id != node.id and node.parent_id in result:
                result.add(node.id)
                changed = True
            else:
                remaining.append(node)
        pending = remaining
    return result


def parent_depths(nodes: Sequence[CanonicalNode]) -> Dict[str, int]:
    """Return how many present ancestors each node has.

    Parents always have a smaller depth than their children, so sorting by
    depth processes parents first.
    """

    present = {node.id for node in nodes}
    parents = {node.id: effective_parent(node, present) for node in nodes}
    depths: Dict[str, int] = {}
    for node in nodes:
        chain = []
        seen: Set[str] = set()
        current: Optional[str] = node.id
        while current is not None and current not in depths and current not in seen:
            seen.add(current)
            chain.append(current)
            current = parents.get(current)
        base = depths[current] if current is not None and current in depths else -1
        for offset, node_id in enumerate(reversed(chain), start=1):
            depths[node_id] = base + offset
    return depths
