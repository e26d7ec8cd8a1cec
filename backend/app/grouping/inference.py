"""Inference of compound (parent/child) grouping from relationship tags."""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from backend.app.canonicalization.relations import normalize_relation
from backend.app.contracts import CanonicalEdge, CanonicalNode, EdgeCategory, EntityKind
from backend.app.grouping.forest import would_create_cycle

LOGGER = logging.getLogger(__name__)

# Tags whose parent is the edge target rather than the source.
_INVERTED_CONTAINMENT = {"inside", "contained in"}
_REQUIRED_INTO_PUZZLE = {"required for"}
_REQUIRED_FROM_PUZZLE = {"requires"}
_REWARD_FROM_PUZZLE = {"rewards"}
_REWARD_INTO_PUZZLE = {"reward from"}


def _containment_direction(edge: CanonicalEdge) -> tuple[str, str]:
    """Return ``(container, content)`` identifiers for a containment edge."""

    tag = normalize_relation(edge.short_label)
    if tag in _INVERTED_CONTAINMENT or (not tag and "inside" in edge.label.lower()):
        return edge.target, edge.source
    return edge.source, edge.target


class GroupingInferencer:
    """Assign ``parent_id`` pointers from containment and puzzle relationships."""

    def infer(self, nodes: Sequence[CanonicalNode], edges: Sequence[CanonicalEdge]) -> List[CanonicalNode]:
        """Return copies of ``nodes`` with grouping fields populated.

        Args:
            nodes: Canonical nodes in display order.
            edges: Canonical edges in input order.

        Returns:
            List[CanonicalNode]: Same length and order as ``nodes``; only
            ``parent_id`` and ``is_actual_parent_group`` differ.
        """

        by_id: Dict[str, CanonicalNode] = {}
        for node in nodes:
            by_id.setdefault(node.id, node)
        parents: Dict[str, Optional[str]] = {node_id: node.parent_id for node_id, node in by_id.items()}

        self._containment_pass(by_id, edges, parents)
        self._dependency_pass(nodes, by_id, edges, parents)

        parent_ids = {parent for parent in parents.values() if parent is not None}
        grouped = [
            node.model_copy(
                update={
                    "parent_id": parents.get(node.id),
                    "is_actual_parent_group": node.id in parent_ids,
                }
            )
            for node in nodes
        ]
        LOGGER.debug(
            "Grouping assigned %d children to %d parent groups",
            sum(1 for parent in parents.values() if parent is not None),
            len(parent_ids),
        )
        return grouped

    def _containment_pass(
        self,
        by_id: Dict[str, CanonicalNode],
        edges: Sequence[CanonicalEdge],
        parents: Dict[str, Optional[str]],
    ) -> None:
        for edge in edges:
            if edge.category is not EdgeCategory.CONTAINMENT:
                continue
            container_id, content_id = _containment_direction(edge)
            container = by_id.get(container_id)
            content = by_id.get(content_id)
            if container is None or content is None:
                continue
            if container.type is not EntityKind.ELEMENT or content.type is not EntityKind.ELEMENT:
                continue
            if parents.get(content_id) is not None:
                continue
            self._assign(content_id, container_id, parents)

    def _dependency_pass(
        self,
        nodes: Sequence[CanonicalNode],
        by_id: Dict[str, CanonicalNode],
        edges: Sequence[CanonicalEdge],
        parents: Dict[str, Optional[str]],
    ) -> None:
        for puzzle in nodes:
            if puzzle.type is not EntityKind.PUZZLE:
                continue
            for edge in edges:
                tag = normalize_relation(edge.short_label)
                if edge.target == puzzle.id and tag in _REQUIRED_INTO_PUZZLE | _REWARD_INTO_PUZZLE:
                    element_id = edge.source
                elif edge.source == puzzle.id and tag in _REWARD_FROM_PUZZLE | _REQUIRED_FROM_PUZZLE:
                    element_id = edge.target
                else:
                    continue
                element = by_id.get(element_id)
                if element is None or element.type is not EntityKind.ELEMENT:
                    continue
                if parents.get(element_id) is not None:
                    continue
                self._assign(element_id, puzzle.id, parents)

    @staticmethod
    def _assign(child_id: str, parent_id: str, parents: Dict[str, Optional[str]]) -> None:
        if would_create_cycle(child_id, parent_id, parents):
            LOGGER.debug("Skipping grouping %s -> %s; it would create a cycle", child_id, parent_id)
            return
        parents[child_id] = parent_id


def infer_grouping(nodes: Sequence[CanonicalNode], edges: Sequence[CanonicalEdge]) -> List[CanonicalNode]:
    """Return nodes with ``parent_id`` and ``is_actual_parent_group`` inferred."""

    return GroupingInferencer().infer(nodes, edges)
