"""Conversion of raw relationship payloads into the canonical graph model."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from backend.app.canonicalization.relations import EndpointKinds, classify_relationship, style_for
from backend.app.config import CanonicalizationConfig
from backend.app.contracts import (
    CanonicalEdge,
    CanonicalNode,
    EntityKind,
    RawEdge,
    RawGraphPayload,
    RawNode,
)

LOGGER = logging.getLogger(__name__)

_LABEL_FALLBACK_FIELDS = ("name", "description", "puzzle")
_UNNAMED = "Unnamed"


@dataclass(frozen=True)
class CanonicalGraph:
    """Canonical nodes and edges plus non-fatal diagnostics."""

    nodes: Tuple[CanonicalNode, ...]
    edges: Tuple[CanonicalEdge, ...]
    diagnostics: Tuple[str, ...] = field(default_factory=tuple)


def entity_route(kind: EntityKind, node_id: str) -> str:
    """Return the navigation route for an entity detail page."""

    return f"/{kind.value.lower()}s/{node_id}"


def _display_label(attributes: Mapping[str, Any]) -> str:
    for key in _LABEL_FALLBACK_FIELDS:
        value = attributes.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return _UNNAMED


class GraphCanonicalizer:
    """Build canonical nodes and classified edges from a raw graph payload."""

    def __init__(self, config: Optional[CanonicalizationConfig] = None) -> None:
        self._config = config or CanonicalizationConfig()

    def canonicalize(self, payload: Any, focal_id: Optional[str]) -> CanonicalGraph:
        """Convert ``payload`` into the canonical node/edge model.

        Args:
            payload: ``RawGraphPayload`` or a JSON-shaped mapping with
                ``center``, ``nodes`` and ``edges`` keys. Any other keys are
                ignored.
            focal_id: Identifier of the focal entity.

        Returns:
            CanonicalGraph: Nodes in input order (a synthesized centre appended
            last), edges in input order, and diagnostics for skipped records.
        """

        diagnostics: List[str] = []
        records = self._extract_records(payload, diagnostics)
        if records is None:
            return CanonicalGraph(nodes=(), edges=(), diagnostics=tuple(diagnostics))
        center, raw_nodes, raw_edges = records

        nodes: List[CanonicalNode] = []
        seen: Dict[str, CanonicalNode] = {}
        for raw_node in raw_nodes:
            if raw_node.id in seen:
                message = f"Duplicate node id '{raw_node.id}' ignored"
                LOGGER.warning(message)
                diagnostics.append(message)
                continue
            node = self._map_node(raw_node, is_center=raw_node.id == focal_id)
            seen[node.id] = node
            nodes.append(node)

        if focal_id is not None and focal_id not in seen and center is not None:
            if center.id in seen:
                message = f"Center record '{center.id}' duplicates a listed node; not synthesized"
                LOGGER.warning(message)
                diagnostics.append(message)
            else:
                node = self._map_node(center, is_center=True)
                seen[node.id] = node
                nodes.append(node)

        if not nodes:
            if raw_edges:
                LOGGER.debug("Dropping %d edges from a payload without nodes", len(raw_edges))
            return CanonicalGraph(nodes=(), edges=(), diagnostics=tuple(diagnostics))

        edges = [self._map_edge(raw_edge, index, seen) for index, raw_edge in enumerate(raw_edges)]
        LOGGER.debug("Canonicalized %d nodes and %d edges", len(nodes), len(edges))
        return CanonicalGraph(nodes=tuple(nodes), edges=tuple(edges), diagnostics=tuple(diagnostics))

    def _extract_records(
        self, payload: Any, diagnostics: List[str]
    ) -> Optional[Tuple[Optional[RawNode], List[RawNode], List[RawEdge]]]:
        if isinstance(payload, RawGraphPayload):
            return payload.center, list(payload.nodes), list(payload.edges)
        if not isinstance(payload, Mapping):
            message = "Graph payload must be a mapping with 'nodes' and 'edges' lists"
            LOGGER.warning(message)
            diagnostics.append(message)
            return None
        raw_nodes = payload.get("nodes")
        raw_edges = payload.get("edges")
        if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
            message = "Graph payload 'nodes' and 'edges' must both be lists"
            LOGGER.warning(message)
            diagnostics.append(message)
            return None
        center: Optional[RawNode] = None
        raw_center = payload.get("center")
        if raw_center is not None:
            center = self._validate(RawNode, raw_center, "center", diagnostics)
        nodes: List[RawNode] = []
        for index, item in enumerate(raw_nodes):
            node = self._validate(RawNode, item, f"nodes[{index}]", diagnostics)
            if node is not None:
                nodes.append(node)
        edges: List[RawEdge] = []
        for index, item in enumerate(raw_edges):
            edge = self._validate(RawEdge, item, f"edges[{index}]", diagnostics)
            if edge is not None:
                edges.append(edge)
        return center, nodes, edges

    @staticmethod
    def _validate(model: Any, item: Any, location: str, diagnostics: List[str]) -> Any:
        try:
            return model.model_validate(item)
        except ValidationError as exc:
            message = f"Skipping malformed record at {location}: {exc.error_count()} validation error(s)"
            LOGGER.warning(message)
            diagnostics.append(message)
            return None

    def _map_node(self, raw: RawNode, *, is_center: bool) -> CanonicalNode:
        attributes = raw.attributes()
        if is_center:
            width, height = self._config.center_node_width, self._config.center_node_height
        else:
            width, height = self._config.node_width, self._config.node_height
        return CanonicalNode(
            id=raw.id,
            type=raw.type,
            label=_display_label(attributes),
            is_center=is_center,
            properties=attributes,
            width=width,
            height=height,
            route=None if is_center else entity_route(raw.type, raw.id),
        )

    @staticmethod
    def _map_edge(raw: RawEdge, index: int, nodes: Mapping[str, CanonicalNode]) -> CanonicalEdge:
        source = nodes.get(raw.source)
        target = nodes.get(raw.target)
        endpoints = EndpointKinds(
            source=source.type if source is not None else None,
            target=target.type if target is not None else None,
        )
        category = classify_relationship(raw.short_label, raw.label, endpoints)
        return CanonicalEdge(
            id=raw.id or f"edge-{index}",
            source=raw.source,
            target=raw.target,
            label=raw.label,
            category=category,
            data=dict(raw.data),
            style=style_for(category),
        )


def canonicalize(
    payload: Any,
    focal_id: Optional[str],
    *,
    config: Optional[CanonicalizationConfig] = None,
) -> CanonicalGraph:
    """Convert a raw graph payload into canonical nodes and edges.

    Args:
        payload: Raw ``{center, nodes, edges}`` payload.
        focal_id: Identifier of the focal entity.
        config: Optional node size configuration.

    Returns:
        CanonicalGraph: Canonical nodes, edges and diagnostics.
    """

    return GraphCanonicalizer(config).canonicalize(payload, focal_id)
