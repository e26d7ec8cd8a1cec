"""Composable filter chain applied to grouped canonical graphs."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from backend.app.config import FilterDefaultsConfig
from backend.app.contracts import CanonicalEdge, CanonicalNode, EdgeCategory, EntityKind
from backend.app.filtering.connections import prune_redundant_connections
from backend.app.grouping.forest import readmit_descendants

LOGGER = logging.getLogger(__name__)

_ALL_SENTINELS = {"", "all", "all acts", "all memory sets"}
_ALL_NODE_KINDS = frozenset(kind.value for kind in EntityKind)
_ALL_EDGE_CATEGORIES = frozenset(category.value for category in EdgeCategory)

GraphPair = Tuple[List[CanonicalNode], List[CanonicalEdge]]


class FilterSettings(BaseModel):
    """Declarative filter settings.

    A toggle set that is empty, or that enables every known value, means no
    restriction.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    center_id: Optional[str] = None
    depth: int = Field(1, ge=0)
    node_filters: Dict[str, bool] = Field(default_factory=dict)
    edge_filters: Dict[str, bool] = Field(default_factory=dict)
    act_focus_filter: str = "All"
    theme_filters: Dict[str, bool] = Field(default_factory=dict)
    memory_set_filter: str = "All"
    simplify_connections: bool = False

    @classmethod
    def from_defaults(
        cls,
        defaults: FilterDefaultsConfig,
        overrides: Optional[Mapping[str, Any]] = None,
        **extra: Any,
    ) -> "FilterSettings":
        """Build settings from configured defaults with explicit overrides.

        Args:
            defaults: Configured filter defaults.
            overrides: Request settings in snake_case or camelCase; only the
                keys present replace defaults.
            **extra: Further overrides; ``None`` values are ignored.

        Returns:
            FilterSettings: The merged settings.
        """

        supplied = dict(overrides or {})
        supplied.update({key: value for key, value in extra.items() if value is not None})
        explicit = cls.model_validate(supplied)
        values = defaults.model_dump()
        values.update(explicit.model_dump(include=explicit.model_fields_set))
        return cls.model_validate(values)


@dataclass(frozen=True)
class FilterResult:
    """Filtered graph plus diagnostics raised along the chain."""

    nodes: Tuple[CanonicalNode, ...]
    edges: Tuple[CanonicalEdge, ...]
    diagnostics: Tuple[str, ...] = field(default_factory=tuple)


def _enabled(toggles: Dict[str, bool]) -> Set[str]:
    return {key for key, value in toggles.items() if value}


def _restricts(enabled: Set[str], known: frozenset) -> bool:
    """Return whether a toggle set leaves out at least one known value."""

    return bool(enabled) and not known <= enabled


def _is_wildcard(value: Optional[str]) -> bool:
    return value is None or value.strip().lower() in _ALL_SENTINELS


def _as_set(value: Any) -> Set[str]:
    if isinstance(value, str):
        return {value}
    if isinstance(value, (list, tuple, set, frozenset)):
        return {str(item) for item in value}
    return set()


def consistent_edges(nodes: Iterable[CanonicalNode], edges: Iterable[CanonicalEdge]) -> List[CanonicalEdge]:
    """Return edges whose endpoints are both present in ``nodes``."""

    present = {node.id for node in nodes}
    return [edge for edge in edges if edge.source in present and edge.target in present]


class FilterChain:
    """Run the filter stages in order, keeping edges referentially consistent."""

    def __init__(self, settings: FilterSettings) -> None:
        self._settings = settings
        self._diagnostics: List[str] = []

    def apply(self, nodes: Sequence[CanonicalNode], edges: Sequence[CanonicalEdge]) -> FilterResult:
        """Apply every stage to the graph.

        Args:
            nodes: Grouped canonical nodes.
            edges: Canonical edges.

        Returns:
            FilterResult: Surviving nodes and edges in input order.
        """

        self._diagnostics = []
        if not isinstance(nodes, (list, tuple)) or not isinstance(edges, (list, tuple)):
            self._diagnose("Filter input nodes and edges must be sequences")
            return FilterResult(nodes=(), edges=(), diagnostics=tuple(self._diagnostics))

        working_nodes = list(nodes)
        working_edges = consistent_edges(working_nodes, edges)
        stages = (
            ("connections", self._simplify_connections),
            ("depth", self._limit_depth),
            ("act_focus", self._filter_act_focus),
            ("themes", self._filter_themes),
            ("memory_set", self._filter_memory_set),
            ("node_type", self._filter_node_types),
            ("edge_type", self._filter_edge_types),
        )
        for name, stage in stages:
            working_nodes, working_edges = stage(working_nodes, working_edges)
            working_edges = consistent_edges(working_nodes, working_edges)
            LOGGER.debug(
                "Filter stage %s kept %d nodes and %d edges", name, len(working_nodes), len(working_edges)
            )
        return FilterResult(
            nodes=tuple(working_nodes),
            edges=tuple(working_edges),
            diagnostics=tuple(self._diagnostics),
        )

    def _diagnose(self, message: str) -> None:
        LOGGER.warning(message)
        self._diagnostics.append(message)

    def _is_center(self, node: CanonicalNode) -> bool:
        return node.is_center or node.id == self._settings.center_id

    def _simplify_connections(self, nodes: List[CanonicalNode], edges: List[CanonicalEdge]) -> GraphPair:
        if not self._settings.simplify_connections:
            return nodes, edges
        return prune_redundant_connections(nodes, edges, self._settings.center_id)

    def _limit_depth(self, nodes: List[CanonicalNode], edges: List[CanonicalEdge]) -> GraphPair:
        center_id = self._settings.center_id
        present = {node.id for node in nodes}
        if center_id is None or center_id not in present:
            self._diagnose(
                f"Focal node '{center_id}' is not in the graph; depth restriction skipped"
            )
            return nodes, edges

        adjacency: Dict[str, List[str]] = {node_id: [] for node_id in present}
        for edge in edges:
            adjacency[edge.source].append(edge.target)
            adjacency[edge.target].append(edge.source)

        depth = self._settings.depth
        visited = {center_id}
        queue: deque[Tuple[str, int]] = deque([(center_id, 0)])
        while queue:
            node_id, distance = queue.popleft()
            if distance >= depth:
                continue
            for neighbour in adjacency[node_id]:
                if neighbour not in visited:
                    visited.add(neighbour)
                    queue.append((neighbour, distance + 1))

        if depth == 0:
            return [node for node in nodes if node.id == center_id], edges
        admitted = readmit_descendants(visited, nodes)
        return [node for node in nodes if node.id in admitted], edges

    def _filter_act_focus(self, nodes: List[CanonicalNode], edges: List[CanonicalEdge]) -> GraphPair:
        act = self._settings.act_focus_filter
        if _is_wildcard(act):
            return nodes, edges
        kept = [node for node in nodes if self._is_center(node) or node.properties.get("actFocus") == act]
        return kept, edges

    def _filter_themes(self, nodes: List[CanonicalNode], edges: List[CanonicalEdge]) -> GraphPair:
        themes = _enabled(self._settings.theme_filters)
        if not themes:
            return nodes, edges
        kept = [
            node
            for node in nodes
            if self._is_center(node) or _as_set(node.properties.get("themes")) & themes
        ]
        return kept, edges

    def _filter_memory_set(self, nodes: List[CanonicalNode], edges: List[CanonicalEdge]) -> GraphPair:
        memory_set = self._settings.memory_set_filter
        if _is_wildcard(memory_set):
            return nodes, edges
        kept = [
            node
            for node in nodes
            if self._is_center(node) or memory_set in _as_set(node.properties.get("memorySets"))
        ]
        return kept, edges

    def _filter_node_types(self, nodes: List[CanonicalNode], edges: List[CanonicalEdge]) -> GraphPair:
        kinds = _enabled(self._settings.node_filters)
        if not _restricts(kinds, _ALL_NODE_KINDS):
            return nodes, edges
        direct = {node.id for node in nodes if self._is_center(node) or node.type.value in kinds}
        admitted = readmit_descendants(direct, nodes)
        return [node for node in nodes if node.id in admitted], edges

    def _filter_edge_types(self, nodes: List[CanonicalNode], edges: List[CanonicalEdge]) -> GraphPair:
        categories = _enabled(self._settings.edge_filters)
        if not _restricts(categories, _ALL_EDGE_CATEGORIES):
            return nodes, edges
        kept_edges = [edge for edge in edges if edge.category.value in categories]
        survivors = {node.id for node in nodes if self._is_center(node)}
        for edge in kept_edges:
            survivors.add(edge.source)
            survivors.add(edge.target)
        admitted = readmit_descendants(survivors, nodes)
        return [node for node in nodes if node.id in admitted], kept_edges


def filter_graph(
    nodes: Sequence[CanonicalNode],
    edges: Sequence[CanonicalEdge],
    settings: FilterSettings,
) -> FilterResult:
    """Filter a grouped canonical graph with ``settings``."""

    return FilterChain(settings).apply(nodes, edges)
