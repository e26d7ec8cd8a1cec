"""Layout strategy dispatch."""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from backend.app.contracts import CanonicalEdge, CanonicalNode
from backend.app.layout.base import LayoutError, LayoutOptions, parse_options
from backend.app.layout.force import ForceOptions, run_force_layout, run_force_layout_async
from backend.app.layout.hierarchical import HierarchicalOptions, layout_hierarchical
from backend.app.layout.radial import RadialOptions, layout_radial

LOGGER = logging.getLogger(__name__)

LayoutFunction = Callable[[Sequence[CanonicalNode], Sequence[CanonicalEdge], Any], List[CanonicalNode]]

LAYOUT_STRATEGIES: Dict[str, Tuple[Type[LayoutOptions], LayoutFunction]] = {
    "hierarchical": (HierarchicalOptions, layout_hierarchical),
    "radial": (RadialOptions, layout_radial),
    "force-directed": (ForceOptions, run_force_layout),
}


def _resolve(layout_type: str, options: Optional[Mapping[str, Any]]) -> Tuple[LayoutOptions, LayoutFunction]:
    strategy = LAYOUT_STRATEGIES.get(layout_type)
    if strategy is None:
        raise LayoutError(f"Unknown layout type '{layout_type}'")
    options_model, function = strategy
    return parse_options(options_model, options), function


def layout_graph(
    nodes: Sequence[CanonicalNode],
    edges: Sequence[CanonicalEdge],
    layout_type: str,
    options: Optional[Mapping[str, Any]] = None,
) -> List[CanonicalNode]:
    """Position ``nodes`` with the named strategy.

    Args:
        nodes: Filtered, grouped canonical nodes.
        edges: Edges between those nodes.
        layout_type: ``hierarchical``, ``radial`` or ``force-directed``.
        options: Strategy options in snake_case or camelCase.

    Returns:
        List[CanonicalNode]: Positioned copies in input order; only ``position``
        and ``layout`` differ from the inputs.

    Raises:
        LayoutError: If the type is unknown, options are invalid or the
            graph cannot be laid out.
    """

    parsed, function = _resolve(layout_type, options)
    LOGGER.debug("Running %s layout over %d nodes", layout_type, len(nodes))
    return function(nodes, edges, parsed)


async def layout_graph_async(
    nodes: Sequence[CanonicalNode],
    edges: Sequence[CanonicalEdge],
    layout_type: str,
    options: Optional[Mapping[str, Any]] = None,
) -> List[CanonicalNode]:
    """Async variant of :func:`layout_graph`; the force strategy yields while it runs."""

    parsed, function = _resolve(layout_type, options)
    if layout_type == "force-directed":
        return await run_force_layout_async(nodes, edges, parsed)  # type: ignore[arg-type]
    return function(nodes, edges, parsed)
