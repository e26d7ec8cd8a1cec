"""Filter chain stages for relationship graphs."""

from .chain import FilterChain, FilterResult, FilterSettings, consistent_edges, filter_graph
from .connections import prune_redundant_connections

__all__ = [
    "FilterChain",
    "FilterResult",
    "FilterSettings",
    "consistent_edges",
    "filter_graph",
    "prune_redundant_connections",
]
