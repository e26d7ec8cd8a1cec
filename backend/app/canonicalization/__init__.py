"""Canonicalization package turning raw payloads into the canonical graph."""

from .graph_canonicalizer import CanonicalGraph, GraphCanonicalizer, canonicalize, entity_route
from .relations import (
    EndpointKinds,
    RelationFamily,
    classify_relationship,
    relation_family,
    style_for,
    style_table,
)

__all__ = [
    "CanonicalGraph",
    "EndpointKinds",
    "GraphCanonicalizer",
    "RelationFamily",
    "canonicalize",
    "classify_relationship",
    "entity_route",
    "relation_family",
    "style_for",
    "style_table",
]
