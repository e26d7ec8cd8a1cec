"""Relationship vocabulary and edge category classification."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional

from backend.app.contracts import EdgeCategory, EdgeStyle, EntityKind

LOGGER = logging.getLogger(__name__)


class RelationFamily(str, Enum):
    """Families of relationship tags sharing one classification rule."""

    DEPENDENCY = "dependency"
    CONTAINMENT = "containment"
    OWNERSHIP = "ownership"
    PARTICIPATION = "participation"


RELATION_FAMILIES: Mapping[str, RelationFamily] = {
    "requires": RelationFamily.DEPENDENCY,
    "required for": RelationFamily.DEPENDENCY,
    "required by": RelationFamily.DEPENDENCY,
    "rewards": RelationFamily.DEPENDENCY,
    "reward from": RelationFamily.DEPENDENCY,
    "unlocks": RelationFamily.DEPENDENCY,
    "locked in": RelationFamily.DEPENDENCY,
    "sub-puzzle of": RelationFamily.DEPENDENCY,
    "has sub-puzzle": RelationFamily.DEPENDENCY,
    "contains": RelationFamily.CONTAINMENT,
    "inside": RelationFamily.CONTAINMENT,
    "contained in": RelationFamily.CONTAINMENT,
    "owns": RelationFamily.OWNERSHIP,
    "owned by": RelationFamily.OWNERSHIP,
    "associated with": RelationFamily.OWNERSHIP,
    "associated": RelationFamily.OWNERSHIP,
    "participates in": RelationFamily.PARTICIPATION,
    "participates": RelationFamily.PARTICIPATION,
    "involves": RelationFamily.PARTICIPATION,
    "involved in": RelationFamily.PARTICIPATION,
    "appears in": RelationFamily.PARTICIPATION,
}

_DEPENDENCY_HINTS = ("puzzle", "require", "reward", "lock")
_CONTAINMENT_HINTS = ("contain", "inside")

EDGE_STYLES: Mapping[EdgeCategory, EdgeStyle] = {
    EdgeCategory.DEPENDENCY: EdgeStyle(stroke="#f57c00", stroke_width=2.2, animated=True),
    EdgeCategory.CONTAINMENT: EdgeStyle(stroke="#03a9f4", stroke_width=1.5, stroke_dasharray="5, 5"),
    EdgeCategory.CHARACTER: EdgeStyle(stroke="#3f51b5", stroke_width=1.8),
    EdgeCategory.TIMELINE: EdgeStyle(stroke="#d81b60", stroke_width=1.8),
    EdgeCategory.ASSOCIATION: EdgeStyle(stroke="#4caf50", stroke_width=1.5),
    EdgeCategory.DEFAULT: EdgeStyle(stroke="#90a4ae", stroke_width=1.2),
}


@dataclass(frozen=True)
class EndpointKinds:
    """Entity kinds at either end of an edge, when known."""

    source: Optional[EntityKind]
    target: Optional[EntityKind]

    def includes(self, kind: EntityKind) -> bool:
        return self.source is kind or self.target is kind


def normalize_relation(label: Optional[str]) -> str:
    """Return the lookup key for a relationship tag."""

    if not label:
        return ""
    return " ".join(label.strip().lower().split())


def relation_family(label: Optional[str]) -> Optional[RelationFamily]:
    """Return the family of an exact relationship tag, if it is known."""

    return RELATION_FAMILIES.get(normalize_relation(label))


def _category_for_family(family: RelationFamily, endpoints: EndpointKinds) -> EdgeCategory:
    if family is RelationFamily.DEPENDENCY:
        return EdgeCategory.DEPENDENCY
    if family is RelationFamily.CONTAINMENT:
        return EdgeCategory.CONTAINMENT
    if family is RelationFamily.OWNERSHIP:
        if endpoints.includes(EntityKind.CHARACTER):
            return EdgeCategory.CHARACTER
        return EdgeCategory.ASSOCIATION
    if family is RelationFamily.PARTICIPATION:
        if endpoints.includes(EntityKind.TIMELINE):
            return EdgeCategory.TIMELINE
        return EdgeCategory.ASSOCIATION
    raise ValueError(f"unhandled relation family: {family!r}")


def _category_from_label(label: str, endpoints: EndpointKinds) -> Optional[EdgeCategory]:
    lowered = label.lower()
    if any(hint in lowered for hint in _DEPENDENCY_HINTS):
        return EdgeCategory.DEPENDENCY
    if any(hint in lowered for hint in _CONTAINMENT_HINTS):
        return EdgeCategory.CONTAINMENT
    if endpoints.includes(EntityKind.CHARACTER):
        return EdgeCategory.CHARACTER
    if endpoints.includes(EntityKind.TIMELINE):
        return EdgeCategory.TIMELINE
    return None


def classify_relationship(
    short_label: Optional[str],
    label: Optional[str],
    endpoints: EndpointKinds,
) -> EdgeCategory:
    """Classify a relationship into an edge category.

    The exact ``short_label`` table wins. Substring hints on the free-form
    ``label`` (and the endpoint kinds) are consulted only when the tag is
    missing or unknown, and ``EdgeCategory.DEFAULT`` is returned when neither
    matches.

    Args:
        short_label: Canonical relationship tag from the edge payload.
        label: Human-readable relationship label.
        endpoints: Entity kinds of the edge endpoints.

    Returns:
        EdgeCategory: The resolved category.
    """

    family = relation_family(short_label)
    if family is not None:
        return _category_for_family(family, endpoints)
    from_label = _category_from_label(label or "", endpoints)
    if from_label is not None:
        return from_label
    LOGGER.debug(
        "Unrecognised relationship vocabulary (short_label=%r, label=%r); using default category",
        short_label,
        label,
    )
    return EdgeCategory.DEFAULT


def style_for(category: EdgeCategory) -> EdgeStyle:
    """Return the rendering hints for ``category``."""

    return EDGE_STYLES.get(category, EDGE_STYLES[EdgeCategory.DEFAULT])


def style_table() -> Dict[str, Dict[str, object]]:
    """Return the style table keyed by category value for serialization."""

    return {
        category.value: style.model_dump(mode="json", by_alias=True)
        for category, style in EDGE_STYLES.items()
    }
