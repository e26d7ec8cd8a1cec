"""Immutable data contracts for the relationship explorer pipeline."""
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class EntityKind(str, Enum):
    """Kinds of entity that can appear in a relationship graph."""

    CHARACTER = "Character"
    ELEMENT = "Element"
    PUZZLE = "Puzzle"
    TIMELINE = "Timeline"

    @classmethod
    def parse(cls, value: Any) -> "EntityKind":
        """Return the kind matching ``value`` case-insensitively.

        Raises:
            ValueError: If ``value`` names no known entity kind.
        """

        if isinstance(value, cls):
            return value
        text = str(value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"unknown entity kind: {value!r}")


class EdgeCategory(str, Enum):
    """Visual relationship category assigned to every canonical edge."""

    DEPENDENCY = "dependency"
    CONTAINMENT = "containment"
    CHARACTER = "character"
    TIMELINE = "timeline"
    ASSOCIATION = "association"
    DEFAULT = "default"


class _FrozenBaseModel(BaseModel):
    """Base model enforcing immutability and camelCase wire names."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class RawNode(BaseModel):
    """Entity record as delivered by the data-fetching collaborator."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    type: EntityKind

    @field_validator("type", mode="before")
    @classmethod
    def _parse_kind(cls, value: Any) -> EntityKind:
        return EntityKind.parse(value)

    def attributes(self) -> Dict[str, Any]:
        """Return every field of the record, including type-specific extras."""

        return self.model_dump(mode="json")


class RawEdge(BaseModel):
    """Relationship record as delivered by the data-fetching collaborator."""

    model_config = ConfigDict(frozen=True, extra="allow")

    id: Optional[str] = None
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    label: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("label", mode="before")
    @classmethod
    def _coerce_label(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("data", mode="before")
    @classmethod
    def _coerce_data(cls, value: Any) -> Dict[str, Any]:
        return dict(value) if isinstance(value, dict) else {}

    @property
    def short_label(self) -> Optional[str]:
        """Return the canonical relationship tag when the payload carries one."""

        value = self.data.get("shortLabel")
        return str(value) if value else None


class RawGraphPayload(BaseModel):
    """The ``{center, nodes, edges}`` graph contract; other keys are ignored."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    center: Optional[RawNode] = None
    nodes: List[RawNode] = Field(default_factory=list)
    edges: List[RawEdge] = Field(default_factory=list)


class Position(_FrozenBaseModel):
    """Top-left corner of a node on the layout canvas."""

    x: float
    y: float


class EdgeStyle(_FrozenBaseModel):
    """Rendering hints attached to an edge for the presentation layer."""

    stroke: str
    stroke_width: float = Field(..., gt=0)
    stroke_dasharray: Optional[str] = None
    animated: bool = False


class CanonicalNode(_FrozenBaseModel):
    """Normalized graph node flowing through filtering and layout."""

    id: str = Field(..., min_length=1)
    type: EntityKind
    label: str
    is_center: bool = False
    properties: Dict[str, Any] = Field(default_factory=dict)
    parent_id: Optional[str] = None
    is_actual_parent_group: bool = False
    position: Optional[Position] = None
    width: float = Field(170.0, gt=0)
    height: float = Field(60.0, gt=0)
    route: Optional[str] = None
    layout: Dict[str, float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _reject_self_parent(self) -> "CanonicalNode":
        if self.parent_id is not None and self.parent_id == self.id:
            raise ValueError(f"node {self.id} cannot be its own parent")
        return self

    @property
    def center_point(self) -> Optional[tuple[float, float]]:
        """Return the node's centre on the canvas once it has a position."""

        if self.position is None:
            return None
        return (self.position.x + self.width / 2.0, self.position.y + self.height / 2.0)


class CanonicalEdge(_FrozenBaseModel):
    """Normalized, classified relationship between two canonical nodes."""

    id: str = Field(..., min_length=1)
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    label: str = ""
    category: EdgeCategory = EdgeCategory.DEFAULT
    data: Dict[str, Any] = Field(default_factory=dict)
    style: Optional[EdgeStyle] = None

    @property
    def short_label(self) -> Optional[str]:
        """Return the canonical relationship tag when present."""

        value = self.data.get("shortLabel")
        return str(value) if value else None

    def touches(self, node_id: str) -> bool:
        """Return whether ``node_id`` is one of the edge endpoints."""

        return self.source == node_id or self.target == node_id

    def other_end(self, node_id: str) -> str:
        """Return the endpoint opposite ``node_id``."""

        return self.target if self.source == node_id else self.source
