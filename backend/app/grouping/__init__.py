"""Compound grouping inference for canonical graphs."""

from .forest import effective_parent, parent_depths, readmit_descendants, would_create_cycle
from .inference import GroupingInferencer, infer_grouping

__all__ = [
    "GroupingInferencer",
    "effective_parent",
    "infer_grouping",
    "parent_depths",
    "readmit_descendants",
    "would_create_cycle",
]
