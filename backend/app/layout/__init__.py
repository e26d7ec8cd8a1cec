"""Layout strategies assigning 2-D positions to canonical nodes."""

from .base import LayoutError, LayoutOptions
from .engine import LAYOUT_STRATEGIES, layout_graph, layout_graph_async
from .force import ForceOptions, ForceState, force_step, initial_force_state, run_force_layout, run_force_layout_async
from .hierarchical import HierarchicalOptions, layout_hierarchical
from .radial import RadialOptions, layout_radial

__all__ = [
    "ForceOptions",
    "ForceState",
    "HierarchicalOptions",
    "LAYOUT_STRATEGIES",
    "LayoutError",
    "LayoutOptions",
    "RadialOptions",
    "force_step",
    "initial_force_state",
    "layout_graph",
    "layout_graph_async",
    "layout_hierarchical",
    "layout_radial",
    "run_force_layout",
    "run_force_layout_async",
]
