"""Force-directed layout expressed as an explicit step function.

``force_step`` advances a :class:`ForceState` by one relaxation iteration and
never mutates its input, so a caller can drive the simulation one step at a
time. ``run_force_layout`` loops to completion synchronously;
``run_force_layout_async`` yields to the event loop every ``steps_per_tick``
steps. Each run owns its state, so a superseded run cannot write into a newer
result.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, replace
from typing import List, Sequence, Tuple

import numpy as np
from pydantic import Field
from typing_extensions import Literal

from backend.app.contracts import CanonicalEdge, CanonicalNode
from backend.app.grouping.forest import effective_parent
from backend.app.layout.base import LayoutOptions, ensure_unique_ids, place

LOGGER = logging.getLogger(__name__)

_EPSILON = 1e-6


class ForceOptions(LayoutOptions):
    """Options for the force-directed layout."""

    width: float = Field(800.0, gt=0)
    height: float = Field(600.0, gt=0)
    iterations: int = Field(120, ge=0)
    charge_strength: float = -120.0
    link_distance: float = Field(90.0, gt=0)
    link_strength: float = Field(0.7, ge=0.0)
    center_strength: float = Field(0.06, ge=0.0)
    parent_strength: float = Field(0.3, ge=0.0)
    max_displacement: float = Field(40.0, gt=0)
    initial_placement: Literal["grid", "circle"] = "grid"
    steps_per_tick: int = Field(10, ge=1)


@dataclass(frozen=True, eq=False)
class ForceState:
    """Snapshot of a force simulation.

    ``positions`` holds node centres, one row per entry in ``node_ids``.
    ``links`` and ``parent_links`` hold index pairs into those rows.
    """

    node_ids: Tuple[str, ...]
    positions: np.ndarray
    sizes: np.ndarray
    links: np.ndarray
    parent_links: np.ndarray
    options: ForceOptions
    iteration: int = 0

    @property
    def done(self) -> bool:
        return self.iteration >= self.options.iterations

    @property
    def alpha(self) -> float:
        """Cooling factor decaying linearly from 1 to 0."""

        if self.options.iterations == 0:
            return 0.0
        return max(0.0, 1.0 - self.iteration / self.options.iterations)


def _initial_positions(count: int, options: ForceOptions) -> np.ndarray:
    if count == 1:
        return np.array([[options.width / 2.0, options.height / 2.0]], dtype=np.float64)
    if options.initial_placement == "circle":
        radius = 0.35 * min(options.width, options.height)
        angles = 2.0 * np.pi * np.arange(count) / count
        return np.column_stack(
            (options.width / 2.0 + radius * np.cos(angles), options.height / 2.0 + radius * np.sin(angles))
        )
    columns = math.ceil(math.sqrt(count))
    rows = math.ceil(count / columns)
    index = np.arange(count)
    cell_width = options.width / columns
    cell_height = options.height / rows
    return np.column_stack(((index % columns + 0.5) * cell_width, (index // columns + 0.5) * cell_height))


def _index_pairs(pairs: List[Tuple[int, int]]) -> np.ndarray:
    if not pairs:
        return np.zeros((0, 2), dtype=np.int64)
    return np.array(pairs, dtype=np.int64)


def initial_force_state(
    nodes: Sequence[CanonicalNode],
    edges: Sequence[CanonicalEdge],
    options: ForceOptions,
) -> ForceState:
    """Build the starting state with nodes spread by ``initial_placement``.

    Raises:
        LayoutError: If node identifiers repeat.
    """

    ensure_unique_ids(nodes)
    index = {node.id: position for position, node in enumerate(nodes)}
    links = []
    for edge in edges:
        if edge.source in index and edge.target in index and edge.source != edge.target:
            links.append((index[edge.source], index[edge.target]))
    parent_links = []
    for node in nodes:
        parent_id = effective_parent(node, index.keys())
        if parent_id is not None:
            parent_links.append((index[node.id], index[parent_id]))

    return ForceState(
        node_ids=tuple(node.id for node in nodes),
        positions=_initial_positions(len(nodes), options) if nodes else np.zeros((0, 2)),
        sizes=np.array([[node.width, node.height] for node in nodes], dtype=np.float64).reshape(-1, 2),
        links=_index_pairs(links),
        parent_links=_index_pairs(parent_links),
        options=options,
    )


def _spring(positions: np.ndarray, pairs: np.ndarray, rest: float, strength: float) -> np.ndarray:
    displacement = np.zeros_like(positions)
    if len(pairs) == 0 or strength == 0.0:
        return displacement
    delta = positions[pairs[:, 1]] - positions[pairs[:, 0]]
    length = np.maximum(np.linalg.norm(delta, axis=1, keepdims=True), _EPSILON)
    pull = 0.5 * strength * (length - rest) / length * delta
    np.add.at(displacement, pairs[:, 0], pull)
    np.add.at(displacement, pairs[:, 1], -pull)
    return displacement


def force_step(state: ForceState) -> ForceState:
    """Advance ``state`` by one iteration and return the new state."""

    if state.done:
        return state
    if not state.node_ids:
        return replace(state, iteration=state.iteration + 1)

    options = state.options
    positions = state.positions

    delta = positions[:, None, :] - positions[None, :, :]
    distance_sq = np.sum(delta**2, axis=-1)
    np.fill_diagonal(distance_sq, np.inf)
    distance_sq = np.maximum(distance_sq, _EPSILON)
    displacement = (-options.charge_strength) * np.sum(delta / distance_sq[..., None], axis=1)

    displacement += _spring(positions, state.links, options.link_distance, options.link_strength)
    displacement += _spring(
        positions, state.parent_links, options.link_distance / 2.0, options.parent_strength
    )
    canvas_center = np.array([options.width / 2.0, options.height / 2.0])
    displacement += options.center_strength * (canvas_center - positions)

    displacement *= state.alpha
    magnitude = np.linalg.norm(displacement, axis=1, keepdims=True)
    limit = options.max_displacement * state.alpha
    scale = np.where(magnitude > limit, limit / np.maximum(magnitude, _EPSILON), 1.0)
    moved = positions + displacement * scale

    half = state.sizes / 2.0
    canvas = np.array([options.width, options.height])
    lower = np.minimum(half, canvas / 2.0)
    upper = np.maximum(canvas - half, canvas / 2.0)
    moved = np.clip(moved, lower, upper)
    return replace(state, positions=moved, iteration=state.iteration + 1)


def _finish(nodes: Sequence[CanonicalNode], state: ForceState) -> List[CanonicalNode]:
    return [
        place(node, float(x), float(y), iteration=state.iteration)
        for node, (x, y) in zip(nodes, state.positions)
    ]


def run_force_layout(
    nodes: Sequence[CanonicalNode],
    edges: Sequence[CanonicalEdge],
    options: ForceOptions,
) -> List[CanonicalNode]:
    """Run the simulation to completion and return positioned copies."""

    if not nodes:
        return []
    state = initial_force_state(nodes, edges, options)
    while not state.done:
        state = force_step(state)
    LOGGER.debug("Force layout settled %d nodes after %d iterations", len(nodes), state.iteration)
    return _finish(nodes, state)


async def run_force_layout_async(
    nodes: Sequence[CanonicalNode],
    edges: Sequence[CanonicalEdge],
    options: ForceOptions,
) -> List[CanonicalNode]:
    """Run the simulation, yielding to the event loop between batches of steps."""

    if not nodes:
        return []
    state = initial_force_state(nodes, edges, options)
    while not state.done:
        for _ in range(options.steps_per_tick):
            if state.done:
                break
            state = force_step(state)
        await asyncio.sleep(0)
    LOGGER.debug("Force layout settled %d nodes after %d iterations", len(nodes), state.iteration)
    return _finish(nodes, state)
