"""Tests for parent/child grouping inference."""
from __future__ import annotations

from typing import Dict, List, Optional

from backend.app.canonicalization import canonicalize
from backend.app.contracts import CanonicalEdge, CanonicalNode, EdgeCategory, EntityKind
from backend.app.grouping import (
    effective_parent,
    infer_grouping,
    parent_depths,
    readmit_descendants,
    would_create_cycle,
)


def _node(node_id: str, kind: EntityKind, parent_id: Optional[str] = None) -> CanonicalNode:
    return CanonicalNode(id=node_id, type=kind, label=node_id, parent_id=parent_id)


def _edge(source: str, target: str, short_label: str, category: EdgeCategory) -> CanonicalEdge:
    return CanonicalEdge(
        id=f"{source}-{target}",
        source=source,
        target=target,
        label=short_label.lower(),
        category=category,
        data={"shortLabel": short_label},
    )


def _parents(nodes: List[CanonicalNode]) -> Dict[str, Optional[str]]:
    return {node.id: node.parent_id for node in nodes}


def test_puzzle_requirements_and_rewards_group_under_the_puzzle() -> None:
    graph = canonicalize(
        {
            "center": None,
            "nodes": [
                {"id": "P", "name": "Vault", "type": "Puzzle"},
                {"id": "E1", "name": "Key", "type": "Element"},
                {"id": "E2", "name": "Gold", "type": "Element"},
            ],
            "edges": [
                {"source": "P", "target": "E1", "label": "requires", "data": {"shortLabel": "Requires"}},
                {"source": "P", "target": "E2", "label": "rewards", "data": {"shortLabel": "Rewards"}},
            ],
        },
        "P",
    )

    grouped = infer_grouping(graph.nodes, graph.edges)
    by_id = {node.id: node for node in grouped}

    assert by_id["E1"].parent_id == "P"
    assert by_id["E2"].parent_id == "P"
    assert by_id["P"].is_actual_parent_group is True
    assert by_id["E1"].is_actual_parent_group is False


def test_required_for_points_into_the_puzzle() -> None:
    nodes = [_node("P", EntityKind.PUZZLE), _node("E", EntityKind.ELEMENT)]
    edges = [_edge("E", "P", "Required For", EdgeCategory.DEPENDENCY)]
    assert _parents(infer_grouping(nodes, edges))["E"] == "P"


def test_containment_groups_elements_under_their_container() -> None:
    nodes = [
        _node("box", EntityKind.ELEMENT),
        _node("letter", EntityKind.ELEMENT),
        _node("ring", EntityKind.ELEMENT),
        _node("alex", EntityKind.CHARACTER),
    ]
    edges = [
        _edge("box", "letter", "Contains", EdgeCategory.CONTAINMENT),
        _edge("ring", "box", "Inside", EdgeCategory.CONTAINMENT),
        _edge("alex", "ring", "Contains", EdgeCategory.CONTAINMENT),
    ]
    parents = _parents(infer_grouping(nodes, edges))

    assert parents["letter"] == "box"
    assert parents["ring"] == "box"
    assert parents["alex"] is None
    assert parents["box"] is None


def test_first_container_wins_over_later_dependency() -> None:
    nodes = [
        _node("P", EntityKind.PUZZLE),
        _node("bag", EntityKind.ELEMENT),
        _node("coin", EntityKind.ELEMENT),
    ]
    edges = [
        _edge("P", "coin", "Rewards", EdgeCategory.DEPENDENCY),
        _edge("bag", "coin", "Contains", EdgeCategory.CONTAINMENT),
    ]
    assert _parents(infer_grouping(nodes, edges))["coin"] == "bag"


def test_grouping_never_creates_cycles_or_self_parents() -> None:
    nodes = [_node("a", EntityKind.ELEMENT), _node("b", EntityKind.ELEMENT), _node("c", EntityKind.ELEMENT)]
    edges = [
        _edge("a", "b", "Contains", EdgeCategory.CONTAINMENT),
        _edge("b", "c", "Contains", EdgeCategory.CONTAINMENT),
        _edge("c", "a", "Contains", EdgeCategory.CONTAINMENT),
        _edge("a", "a", "Contains", EdgeCategory.CONTAINMENT),
    ]
    grouped = infer_grouping(nodes, edges)
    parents = _parents(grouped)

    for node in grouped:
        assert node.parent_id != node.id
        seen = set()
        current: Optional[str] = node.id
        while current is not None:
            assert current not in seen
            seen.add(current)
            current = parents.get(current)
    assert parents == {"a": None, "b": "a", "c": "b"}


def test_grouping_preserves_length_order_and_inputs() -> None:
    nodes = [_node("P", EntityKind.PUZZLE), _node("E", EntityKind.ELEMENT), _node("T", EntityKind.TIMELINE)]
    edges = [_edge("P", "E", "Rewards", EdgeCategory.DEPENDENCY)]
    grouped = infer_grouping(nodes, edges)

    assert [node.id for node in grouped] == ["P", "E", "T"]
    assert nodes[1].parent_id is None
    assert grouped[1] is not nodes[1]
    assert grouped[1].model_dump(exclude={"parent_id"}) == nodes[1].model_dump(exclude={"parent_id"})


def test_non_element_targets_are_not_grouped() -> None:
    nodes = [_node("P", EntityKind.PUZZLE), _node("C", EntityKind.CHARACTER)]
    edges = [_edge("P", "C", "Rewards", EdgeCategory.DEPENDENCY)]
    assert _parents(infer_grouping(nodes, edges)) == {"P": None, "C": None}


def test_effective_parent_ignores_dangling_reference() -> None:
    node = _node("child", EntityKind.ELEMENT, parent_id="gone")
    assert effective_parent(node, {"child"}) is None
    assert effective_parent(node, {"child", "gone"}) == "gone"


def test_would_create_cycle_detects_ancestor_loops() -> None:
    parents = {"a": None, "b": "a", "c": "b"}
    assert would_create_cycle("a", "c", parents) is True
    assert would_create_cycle("c", "c", parents) is True
    assert would_create_cycle("d", "c", parents) is False


def test_readmit_descendants_reaches_fixed_point() -> None:
    nodes = [
        _node("root", EntityKind.PUZZLE),
        _node("child", EntityKind.ELEMENT, parent_id="root"),
        _node("grandchild", EntityKind.ELEMENT, parent_id="child"),
        _node("stranger", EntityKind.ELEMENT, parent_id="elsewhere"),
    ]
    assert readmit_descendants({"root"}, list(reversed(nodes))) == {"root", "child", "grandchild"}


def test_parent_depths_orders_parents_first() -> None:
    nodes = [
        _node("grandchild", EntityKind.ELEMENT, parent_id="child"),
        _node("child", EntityKind.ELEMENT, parent_id="root"),
        _node("root", EntityKind.PUZZLE),
        _node("orphan", EntityKind.ELEMENT, parent_id="missing"),
    ]
    assert parent_depths(nodes) == {"root": 0, "child": 1, "grandchild": 2, "orphan": 0}
