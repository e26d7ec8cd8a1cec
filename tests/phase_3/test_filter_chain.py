"""Tests for the ordered filter chain."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import pytest

from backend.app.config import FilterDefaultsConfig
from backend.app.contracts import CanonicalEdge, CanonicalNode, EdgeCategory, EntityKind
from backend.app.filtering import FilterSettings, consistent_edges, filter_graph

CENTER = "center"


def _node(
    node_id: str,
    kind: EntityKind,
    properties: Optional[Dict[str, Any]] = None,
    *,
    is_center: bool = False,
    parent_id: Optional[str] = None,
) -> CanonicalNode:
    return CanonicalNode(
        id=node_id,
        type=kind,
        label=f"Node {node_id}",
        is_center=is_center,
        properties=properties or {},
        parent_id=parent_id,
    )


def _edge(edge_id: str, source: str, target: str, category: EdgeCategory = EdgeCategory.DEFAULT) -> CanonicalEdge:
    return CanonicalEdge(id=edge_id, source=source, target=target, category=category)


def _ids(nodes: Sequence[CanonicalNode]) -> List[str]:
    return sorted(node.id for node in nodes)


@pytest.fixture(name="nodes")
def fixture_nodes() -> List[CanonicalNode]:
    return [
        _node(
            CENTER,
            EntityKind.CHARACTER,
            {"actFocus": "Act 1", "themes": ["ThemeA"], "memorySets": ["SetX"]},
            is_center=True,
        ),
        _node("nodeA1", EntityKind.ELEMENT, {"actFocus": "Act 1", "themes": ["ThemeA", "ThemeB"], "memorySets": ["SetX"]}),
        _node("nodeA2", EntityKind.PUZZLE, {"actFocus": "Act 2", "themes": ["ThemeB"], "memorySets": []}),
        _node("nodeA3", EntityKind.CHARACTER, {"actFocus": "Act 1", "themes": ["ThemeC"], "memorySets": ["SetY"]}),
        _node("nodeB1", EntityKind.ELEMENT, {"actFocus": "Act 1", "themes": ["ThemeA"], "memorySets": ["SetX", "SetY"]}),
        _node("nodeB2", EntityKind.TIMELINE, {"actFocus": "Act 2", "themes": ["ThemeA", "ThemeC"]}),
        _node("nodeC1", EntityKind.ELEMENT, {"themes": ["ThemeB"]}),
        _node("nodeC2", EntityKind.PUZZLE, {"actFocus": "Act 3"}),
    ]


@pytest.fixture(name="edges")
def fixture_edges() -> List[CanonicalEdge]:
    return [
        _edge("e1", CENTER, "nodeA1", EdgeCategory.CHARACTER),
        _edge("e2", CENTER, "nodeA2", EdgeCategory.CHARACTER),
        _edge("e3", "nodeA1", "nodeA3", EdgeCategory.CHARACTER),
        _edge("e4", "nodeA2", "nodeB2", EdgeCategory.TIMELINE),
        _edge("e5", CENTER, "nodeB1", EdgeCategory.CHARACTER),
        _edge("e6", "nodeB1", "nodeC1", EdgeCategory.CONTAINMENT),
        _edge("e7", CENTER, "nodeC2", EdgeCategory.DEPENDENCY),
    ]


def _settings(**values: Any) -> FilterSettings:
    values.setdefault("center_id", CENTER)
    values.setdefault("depth", 3)
    return FilterSettings(**values)


def test_no_active_filters_keeps_everything(nodes, edges) -> None:
    result = filter_graph(nodes, edges, _settings())
    assert len(result.nodes) == len(nodes)
    assert len(result.edges) == len(edges)
    assert result.diagnostics == ()


def test_depth_zero_returns_only_the_focus(nodes, edges) -> None:
    result = filter_graph(nodes, edges, _settings(depth=0))
    assert [node.id for node in result.nodes] == [CENTER]
    assert result.edges == ()


def test_depth_one_keeps_direct_neighbours(nodes, edges) -> None:
    result = filter_graph(nodes, edges, _settings(depth=1))
    assert _ids(result.nodes) == sorted([CENTER, "nodeA1", "nodeA2", "nodeB1", "nodeC2"])
    assert [edge.id for edge in result.edges] == ["e1", "e2", "e5", "e7"]


def test_depth_is_monotonic(nodes, edges) -> None:
    previous: set = set()
    for depth in range(0, 5):
        current = {node.id for node in filter_graph(nodes, edges, _settings(depth=depth)).nodes}
        assert previous <= current
        previous = current


def test_depth_traversal_ignores_edge_direction(nodes) -> None:
    edges = [_edge("in", "nodeA1", CENTER)]
    result = filter_graph(nodes, edges, _settings(depth=1))
    assert _ids(result.nodes) == [CENTER, "nodeA1"]


def test_missing_focus_skips_depth_with_diagnostic(nodes, edges, caplog) -> None:
    with caplog.at_level("WARNING"):
        result = filter_graph(nodes, edges, _settings(center_id="ghost", depth=0))
    assert len(result.nodes) == len(nodes)
    assert any("ghost" in message for message in result.diagnostics)
    assert "depth restriction skipped" in caplog.text


def test_act_focus_filter(nodes, edges) -> None:
    result = filter_graph(nodes, edges, _settings(act_focus_filter="Act 1"))
    assert _ids(result.nodes) == sorted([CENTER, "nodeA1", "nodeA3", "nodeB1"])


def test_act_focus_without_matches_keeps_focus_only(nodes, edges) -> None:
    result = filter_graph(nodes, edges, _settings(act_focus_filter="Act NonExistent"))
    assert [node.id for node in result.nodes] == [CENTER]


@pytest.mark.parametrize("wildcard", ["All", "all acts", "", "ALL"])
def test_act_focus_wildcards_do_not_filter(nodes, edges, wildcard) -> None:
    result = filter_graph(nodes, edges, _settings(act_focus_filter=wildcard))
    assert len(result.nodes) == len(nodes)


def test_single_theme_filter(nodes, edges) -> None:
    result = filter_graph(nodes, edges, _settings(theme_filters={"ThemeA": True}))
    assert _ids(result.nodes) == sorted([CENTER, "nodeA1", "nodeB1", "nodeB2"])


def test_theme_filters_combine_with_or(nodes, edges) -> None:
    result = filter_graph(nodes, edges, _settings(theme_filters={"ThemeB": True, "ThemeC": True}))
    assert _ids(result.nodes) == sorted([CENTER, "nodeA1", "nodeA2", "nodeA3", "nodeB2", "nodeC1"])


def test_theme_filters_all_false_do_not_filter(nodes, edges) -> None:
    result = filter_graph(nodes, edges, _settings(theme_filters={"ThemeA": False, "ThemeB": False}))
    assert len(result.nodes) == len(nodes)


def test_memory_set_filters(nodes, edges) -> None:
    set_x = filter_graph(nodes, edges, _settings(memory_set_filter="SetX"))
    set_y = filter_graph(nodes, edges, _settings(memory_set_filter="SetY"))
    everything = filter_graph(nodes, edges, _settings(memory_set_filter="All Memory Sets"))

    assert _ids(set_x.nodes) == sorted([CENTER, "nodeA1", "nodeB1"])
    assert _ids(set_y.nodes) == sorted([CENTER, "nodeA3", "nodeB1"])
    assert len(everything.nodes) == len(nodes)


def test_attribute_filters_combine(nodes, edges) -> None:
    result = filter_graph(
        nodes,
        edges,
        _settings(act_focus_filter="Act 1", theme_filters={"ThemeA": True}, memory_set_filter="SetX"),
    )
    assert _ids(result.nodes) == sorted([CENTER, "nodeA1", "nodeB1"])


def test_edges_follow_removed_nodes(nodes, edges) -> None:
    result = filter_graph(nodes, edges, _settings(act_focus_filter="Act 3"))
    assert _ids(result.nodes) == sorted([CENTER, "nodeC2"])
    assert [edge.id for edge in result.edges] == ["e7"]


def test_node_type_filter_with_act_focus(nodes, edges) -> None:
    result = filter_graph(
        nodes, edges, _settings(act_focus_filter="Act 1", node_filters={"Element": True})
    )
    assert _ids(result.nodes) == sorted([CENTER, "nodeA1", "nodeB1"])


def test_node_type_filter_leaves_focus_alone_when_only_neighbour_is_removed() -> None:
    nodes = [_node("X", EntityKind.CHARACTER, is_center=True), _node("P", EntityKind.PUZZLE)]
    edges = [_edge("x-p", "X", "P", EdgeCategory.DEPENDENCY)]
    result = filter_graph(nodes, edges, FilterSettings(center_id="X", depth=2, node_filters={"Character": True}))
    assert [node.id for node in result.nodes] == ["X"]
    assert result.edges == ()


def test_node_type_filter_readmits_children_of_survivors() -> None:
    nodes = [
        _node("X", EntityKind.CHARACTER, is_center=True),
        _node("P", EntityKind.PUZZLE),
        _node("E", EntityKind.ELEMENT, parent_id="P"),
        _node("F", EntityKind.ELEMENT, parent_id="E"),
        _node("G", EntityKind.ELEMENT),
    ]
    edges = [_edge("x-p", "X", "P"), _edge("x-g", "X", "G")]
    result = filter_graph(
        nodes, edges, FilterSettings(center_id="X", depth=1, node_filters={"Puzzle": True, "Character": True})
    )
    assert [node.id for node in result.nodes] == ["X", "P", "E", "F"]
    assert [edge.id for edge in result.edges] == ["x-p"]


def test_depth_readmits_children_beyond_the_horizon() -> None:
    nodes = [
        _node("X", EntityKind.CHARACTER, is_center=True),
        _node("P", EntityKind.PUZZLE),
        _node("E", EntityKind.ELEMENT, parent_id="P"),
    ]
    result = filter_graph(nodes, [_edge("x-p", "X", "P")], FilterSettings(center_id="X", depth=1))
    assert [node.id for node in result.nodes] == ["X", "P", "E"]


def test_edge_type_filter_keeps_endpoints_and_focus(nodes, edges) -> None:
    result = filter_graph(nodes, edges, _settings(edge_filters={"containment": True, "dependency": True}))
    assert [edge.id for edge in result.edges] == ["e6", "e7"]
    assert _ids(result.nodes) == sorted([CENTER, "nodeB1", "nodeC1", "nodeC2"])


def test_results_are_referentially_consistent(nodes, edges) -> None:
    edges = edges + [_edge("dangling", CENTER, "ghost")]
    combos = [
        _settings(depth=1),
        _settings(act_focus_filter="Act 2"),
        _settings(node_filters={"Timeline": True}),
        _settings(edge_filters={"timeline": True}),
        _settings(theme_filters={"ThemeC": True}, depth=2),
    ]
    for settings in combos:
        result = filter_graph(nodes, edges, settings)
        present = {node.id for node in result.nodes}
        for edge in result.edges:
            assert edge.source in present and edge.target in present


def test_malformed_input_returns_empty_with_diagnostic(caplog) -> None:
    with caplog.at_level("WARNING"):
        result = filter_graph("not nodes", [], FilterSettings(center_id="X"))  # type: ignore[arg-type]
    assert result.nodes == ()
    assert result.edges == ()
    assert result.diagnostics


def test_inputs_are_not_mutated(nodes, edges) -> None:
    node_snapshot = [node.model_dump() for node in nodes]
    edge_snapshot = list(edges)
    filter_graph(nodes, edges, _settings(depth=1, node_filters={"Element": True}))
    assert [node.model_dump() for node in nodes] == node_snapshot
    assert edges == edge_snapshot


def test_consistent_edges_drops_dangling() -> None:
    nodes = [_node("a", EntityKind.ELEMENT), _node("b", EntityKind.ELEMENT)]
    edges = [_edge("ab", "a", "b"), _edge("ac", "a", "c")]
    assert [edge.id for edge in consistent_edges(nodes, edges)] == ["ab"]


def test_settings_merge_over_configured_defaults() -> None:
    defaults = FilterDefaultsConfig(depth=2, node_filters={"Character": True, "Puzzle": True})
    settings = FilterSettings.from_defaults(
        defaults, {"depth": 4, "actFocusFilter": "Act 2"}, center_id="X"
    )
    assert settings.depth == 4
    assert settings.act_focus_filter == "Act 2"
    assert settings.node_filters == {"Character": True, "Puzzle": True}
    assert settings.center_id == "X"


def test_settings_reject_negative_depth() -> None:
    with pytest.raises(ValueError):
        FilterSettings(depth=-1)


def test_depth_zero_does_not_readmit_children_of_the_focus() -> None:
    nodes = [
        _node("P", EntityKind.PUZZLE, is_center=True),
        _node("E", EntityKind.ELEMENT, parent_id="P"),
    ]
    edges = [_edge("edge-0", "P", "E", EdgeCategory.DEPENDENCY)]
    result = filter_graph(nodes, edges, FilterSettings(center_id="P", depth=0))
    assert [node.id for node in result.nodes] == ["P"]
    assert result.edges == ()


def test_every_toggle_enabled_means_no_restriction(nodes, edges) -> None:
    every_kind = {kind.value: True for kind in EntityKind}
    every_category = {category.value: True for category in EdgeCategory}
    result = filter_graph(
        nodes,
        edges,
        _settings(theme_filters={"ThemeB": True, "ThemeC": True}, node_filters=every_kind, edge_filters=every_category),
    )
    assert _ids(result.nodes) == sorted([CENTER, "nodeA1", "nodeA2", "nodeA3", "nodeB2", "nodeC1"])


def test_edge_filter_leaving_one_category_out_still_restricts(nodes, edges) -> None:
    toggles = {category.value: True for category in EdgeCategory}
    toggles["timeline"] = False
    result = filter_graph(nodes, edges, _settings(edge_filters=toggles))
    assert "e4" not in [edge.id for edge in result.edges]
    assert "nodeB2" not in _ids(result.nodes)
