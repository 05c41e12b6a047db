"""Tests for location graph collection and resolution."""

import pytest

from zameen_finder.scraper.locations import (
    CITY_LEVEL,
    LocationNode,
    collect_location_nodes,
    normalize_text,
    residual_query,
    resolve_location,
    score_node,
)


def _node(name, slug, external_id, level, hierarchy=()):
    return {
        "name": name,
        "slug": slug,
        "externalID": external_id,
        "level": level,
        "hierarchy": [{"name": h} for h in hierarchy],
    }


@pytest.fixture
def location_graph():
    islamabad = ("Pakistan", "Islamabad Capital", "Islamabad")
    return {
        "header": {"menu": [{"title": "Homes"}]},
        "locations": {
            "cities": [
                _node("Islamabad", "/Islamabad-3", 3, 2, islamabad),
                _node("Lahore", "/Lahore-1", 1, 2, ("Pakistan", "Punjab", "Lahore")),
            ],
            "areas": [
                _node("DHA Defence", "/Islamabad_DHA_Defence-3188", 3188, 3, islamabad + ("DHA Defence",)),
                _node(
                    "DHA Defence Phase 2",
                    "/Islamabad_DHA_Defence_Phase_2-1482",
                    1482,
                    4,
                    islamabad + ("DHA Defence", "DHA Defence Phase 2"),
                ),
                _node("DHA Defence", "/Lahore_DHA_Defence-9", 9, 3, ("Pakistan", "Punjab", "Lahore", "DHA Defence")),
            ],
        },
    }


class TestCollectLocationNodes:

    def test_collects_nested_nodes(self, location_graph):
        nodes = collect_location_nodes(location_graph)
        assert [n.external_id for n in nodes] == ["3", "1", "3188", "1482", "9"]
        assert nodes[0].hierarchy == ("Pakistan", "Islamabad Capital", "Islamabad")

    def test_first_node_per_slug_wins(self):
        graph = [
            _node("Islamabad", "/Islamabad-3", 3, 2),
            {"nested": _node("Islamabad (dup)", "/Islamabad-3", 3, 2)},
        ]
        nodes = collect_location_nodes(graph)
        assert len(nodes) == 1
        assert nodes[0].name == "Islamabad"

    def test_incomplete_mappings_ignored(self):
        graph = {"a": {"name": "No slug", "level": 2, "externalID": 1}, "b": {"name": "x", "slug": "/x-1"}}
        assert collect_location_nodes(graph) == []

    def test_collection_cap(self, location_graph):
        assert len(collect_location_nodes(location_graph, max_collected=2)) == 2

    def test_depth_cap(self):
        graph = {"a": {"b": {"c": _node("Deep", "/Deep-1", 1, 3)}}}
        assert collect_location_nodes(graph, max_depth=2) == []
        assert len(collect_location_nodes(graph, max_depth=3)) == 1

    def test_cyclic_graph_terminates(self):
        graph = {"node": _node("Islamabad", "/Islamabad-3", 3, 2)}
        graph["self"] = graph
        assert len(collect_location_nodes(graph)) == 1


class TestResolveLocation:

    def test_exact_name_beats_longer_name(self, location_graph):
        nodes = collect_location_nodes(location_graph)
        match = resolve_location("DHA Defence", nodes, city_hint="Islamabad")
        assert match.node.external_id == "3188"

    def test_city_hint_breaks_tie(self, location_graph):
        nodes = collect_location_nodes(location_graph)
        match = resolve_location("DHA Defence", nodes, city_hint="Lahore")
        assert match.node.external_id == "9"

    def test_below_floor_returns_none(self, location_graph):
        nodes = collect_location_nodes(location_graph)
        assert resolve_location("Karachi", nodes) is None
        assert resolve_location("", nodes) is None

    def test_level_filter(self, location_graph):
        nodes = collect_location_nodes(location_graph)
        match = resolve_location("Islamabad", nodes, levels=[CITY_LEVEL])
        assert match.node.name == "Islamabad"
        assert resolve_location("DHA Defence", nodes, levels=[CITY_LEVEL]) is None

    def test_score_is_zero_without_overlap(self):
        node = LocationNode(name="Lahore", slug="/Lahore-1", external_id="1", level=2)
        assert score_node(node, "karachi") == 0


class TestHelpers:

    def test_normalize_text(self):
        assert normalize_text("  DHA-Defence,  Phase_2 ") == "dha defence phase 2"
        assert normalize_text(None) == ""

    def test_residual_query(self):
        node = LocationNode(
            name="Islamabad",
            slug="/Islamabad-3",
            external_id="3",
            level=2,
            hierarchy=("Pakistan", "Islamabad"),
        )
        assert residual_query("DHA Defence Islamabad", node) == "dha defence"

    def test_path_segment_strips_id(self):
        node = LocationNode(name="DHA Defence", slug="/Islamabad_DHA_Defence-3188", external_id="3188", level=3)
        assert node.path_segment == "Islamabad_DHA_Defence"
