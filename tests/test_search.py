"""
Tests for search and exact lookup.
"""

import pytest


@pytest.fixture
def graph():
    from memorymesh.models import Edge, Graph, Node

    return Graph(
        nodes=[
            Node(name="Garrick", node_type="npc", metadata=["Role: Blacksmith", "Status: Alive"]),
            Node(name="Tavern", node_type="location", metadata=["Description: Smoky and loud"]),
            Node(name="Mira", node_type="NPC", metadata=["Role: Bard"]),
            Node(name="writing", node_type="tag"),
            Node(name="Zettelkasten", node_type="knowledge"),
        ],
        edges=[
            Edge(source="Garrick", target="Tavern", edge_type="located_in"),
            Edge(source="Mira", target="Tavern", edge_type="located_in"),
            Edge(source="Zettelkasten", target="writing", edge_type="tagged_with"),
            Edge(source="Mira", target="writing", edge_type="tagged_with"),
        ],
    )


class TestSearchGraph:
    """Tests for search_graph."""

    def test_substring_name(self, graph):
        from memorymesh.search import search_graph

        result = search_graph(graph, "gar")

        assert [n.name for n in result.nodes] == ["Garrick"]
        assert result.edges == []

    def test_substring_metadata(self, graph):
        """Test metadata lines are searched case-insensitively."""
        from memorymesh.search import search_graph

        result = search_graph(graph, "SMOKY")

        assert [n.name for n in result.nodes] == ["Tavern"]

    def test_edges_between_matches(self, graph):
        """Test only edges whose ends both matched are returned."""
        from memorymesh.search import search_graph

        result = search_graph(graph, "a")

        names = {n.name for n in result.nodes}
        assert {"Garrick", "Tavern", "Mira"} <= names
        for edge in result.edges:
            assert edge.source in names and edge.target in names

    def test_type_query(self, graph):
        """Test type: matches nodeType exactly, ignoring case."""
        from memorymesh.search import search_graph

        result = search_graph(graph, "type:npc")

        assert [n.name for n in result.nodes] == ["Garrick", "Mira"]

    def test_tag_query(self, graph):
        """Test tag: follows tagged_with edges and ignores a leading '#'."""
        from memorymesh.search import search_graph

        assert [n.name for n in search_graph(graph, "tag:#writing").nodes] == ["Mira", "Zettelkasten"]
        assert search_graph(graph, "tag:cooking").nodes == []

    def test_no_match(self, graph):
        from memorymesh.search import search_graph

        result = search_graph(graph, "dragon")

        assert result.nodes == []
        assert result.edges == []

    def test_empty_query_returns_everything(self, graph):
        from memorymesh.search import search_graph

        result = search_graph(graph, "")

        assert result.nodes == graph.nodes
        assert result.edges == graph.edges

    def test_stable(self, graph):
        """Test repeated searches of the same state give identical results."""
        from memorymesh.search import search_graph

        assert search_graph(graph, "a") == search_graph(graph, "a")


class TestOpenGraph:
    """Tests for open_graph."""

    def test_found_and_not_found(self, graph):
        from memorymesh.search import open_graph

        result = open_graph(graph, ["Garrick", "Dragon", "Tavern"])

        assert [n.name for n in result.nodes] == ["Garrick", "Tavern"]
        assert result.not_found == ["Dragon"]
        assert [(e.source, e.target) for e in result.edges] == [("Garrick", "Tavern")]

    def test_exact_match_only(self, graph):
        """Test names are matched exactly, not by substring or case."""
        from memorymesh.search import open_graph

        result = open_graph(graph, ["garrick", "Garr"])

        assert result.nodes == []
        assert result.not_found == ["garrick", "Garr"]

    def test_not_found_serialized_as_camel_case(self, graph):
        from memorymesh.search import open_graph

        dumped = open_graph(graph, ["Nobody"]).model_dump(by_alias=True)

        assert dumped["notFound"] == ["Nobody"]
