"""
Search and lookup functions for MemoryMesh.

Operate on a Graph snapshot, so results are stable for a given state.
"""

from .models import Edge, Graph, Node, OpenNodesResult

TAG_EDGE_TYPE = "tagged_with"


def _edges_between(edges: list[Edge], names: set[str]) -> list[Edge]:
    return [edge for edge in edges if edge.source in names and edge.target in names]


def _matches_text(node: Node, query_lower: str) -> bool:
    if query_lower in node.name.lower():
        return True
    return any(query_lower in entry.lower() for entry in node.metadata)


def search_graph(graph: Graph, query: str) -> Graph:
    """Search nodes by name and metadata.

    Query forms:
    - "type:<nodeType>": nodes whose nodeType equals the value (case-insensitive)
    - "tag:<tag>": nodes with a tagged_with edge to the tag node ("#" optional)
    - anything else: case-insensitive substring of the name or any metadata line

    Returns matching nodes in graph order plus the edges among them.
    """
    query = query.strip()
    field, _, value = query.partition(":")
    field = field.strip().lower()
    value = value.strip().lower()

    if query and field in ("type", "nodetype") and value:
        matches = [node for node in graph.nodes if node.node_type.lower() == value]
    elif query and field == "tag" and value:
        tag = value.lstrip("#")
        tagged = {
            edge.source
            for edge in graph.edges
            if edge.edge_type == TAG_EDGE_TYPE and edge.target.lower().lstrip("#") == tag
        }
        matches = [node for node in graph.nodes if node.name in tagged]
    else:
        query_lower = query.lower()
        matches = [node for node in graph.nodes if _matches_text(node, query_lower)]

    names = {node.name for node in matches}
    return Graph(nodes=matches, edges=_edges_between(graph.edges, names))


def open_graph(graph: Graph, names: list[str]) -> OpenNodesResult:
    """Exact-name lookup. Unknown names are listed in ``not_found``."""
    by_name = {node.name: node for node in graph.nodes}
    found: list[Node] = []
    not_found: list[str] = []
    for name in names:
        node = by_name.get(name)
        if node is None:
            if name not in not_found:
                not_found.append(name)
        elif node not in found:
            found.append(node)

    found_names = {node.name for node in found}
    return OpenNodesResult(
        nodes=found,
        edges=_edges_between(graph.edges, found_names),
        not_found=not_found,
    )
