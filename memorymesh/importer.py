"""
Markdown corpus importer for MemoryMesh.

Turns notes with YAML front matter into node and edge records shaped exactly
like the store's own, then merges them through the store's validated
operations so name uniqueness and edge endpoints are still enforced.
"""

import asyncio
from pathlib import Path

import aiofiles
import structlog

from .config import IMPORT_EDGE_TYPES
from .models import Edge, ImportBatch, ImportSummary, Node
from .storage import GraphStore
from .utils import parse_frontmatter, strip_link_brackets

logger = structlog.get_logger(__name__)

# Front matter keys copied into metadata, in output order
METADATA_KEYS = ("created", "year", "encountered", "status")

PROJECTS_FOLDER = "Projects"


def _as_list(value) -> list[str]:
    """Normalize a front matter value to a list of non-empty strings."""
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    return [str(item).strip() for item in value if item is not None and str(item).strip()]


def _tag_name(tag: str) -> str:
    return tag[1:] if tag.startswith("#") else tag


def note_to_records(name: str, frontmatter: dict, rel_path: Path) -> tuple[Node, list[Edge]]:
    """Build a node and its outgoing edges from parsed front matter."""
    tags = _as_list(frontmatter.get("tags"))
    topics = _as_list(frontmatter.get("in"))

    if PROJECTS_FOLDER in rel_path.parts:
        node_type = "project"
    elif "#idea" in tags or "idea" in tags:
        node_type = "idea"
    else:
        node_type = "knowledge"

    metadata = [
        f"{key.capitalize()}: {frontmatter[key]}"
        for key in METADATA_KEYS
        if frontmatter.get(key) not in (None, "")
    ]
    if tags:
        metadata.append(f"Tags: {', '.join(tags)}")
    if topics:
        metadata.append(f"Topics: {', '.join(topics)}")

    edges: list[Edge] = []
    for key, edge_type in IMPORT_EDGE_TYPES.items():
        for value in _as_list(frontmatter.get(key)):
            if key == "tags":
                target = _tag_name(value)
            else:
                target = strip_link_brackets(value)
            if not target:
                continue
            edge = Edge(source=name, target=target, edge_type=edge_type)
            if edge not in edges:
                edges.append(edge)

    return Node(name=name, node_type=node_type, metadata=metadata), edges


async def parse_note(note_file: Path, root: Path) -> tuple[Node, list[Edge]] | None:
    """Read one markdown note. Returns None if the file cannot be read."""
    rel_path = note_file.relative_to(root)
    try:
        async with aiofiles.open(note_file, encoding="utf-8") as f:
            content = await f.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("note_read_failed", path=str(note_file), error=str(e))
        return None

    frontmatter, _ = parse_frontmatter(content)
    return note_to_records(note_file.stem, frontmatter, rel_path)


async def collect_corpus(directory: Path) -> ImportBatch:
    """Extract records from every markdown note under ``directory``.

    Topic and tag values become nodes of type "topic" and "tag" unless a note
    already has that name.
    """
    note_files = sorted(
        path for path in directory.rglob("*.md")
        if not any(part.startswith(".") for part in path.relative_to(directory).parts)
    )
    parsed = await asyncio.gather(*(parse_note(note_file, directory) for note_file in note_files))

    batch = ImportBatch()
    names: set[str] = set()
    for result in parsed:
        if result is None:
            continue
        node, edges = result
        if node.name in names:
            logger.warning("note_name_duplicate", name=node.name)
            continue
        names.add(node.name)
        batch.nodes.append(node)
        batch.edges.extend(edges)

    extra_types = {IMPORT_EDGE_TYPES["in"]: "topic", IMPORT_EDGE_TYPES["tags"]: "tag"}
    for edge in list(batch.edges):
        node_type = extra_types.get(edge.edge_type)
        if node_type and edge.target not in names:
            names.add(edge.target)
            batch.nodes.append(Node(name=edge.target, node_type=node_type))

    logger.info("corpus_collected", directory=str(directory), notes=len(note_files),
                nodes=len(batch.nodes), edges=len(batch.edges))
    return batch


async def import_corpus(batch: ImportBatch, store: GraphStore) -> ImportSummary:
    """Merge an import batch into the store.

    Nodes go in first so edges can reference them. Records the store rejects
    (duplicate names, edges to missing nodes, duplicate edges) are counted,
    not raised.
    """
    summary = ImportSummary()
    if batch.nodes:
        node_results = await store.add_nodes(batch.nodes)
        summary.nodes_added = sum(result.success for result in node_results)
        summary.nodes_rejected = len(node_results) - summary.nodes_added
    if batch.edges:
        edge_results = await store.add_edges(batch.edges)
        summary.edges_added = sum(result.success for result in edge_results)
        summary.edges_rejected = len(edge_results) - summary.edges_added

    logger.info("corpus_imported", **summary.model_dump())
    return summary
