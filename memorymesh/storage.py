"""
Graph store module for MemoryMesh.

Contains the GraphState working copy and the GraphStore class that owns the
canonical graph and its JSON-lines file.

Every mutation runs under a single asyncio.Lock: the current state is copied,
the copy is modified, written to disk, and only then published. Readers take
whatever state is published at the moment they start, so they never observe a
half-applied mutation. The whole file is rewritten on every change, which
bounds throughput by graph size.
"""

import asyncio
import json
import os
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, TypeVar

import aiofiles
import aiofiles.os
import structlog
from pydantic import ValidationError as PydanticValidationError

from .models import (
    Edge,
    EdgeUpdate,
    Graph,
    ItemResult,
    MetadataAddition,
    MetadataDeletion,
    Node,
    NodeUpdate,
    OpenNodesResult,
)
from .search import open_graph, search_graph
from .utils import (
    ConflictError,
    CorruptStoreError,
    MemoryMeshError,
    NotFoundError,
    PersistenceError,
    merge_metadata,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class GraphState:
    """Mutable node/edge collections.

    Node objects are immutable; updates replace the dict entry, so a shallow
    copy is enough to isolate a working copy from the published state.
    """

    nodes: dict[str, Node] = field(default_factory=dict)
    edges: list[Edge] = field(default_factory=list)
    dirty: bool = field(default=False, compare=False)

    def copy(self) -> "GraphState":
        return GraphState(nodes=dict(self.nodes), edges=list(self.edges))

    def get_node(self, name: str) -> Node:
        node = self.nodes.get(name)
        if node is None:
            raise NotFoundError(f"Node not found: {name}")
        return node

    def add_node(self, node: Node) -> None:
        if node.name in self.nodes:
            raise ConflictError(f"Node already exists: {node.name}")
        self.nodes[node.name] = node
        self.dirty = True

    def put_node(self, node: Node) -> None:
        """Replace an existing node with a new version."""
        self.get_node(node.name)
        if self.nodes[node.name] != node:
            self.nodes[node.name] = node
            self.dirty = True

    def remove_node(self, name: str) -> int:
        """Delete a node and every edge touching it. Returns the number of edges removed."""
        self.get_node(name)
        del self.nodes[name]
        removed = self.remove_edges(lambda edge: edge.source == name or edge.target == name)
        self.dirty = True
        return removed

    def has_edge(self, edge: Edge) -> bool:
        return edge in self.edges

    def check_endpoints(self, edge: Edge) -> None:
        for endpoint in (edge.source, edge.target):
            if endpoint not in self.nodes:
                raise NotFoundError(f"Edge endpoint not found: {endpoint}")

    def add_edge(self, edge: Edge) -> None:
        self.check_endpoints(edge)
        self.edges.append(edge)
        self.dirty = True

    def remove_edges(self, predicate: Callable[[Edge], bool]) -> int:
        kept = [edge for edge in self.edges if not predicate(edge)]
        removed = len(self.edges) - len(kept)
        if removed:
            self.edges = kept
            self.dirty = True
        return removed

    def replace_outgoing(self, name: str, edge_type: str, edges: list[Edge]) -> None:
        """Replace all outgoing edges of one type from a node."""
        self.remove_edges(lambda edge: edge.source == name and edge.edge_type == edge_type)
        for edge in edges:
            self.add_edge(edge)

    def to_graph(self) -> Graph:
        return Graph(nodes=list(self.nodes.values()), edges=list(self.edges))

    def records(self) -> list[dict]:
        return [node.to_record() for node in self.nodes.values()] + [edge.to_record() for edge in self.edges]


def _attempt(key: str, action: Callable[[], dict | None]) -> ItemResult:
    """Run one batch item, converting expected failures into an ItemResult."""
    try:
        detail = action()
    except MemoryMeshError as e:
        return ItemResult(key=key, success=False, error=str(e), error_type=type(e).__name__)
    return ItemResult(key=key, success=True, detail=detail)


def _edge_key(edge: Edge) -> str:
    return f"{edge.source} -[{edge.edge_type}]-> {edge.target}"


class GraphStore:
    """The canonical graph, persisted to a JSON-lines file."""

    def __init__(self, path: Path):
        self.path = path
        self._state: GraphState | None = None
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._state is not None

    # ============== Persistence ==============

    async def _read_file(self) -> GraphState:
        """Parse the graph file. A missing file is an empty graph."""
        state = GraphState()
        try:
            async with aiofiles.open(self.path, encoding="utf-8") as f:
                content = await f.read()
        except FileNotFoundError:
            logger.info("graph_file_missing", path=str(self.path))
            return state
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceError(f"Failed to read graph file {self.path}: {e}") from e

        # Only "\n" ends a record; strings may hold other Unicode line separators
        for line_number, line in enumerate(content.split("\n"), start=1):
            line = line.rstrip("\r")
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise CorruptStoreError(f"Line {line_number} is not valid JSON: {e}") from e
            if not isinstance(record, dict):
                raise CorruptStoreError(f"Line {line_number} is not a JSON object")

            kind = record.get("type")
            payload = {key: value for key, value in record.items() if key != "type"}
            try:
                if kind == "node":
                    node = Node.model_validate(payload)
                    if node.name in state.nodes:
                        raise CorruptStoreError(f"Line {line_number} repeats node name: {node.name}")
                    state.nodes[node.name] = node
                elif kind == "edge":
                    state.edges.append(Edge.model_validate(payload))
                else:
                    raise CorruptStoreError(f"Line {line_number} has unknown record type: {kind!r}")
            except PydanticValidationError as e:
                raise CorruptStoreError(f"Line {line_number} is not a valid {kind} record: {e}") from e

        for edge in state.edges:
            try:
                state.check_endpoints(edge)
            except NotFoundError as e:
                raise CorruptStoreError(f"Dangling edge {_edge_key(edge)}: {e}") from e

        return state

    async def _write_file(self, state: GraphState) -> None:
        """Rewrite the graph file through a temporary file and an atomic replace."""
        start_time = time.time()
        tmp_path = self.path.with_name(f".{self.path.name}.tmp")
        lines = [json.dumps(record, ensure_ascii=False) + "\n" for record in state.records()]

        try:
            await aiofiles.os.makedirs(self.path.parent, exist_ok=True)
            async with aiofiles.open(tmp_path, mode="w", encoding="utf-8") as f:
                await f.write("".join(lines))
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await aiofiles.os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error("graph_write_failed", path=str(self.path), error=str(e))
            try:
                await aiofiles.os.remove(tmp_path)
            except OSError as cleanup_error:
                logger.warning("graph_tmp_cleanup_failed", path=str(tmp_path), error=str(cleanup_error))
            raise PersistenceError(f"Failed to write graph file {self.path}: {e}") from e

        logger.debug(
            "graph_persisted",
            path=str(self.path),
            nodes=len(state.nodes),
            edges=len(state.edges),
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )

    async def _load_locked(self) -> GraphState:
        if self._state is None:
            self._state = await self._read_file()
            logger.info(
                "graph_loaded",
                path=str(self.path),
                nodes=len(self._state.nodes),
                edges=len(self._state.edges),
            )
        return self._state

    async def load(self) -> None:
        """Load the graph file if it has not been loaded yet."""
        async with self._lock:
            await self._load_locked()

    async def _snapshot(self) -> GraphState:
        state = self._state
        if state is None:
            await self.load()
            state = self._state
        return state

    async def mutate(self, operation: Callable[[GraphState], T]) -> T:
        """Apply ``operation`` to a working copy as one atomic unit.

        If the operation raises, the copy is discarded and nothing changes.
        If it changed the graph, the copy is written to disk and then becomes
        the published state. A failed write leaves memory and disk untouched.
        """
        async with self._lock:
            current = await self._load_locked()
            working = current.copy()
            result = operation(working)
            if working.dirty:
                await self._write_file(working)
                working.dirty = False
                self._state = working
            return result

    # ============== Node Operations ==============

    async def add_nodes(self, nodes: list[Node]) -> list[ItemResult]:
        """Add nodes; a name that already exists fails for that item only."""

        def operation(state: GraphState) -> list[ItemResult]:
            results = []
            for node in nodes:
                results.append(_attempt(node.name, lambda node=node: state.add_node(node)))
            return results

        results = await self.mutate(operation)
        logger.info("nodes_added", requested=len(nodes), added=sum(r.success for r in results))
        return results

    async def update_nodes(self, updates: list[NodeUpdate]) -> list[ItemResult]:
        """Merge supplied fields into existing nodes."""

        def apply_update(state: GraphState, update: NodeUpdate) -> None:
            node = state.get_node(update.name)
            changes = {}
            if update.node_type is not None:
                changes["node_type"] = update.node_type
            if update.metadata is not None:
                changes["metadata"] = merge_metadata(node.metadata, update.metadata)
            state.put_node(node.model_copy(update=changes))

        def operation(state: GraphState) -> list[ItemResult]:
            return [
                _attempt(update.name, lambda update=update: apply_update(state, update))
                for update in updates
            ]

        results = await self.mutate(operation)
        logger.info("nodes_updated", requested=len(updates), updated=sum(r.success for r in results))
        return results

    async def delete_nodes(self, names: list[str]) -> list[ItemResult]:
        """Delete nodes and every edge that names them."""

        def delete(state: GraphState, name: str) -> dict:
            return {"edgesRemoved": state.remove_node(name)}

        def operation(state: GraphState) -> list[ItemResult]:
            return [_attempt(name, lambda name=name: delete(state, name)) for name in names]

        results = await self.mutate(operation)
        logger.info("nodes_deleted", requested=len(names), deleted=sum(r.success for r in results))
        return results

    # ============== Edge Operations ==============

    async def add_edges(self, edges: list[Edge]) -> list[ItemResult]:
        """Add edges between existing nodes, skipping exact duplicates as conflicts."""

        def add(state: GraphState, edge: Edge) -> None:
            if state.has_edge(edge):
                raise ConflictError(f"Edge already exists: {_edge_key(edge)}")
            state.add_edge(edge)

        def operation(state: GraphState) -> list[ItemResult]:
            return [_attempt(_edge_key(edge), lambda edge=edge: add(state, edge)) for edge in edges]

        results = await self.mutate(operation)
        logger.info("edges_added", requested=len(edges), added=sum(r.success for r in results))
        return results

    async def update_edges(self, updates: list[EdgeUpdate]) -> list[ItemResult]:
        """Rewrite every edge exactly matching ``{from, to, edgeType}``."""

        def update(state: GraphState, item: EdgeUpdate) -> dict:
            current = item.current
            replacement = item.replacement
            matches = [index for index, edge in enumerate(state.edges) if edge == current]
            if not matches:
                raise NotFoundError(f"Edge not found: {_edge_key(current)}")
            state.check_endpoints(replacement)
            for index in matches:
                state.edges[index] = replacement
            if replacement != current:
                state.dirty = True
            return {"updated": len(matches), "edge": replacement.model_dump(by_alias=True)}

        def operation(state: GraphState) -> list[ItemResult]:
            return [
                _attempt(_edge_key(item.current), lambda item=item: update(state, item))
                for item in updates
            ]

        results = await self.mutate(operation)
        logger.info("edges_updated", requested=len(updates), updated=sum(r.success for r in results))
        return results

    async def delete_edges(self, edges: list[Edge]) -> list[ItemResult]:
        """Remove every edge exactly matching each requested edge."""

        def delete(state: GraphState, edge: Edge) -> dict:
            removed = state.remove_edges(lambda candidate: candidate == edge)
            if not removed:
                raise NotFoundError(f"Edge not found: {_edge_key(edge)}")
            return {"removed": removed}

        def operation(state: GraphState) -> list[ItemResult]:
            return [_attempt(_edge_key(edge), lambda edge=edge: delete(state, edge)) for edge in edges]

        results = await self.mutate(operation)
        logger.info("edges_deleted", requested=len(edges), deleted=sum(r.success for r in results))
        return results

    # ============== Metadata Operations ==============

    async def add_metadata(self, additions: list[MetadataAddition]) -> list[ItemResult]:
        """Append metadata strings, skipping ones the node already has."""

        def add(state: GraphState, addition: MetadataAddition) -> dict:
            node = state.get_node(addition.node_name)
            added = []
            for entry in addition.contents:
                if entry not in node.metadata and entry not in added:
                    added.append(entry)
            if added:
                state.put_node(node.model_copy(update={"metadata": node.metadata + added}))
            return {"added": added}

        def operation(state: GraphState) -> list[ItemResult]:
            return [
                _attempt(addition.node_name, lambda addition=addition: add(state, addition))
                for addition in additions
            ]

        results = await self.mutate(operation)
        logger.info("metadata_added", requested=len(additions), applied=sum(r.success for r in results))
        return results

    async def delete_metadata(self, deletions: list[MetadataDeletion]) -> list[ItemResult]:
        """Remove metadata strings; strings the node does not have are ignored."""

        def delete(state: GraphState, deletion: MetadataDeletion) -> dict:
            node = state.get_node(deletion.node_name)
            remaining = [entry for entry in node.metadata if entry not in deletion.metadata]
            removed = len(node.metadata) - len(remaining)
            if removed:
                state.put_node(node.model_copy(update={"metadata": remaining}))
            return {"removed": removed}

        def operation(state: GraphState) -> list[ItemResult]:
            return [
                _attempt(deletion.node_name, lambda deletion=deletion: delete(state, deletion))
                for deletion in deletions
            ]

        results = await self.mutate(operation)
        logger.info("metadata_deleted", requested=len(deletions), applied=sum(r.success for r in results))
        return results

    # ============== Read Operations ==============

    async def read_graph(self) -> Graph:
        """Return the full graph as a consistent snapshot."""
        state = await self._snapshot()
        return state.to_graph()

    async def search_nodes(self, query: str) -> Graph:
        """Search the current snapshot. See :func:`search.search_graph`."""
        state = await self._snapshot()
        return search_graph(state.to_graph(), query)

    async def open_nodes(self, names: list[str]) -> OpenNodesResult:
        """Look up nodes by exact name, reporting names that do not exist."""
        state = await self._snapshot()
        return open_graph(state.to_graph(), names)
