"""
Main entry points for MemoryMesh.

main() runs the MCP server over stdio; import_main() seeds the graph file from
a directory of markdown notes.
"""

import argparse
import asyncio
from pathlib import Path

import structlog
from mcp.server.stdio import stdio_server

from .config import settings
from .importer import collect_corpus, import_corpus
from .logging import configure_logging
from .registry import ToolRegistry
from .storage import GraphStore
from .tools import create_server

logger = structlog.get_logger(__name__)


def main():
    """Main entry point."""
    configure_logging(settings.log_level, settings.log_format)

    async def run():
        registry = ToolRegistry(settings.schemas_dir)
        await registry.initialize()
        store = GraphStore(settings.memory_file)
        await store.load()
        server = create_server(registry, store)

        logger.info("server_starting", name=settings.server_name, version=settings.server_version,
                    memory_file=str(settings.memory_file), tools=len(registry.tool_names()))
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())

    asyncio.run(run())


def import_main(argv: list[str] | None = None) -> int:
    """Import markdown notes into the graph file."""
    parser = argparse.ArgumentParser(description="Seed the MemoryMesh graph from markdown notes")
    parser.add_argument("directory", type=Path, help="Directory of markdown notes with YAML front matter")
    parser.add_argument("--memory-file", type=Path, default=settings.memory_file,
                        help="Graph file to merge into (default: %(default)s)")
    args = parser.parse_args(argv)

    configure_logging(settings.log_level, settings.log_format)
    if not args.directory.is_dir():
        parser.error(f"not a directory: {args.directory}")

    async def run():
        batch = await collect_corpus(args.directory)
        return await import_corpus(batch, GraphStore(args.memory_file))

    summary = asyncio.run(run())
    print(
        f"Imported {summary.nodes_added} nodes ({summary.nodes_rejected} rejected) and "
        f"{summary.edges_added} edges ({summary.edges_rejected} rejected) into {args.memory_file}"
    )
    return 0


if __name__ == "__main__":
    main()
