# MemoryMesh: schema-driven knowledge graph MCP server
#
# Modular package structure:
# - config.py: Settings (pydantic-settings) and constants
# - logging.py: structlog configuration
# - utils.py: Exceptions, metadata helpers, front matter parsing
# - models.py: Pydantic models for records, payloads, schemas and envelopes
# - storage.py: GraphStore with JSON-lines persistence
# - search.py: Search and exact lookup over graph snapshots
# - schema.py: Schema document loader
# - compiler.py: Schema compiler and generated add_/update_/delete_ tools
# - builtins.py: Built-in graph tools
# - registry.py: Tool registry
# - dispatcher.py: Tool call routing and response envelopes
# - importer.py: Markdown front matter importer
# - tools.py: MCP server and its handlers
# - main.py: Entry points
