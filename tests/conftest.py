"""
Pytest configuration and fixtures for memorymesh tests.
"""

import json
from pathlib import Path

import pytest

NPC_SCHEMA = {
    "name": "add_npc",
    "description": "Add a new NPC",
    "properties": {
        "name": {"type": "string", "description": "NPC name", "required": True},
        "role": {"type": "string", "description": "Occupation", "required": True},
        "status": {
            "type": "string",
            "description": "Alive or not",
            "enum": ["Alive", "Deceased", "Unknown"],
            "required": True,
        },
        "currentLocation": {
            "type": "string",
            "description": "Where the NPC is",
            "required": True,
            "relationship": {"edgeType": "located_in", "description": "Location of the NPC"},
        },
        "description": {"type": "string", "description": "Appearance", "required": True},
        "traits": {"type": "array", "items": {"type": "string"}, "required": False},
        "allies": {
            "type": "array",
            "items": {"type": "string"},
            "required": False,
            "relationship": {"edgeType": "allied_with", "description": "Friends"},
        },
    },
    "additionalProperties": True,
}

QUEST_SCHEMA = {
    "name": "add_quest",
    "description": "Add a new quest",
    "properties": {
        "name": {"type": "string", "required": True},
        "description": {"type": "string", "required": True},
        "status": {"type": "string", "enum": ["Active", "Completed", "Failed"], "required": True},
        "objectives": {"type": "array", "items": {"type": "string"}, "required": True},
        "rewards": {"type": "array", "items": {"type": "string"}, "required": False},
        "questGiver": {
            "type": "string",
            "required": False,
            "relationship": {"edgeType": "given_by", "description": "Quest giver"},
        },
    },
    "additionalProperties": False,
}

LOCATION_SCHEMA = {
    "name": "add_location",
    "description": "Add a new location",
    "properties": {
        "name": {"type": "string", "required": True},
        "description": {"type": "string", "required": True},
        "population": {"type": "integer", "required": False},
    },
    "additionalProperties": True,
}


@pytest.fixture
def raw_schemas() -> dict[str, dict]:
    """Fresh copies of the test schema documents keyed by node type."""
    return {
        "npc": json.loads(json.dumps(NPC_SCHEMA)),
        "quest": json.loads(json.dumps(QUEST_SCHEMA)),
        "location": json.loads(json.dumps(LOCATION_SCHEMA)),
    }


@pytest.fixture
def schemas_dir(tmp_path: Path) -> Path:
    """Create a temporary schema directory with npc, quest and location schemas."""
    directory = tmp_path / "schemas"
    directory.mkdir()
    for schema in (NPC_SCHEMA, QUEST_SCHEMA, LOCATION_SCHEMA):
        (directory / f"{schema['name']}.schema.json").write_text(json.dumps(schema, indent=2), encoding="utf-8")
    # Files without the .schema.json suffix are ignored
    (directory / "notes.txt").write_text("not a schema", encoding="utf-8")
    return directory


@pytest.fixture
def memory_file(tmp_path: Path) -> Path:
    return tmp_path / "data" / "memory.json"


@pytest.fixture
def store(memory_file):
    """A GraphStore backed by a file in the temp directory."""
    from memorymesh.storage import GraphStore
    return GraphStore(memory_file)


@pytest.fixture
async def registry(schemas_dir):
    """An initialized ToolRegistry over the temp schemas."""
    from memorymesh.registry import ToolRegistry
    registry = ToolRegistry(schemas_dir)
    await registry.initialize()
    return registry


@pytest.fixture
def dispatcher(registry):
    from memorymesh.dispatcher import ToolDispatcher
    return ToolDispatcher(registry)


@pytest.fixture
def read_records(memory_file):
    """Return the persisted records, parsing every line as JSON."""

    def _read() -> list[dict]:
        lines = memory_file.read_text(encoding="utf-8").split("\n")
        return [json.loads(line) for line in lines if line.strip()]

    return _read


@pytest.fixture
def temp_notes(tmp_path: Path) -> Path:
    """Create a temporary markdown corpus with front matter."""
    notes = tmp_path / "notes"
    (notes / "Details").mkdir(parents=True)
    (notes / "Projects").mkdir()
    (notes / ".obsidian").mkdir()

    (notes / "Details" / "Zettelkasten.md").write_text("""---
created: 2024-01-15
status: evergreen
tags:
  - "#method"
  - writing
in:
  - Productivity
related:
  - "[[Evergreen Notes]]"
---

# Zettelkasten
""", encoding="utf-8")

    (notes / "Details" / "Evergreen Notes.md").write_text("""---
tags:
  - writing
up:
  - "[[Zettelkasten]]"
related:
  - "[[Missing Note]]"
---

Body.
""", encoding="utf-8")

    (notes / "Details" / "Garden App.md").write_text("""---
tags:
  - "#idea"
---

An idea.
""", encoding="utf-8")

    (notes / "Projects" / "Website.md").write_text("""---
status: active
year: 2024
---

A project.
""", encoding="utf-8")

    (notes / "Details" / "plain.md").write_text("No front matter here.\n", encoding="utf-8")
    (notes / ".obsidian" / "hidden.md").write_text("---\ntags: [secret]\n---\n", encoding="utf-8")
    return notes
