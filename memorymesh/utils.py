"""
Utility functions, exceptions and compiled regex patterns for MemoryMesh.

Contains the error taxonomy, metadata line helpers and front matter parsing.
"""

import json
import re
from typing import Any

import yaml

# Pre-compiled regex patterns for performance
FRONTMATTER_PATTERN = re.compile(r'^---\s*\n(.*?)\n---\s*\n', re.DOTALL)
LINK_BRACKETS_PATTERN = re.compile(r'[\[\]]')
METADATA_LABEL_PATTERN = re.compile(r'^([^:]+):\s')


# ============== Exceptions ==============

class MemoryMeshError(Exception):
    """Base class for every error surfaced to tool callers."""
    pass


class ValidationError(MemoryMeshError):
    """Raised when a tool argument is missing, mistyped or outside its enum."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(MemoryMeshError):
    """Raised when an operation references an unknown node or edge."""
    pass


class ConflictError(MemoryMeshError):
    """Raised when adding a node whose name is already taken."""
    pass


class InitializationError(MemoryMeshError):
    """Raised when tools are used before the registry is ready."""
    pass


class UnknownToolError(MemoryMeshError):
    """Raised when a tool name is not registered."""
    pass


class PersistenceError(MemoryMeshError):
    """Raised when the graph file cannot be read or written."""
    pass


class CorruptStoreError(PersistenceError):
    """Raised when the graph file holds a line that is not a valid record."""
    pass


class SchemaError(MemoryMeshError):
    """Raised when a schema document cannot be loaded or compiled."""
    pass


# ============== Metadata Helpers ==============

def capitalize_label(field: str) -> str:
    """Upper-case the first character of a field name ("currentLocation" -> "CurrentLocation")."""
    return field[:1].upper() + field[1:]


def render_value(value: Any) -> str:
    """Render an argument value as the text after "Label: "."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return ", ".join(render_value(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return str(value)


def metadata_label(entry: str) -> str | None:
    """Return the label of a "Label: value" entry, or None for free-form text."""
    match = METADATA_LABEL_PATTERN.match(entry)
    if match:
        return match.group(1)
    return None


def merge_metadata(existing: list[str], updates: list[str]) -> list[str]:
    """Merge metadata lines by label.

    An update whose label matches an existing entry replaces that entry in
    place; anything else is appended. Free-form updates are appended unless
    already present.
    """
    merged = list(existing)
    for entry in updates:
        label = metadata_label(entry)
        if label is None:
            if entry not in merged:
                merged.append(entry)
            continue

        prefix = f"{label}: "
        for index, current in enumerate(merged):
            if current.startswith(prefix):
                merged[index] = entry
                break
        else:
            merged.append(entry)
    return merged


def describe_validation_error(exc: Any) -> tuple[str, str | None]:
    """Summarize a pydantic ValidationError as (message, offending field)."""
    errors = exc.errors()
    if not errors:
        return str(exc), None
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    if location:
        return f"Invalid field '{location}': {message}", location
    return message, None


# ============== Front Matter ==============

def parse_frontmatter(content: str) -> tuple[dict, str]:
    """Extract YAML frontmatter and body from note content."""
    frontmatter = {}
    body = content

    match = FRONTMATTER_PATTERN.match(content)
    if match:
        try:
            frontmatter = yaml.safe_load(match.group(1)) or {}
        except yaml.YAMLError:
            frontmatter = {}
        if not isinstance(frontmatter, dict):
            frontmatter = {}
        body = content[match.end():]

    return frontmatter, body


def strip_link_brackets(text: str) -> str:
    """Remove wiki link brackets: "[[Tavern]]" -> "Tavern"."""
    return LINK_BRACKETS_PATTERN.sub('', text).strip()
