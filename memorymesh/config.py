"""
Configuration module for MemoryMesh.

Uses pydantic-settings for configuration management with environment variable support.
Environment variables use MEMORYMESH_ prefix (e.g., MEMORYMESH_MEMORY_FILE).
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent


def _get_default_schemas_dir() -> Path:
    """Schemas bundled with the package."""
    return PACKAGE_DIR / "data" / "schemas"


def _get_default_memory_file() -> Path:
    """Get default graph file path."""
    return Path.home() / ".memorymesh" / "memory.json"


class Settings(BaseSettings):
    """Application settings with environment variable support.

    Environment variables:
    - MEMORYMESH_SCHEMAS_DIR: Directory holding *.schema.json documents
    - MEMORYMESH_MEMORY_FILE: Path to the JSON-lines graph file
    - MEMORYMESH_SERVER_NAME: Name announced to MCP clients
    - MEMORYMESH_SERVER_VERSION: Version announced to MCP clients
    - MEMORYMESH_LOG_LEVEL: Minimum log level (DEBUG, INFO, WARNING, ERROR)
    - MEMORYMESH_LOG_FORMAT: "console" or "json"
    """

    schemas_dir: Path = Field(default_factory=_get_default_schemas_dir)
    memory_file: Path = Field(default_factory=_get_default_memory_file)
    server_name: str = "memorymesh"
    server_version: str = "0.2.8"
    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"
    # Not enforced; schema documents carry no version yet
    supported_schema_versions: list[str] = ["0.1", "0.2"]

    model_config = SettingsConfigDict(env_prefix="MEMORYMESH_")


# Global settings instance
settings = Settings()

SCHEMA_FILE_SUFFIX = ".schema.json"

# Edge types produced by the markdown importer
IMPORT_EDGE_TYPES = {
    "related": "related_to",
    "in": "belongs_to_topic",
    "tags": "tagged_with",
    "up": "part_of",
}
