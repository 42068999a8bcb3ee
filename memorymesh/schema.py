"""
Schema loader for MemoryMesh.

Reads *.schema.json documents from a directory. Each document declares a tool
name, its fields, and which fields are relationships rather than metadata.
"""

import json
from pathlib import Path

import aiofiles
import aiofiles.os
import structlog
from pydantic import ValidationError as PydanticValidationError

from .config import SCHEMA_FILE_SUFFIX
from .models import SchemaDocument
from .utils import SchemaError

logger = structlog.get_logger(__name__)


def parse_schema(text: str, source: str = "<string>") -> SchemaDocument:
    """Parse and validate one schema document.

    Raises:
        SchemaError: If the text is not JSON or does not match the document structure
    """
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaError(f"{source}: invalid JSON: {e}") from e

    try:
        return SchemaDocument.model_validate(raw)
    except PydanticValidationError as e:
        raise SchemaError(f"{source}: invalid schema document: {e}") from e


async def load_schema_file(schema_file: Path) -> SchemaDocument:
    """Read and parse a single schema file."""
    try:
        async with aiofiles.open(schema_file, encoding="utf-8") as f:
            text = await f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise SchemaError(f"{schema_file.name}: cannot read file: {e}") from e
    return parse_schema(text, schema_file.name)


async def load_schemas(directory: Path) -> list[SchemaDocument]:
    """Load every schema document in ``directory``, in filename order.

    Raises:
        SchemaError: If the directory is missing, a file is invalid, or two
            documents share a name
    """
    if not await aiofiles.os.path.isdir(directory):
        raise SchemaError(f"Schema directory not found: {directory}")

    try:
        schema_files = sorted(
            path for path in directory.iterdir()
            if path.is_file() and path.name.endswith(SCHEMA_FILE_SUFFIX)
        )
    except OSError as e:
        raise SchemaError(f"Cannot list schema directory {directory}: {e}") from e

    documents: list[SchemaDocument] = []
    seen: dict[str, str] = {}
    for schema_file in schema_files:
        document = await load_schema_file(schema_file)
        if document.name in seen:
            raise SchemaError(
                f"{schema_file.name}: schema name '{document.name}' already defined in {seen[document.name]}"
            )
        seen[document.name] = schema_file.name
        documents.append(document)

    logger.info("schemas_loaded", directory=str(directory), count=len(documents))
    return documents
