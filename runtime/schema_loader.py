"""Schema loading and validation for saved map documents.

Provides Windows-safe schema loading with $ref resolution. The schema
directory is resolved relative to this file, not the working directory.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator, RefResolver

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schema"

SAVED_MAP_SCHEMA = "saved_map.schema.json"
PATH_NODE_SCHEMA = "path_node.schema.json"


def _load_schema(schema_dir: Path, name: str) -> Dict[str, Any]:
    with open(schema_dir / name, "r", encoding="utf-8") as f:
        return json.load(f)


def load_schemas(
    schema_dir: Optional[Path] = None
) -> Tuple[Draft7Validator, Draft7Validator]:
    """Load saved map and path node validators.

    Args:
        schema_dir: Directory holding the schema files; defaults to the
            repository's schema/ directory.

    Returns:
        Tuple of (saved_map_validator, path_node_validator).
    """
    schema_dir = (schema_dir or SCHEMA_DIR).resolve()
    schema_dir_uri = schema_dir.as_uri() + "/"

    saved_map_schema = _load_schema(schema_dir, SAVED_MAP_SCHEMA)
    path_node_schema = _load_schema(schema_dir, PATH_NODE_SCHEMA)

    # Build explicit store mapping for $ref resolution
    store = {
        f"{schema_dir_uri}{SAVED_MAP_SCHEMA}": saved_map_schema,
        f"{schema_dir_uri}{PATH_NODE_SCHEMA}": path_node_schema,
    }

    # saved_map_schema references path_node_schema via $ref, so use it as referrer
    saved_map_uri = f"{schema_dir_uri}{SAVED_MAP_SCHEMA}"
    resolver = RefResolver(base_uri=saved_map_uri, referrer=saved_map_schema, store=store)
    saved_map_validator = Draft7Validator(saved_map_schema, resolver=resolver)
    path_node_validator = Draft7Validator(path_node_schema, resolver=resolver)

    return saved_map_validator, path_node_validator


def load_saved_map_validator(schema_dir: Optional[Path] = None) -> Draft7Validator:
    """Validator for a whole saved map document."""
    saved_map_validator, _ = load_schemas(schema_dir)
    return saved_map_validator


def validate_or_error(
    validator: Draft7Validator,
    instance: Any
) -> Tuple[bool, Optional[Dict[str, Any]]]:
    """Validate instance against schema and return detailed error if invalid.

    Args:
        validator: Schema validator instance.
        instance: Instance to validate.

    Returns:
        Tuple of (is_valid, error_info). error_info is None if valid, otherwise
        contains keys: message, path (list), schema_path (list), type.
    """
    errors = list(validator.iter_errors(instance))
    if not errors:
        return True, None

    # Get first error for details
    error = errors[0]
    return False, {
        "message": error.message,
        "path": list(error.absolute_path),
        "schema_path": list(error.absolute_schema_path),
        "type": "schema"
    }
