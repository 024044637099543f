"""
Schema validation for backend payloads.

Response bodies are checked against the JSON Schemas in schemas/ before
they become domain objects. A mismatch raises SchemaError naming the
dotted path of the offending field.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema.exceptions import best_match

SCHEMAS_DIR = Path(__file__).parent / "schemas"


class SchemaError(Exception):
    """Payload did not match its schema."""

    def __init__(self, schema_name: str, message: str, path: str | None = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


@lru_cache(maxsize=None)
def _validator(schema_name: str):
    schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_path.exists():
        raise SchemaError(schema_name, f"Schema file not found: {schema_path}")
    schema = json.loads(schema_path.read_text())
    cls = jsonschema.validators.validator_for(schema)
    cls.check_schema(schema)
    return cls(schema)


def validate(data: Any, schema_name: str) -> None:
    """
    Check a decoded JSON body against a named schema.

    Args:
        data: Decoded JSON body
        schema_name: "generate_response" or "accept_response"

    Raises:
        SchemaError: If the schema is missing or data does not match it
    """
    error = best_match(_validator(schema_name).iter_errors(data))
    if error is None:
        return
    path = ".".join(str(p) for p in error.absolute_path) or "(root)"
    raise SchemaError(schema_name, error.message, path)
