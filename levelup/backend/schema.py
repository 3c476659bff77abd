"""
Payload validation.

Backend payloads are checked against the JSON schemas shipped in
``levelup/schemas`` before they are turned into records.
"""

import json
import logging
from pathlib import Path
from typing import Any

import jsonschema

from levelup.core.errors import InvalidPayload


SCHEMA_DIR = Path(__file__).resolve().parent.parent / "schemas"


class SchemaRegistry:
    """
    Loads ``*.schema.json`` files and validates payloads against them.
    """

    def __init__(self, schema_dir: Path | str = SCHEMA_DIR):
        self._schema_dir = Path(schema_dir)
        self._schemas: dict[str, Any] = {}
        self.logger = logging.getLogger(__name__)
        self._load_schemas()

    def _load_schemas(self) -> None:
        if not self._schema_dir.exists():
            self.logger.warning(f"Schema directory not found: {self._schema_dir}")
            return

        for schema_file in self._schema_dir.glob("*.schema.json"):
            with open(schema_file, 'r', encoding='utf-8') as f:
                name = schema_file.name.removesuffix(".schema.json")
                self._schemas[name] = json.load(f)

        self.logger.debug(f"Loaded schemas: {sorted(self._schemas)}")

    @property
    def names(self) -> list[str]:
        return sorted(self._schemas)

    def validate(self, name: str, payload: Any) -> None:
        """
        Validate a payload.

        Raises:
            KeyError: if no schema with that name exists
            InvalidPayload: if the payload does not match
        """
        schema = self._schemas.get(name)
        if schema is None:
            raise KeyError(f"No schema named '{name}'")

        try:
            jsonschema.validate(instance=payload, schema=schema)
        except jsonschema.ValidationError as e:
            raise InvalidPayload(name, e.message) from e


_registry: SchemaRegistry | None = None


def default_registry() -> SchemaRegistry:
    global _registry
    if _registry is None:
        _registry = SchemaRegistry()
    return _registry


def validate_payload(name: str, payload: Any) -> None:
    """Validate against the bundled schemas."""
    default_registry().validate(name, payload)
