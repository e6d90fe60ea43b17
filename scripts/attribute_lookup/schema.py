from __future__ import annotations

import json
from functools import lru_cache
from importlib import resources
from pathlib import Path
from typing import Any

from jsonschema import Draft202012Validator, FormatChecker

SCHEMA_PACKAGE = "attribute_lookup"
SCHEMA_FILE_NAME = "attribute-lookup.schema.json"


class LookupValidationError(ValueError):
    """Raised when a lookup document does not have the tfb_lookup.json shape."""


def default_schema_resource():
    """The schema shipped as package data, found the same way from a checkout or an install."""
    return resources.files(SCHEMA_PACKAGE).joinpath("schemas").joinpath(SCHEMA_FILE_NAME)


@lru_cache(maxsize=None)
def _validator(schema_path: Path | None) -> Draft202012Validator:
    source = default_schema_resource() if schema_path is None else schema_path
    schema = json.loads(source.read_text(encoding="utf-8"))
    Draft202012Validator.check_schema(schema)
    return Draft202012Validator(schema, format_checker=FormatChecker())


def schema_errors(doc: Any, *, schema_path: Path | None = None) -> list[str]:
    validator = _validator(schema_path)
    errors = sorted(validator.iter_errors(doc), key=lambda err: list(map(str, err.absolute_path)))
    formatted: list[str] = []
    for err in errors:
        path = "/".join(map(str, err.absolute_path))
        formatted.append(f"{path or '<root>'}: {err.message}")
    return formatted


def validate_lookup_doc(doc: Any, *, schema_path: Path | None = None) -> None:
    errors = schema_errors(doc, schema_path=schema_path)
    if errors:
        formatted = "\n".join(f"- {entry}" for entry in errors)
        raise LookupValidationError(f"lookup validation failed:\n{formatted}")
