"""Naming rules and JSON-Schema-shaped property validation for graph types.

The validator covers the subset of JSON Schema that type definitions use:
type (single or list), enum, minimum/maximum, minLength/maxLength,
pattern, the date-time format, minItems/maxItems, items, required and
nested properties. Every violation is collected, not just the first.
"""

from __future__ import annotations

import json
import re
from typing import Any

from dateutil import parser as date_parser

from steward.errors import TypeNameError

NODE_TYPE_NAME_RE = re.compile(r"^[A-Z][A-Za-z0-9]*(?: [A-Za-z0-9]+)*$")
EDGE_TYPE_NAME_RE = re.compile(r"^[a-z][a-z_]*$")


def check_node_type_name(name: str) -> None:
    if not NODE_TYPE_NAME_RE.match(name):
        raise TypeNameError(
            "Node type name must start with a capital letter and may contain spaces "
            f'(e.g., "Regulation", "Market Event"). Got: "{name}"'
        )


def check_edge_type_name(name: str) -> None:
    if not EDGE_TYPE_NAME_RE.match(name):
        raise TypeNameError(
            f'Edge type name must be snake_case (e.g., "regulates", "competes_with"). Got: "{name}"'
        )


def format_type_names(names: list[str]) -> str:
    """Sorted, comma-separated type names, or "(none)"."""
    if not names:
        return "(none)"
    return ", ".join(sorted(names, key=str.lower))


# ---------------------------------------------------------------------------
# Property validation
# ---------------------------------------------------------------------------


def _label(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _matches_type(value: Any, schema_type: str) -> bool:
    if schema_type == "null":
        return value is None
    if schema_type == "array":
        return isinstance(value, list)
    if schema_type == "object":
        return isinstance(value, dict)
    if schema_type == "integer":
        return _is_number(value) and float(value).is_integer()
    if schema_type == "number":
        return _is_number(value)
    if schema_type == "boolean":
        return isinstance(value, bool)
    if schema_type == "string":
        return isinstance(value, str)
    return False


def _dump(value: Any) -> str:
    return json.dumps(value, default=str)


def _is_datetime(value: str) -> bool:
    try:
        date_parser.parse(value)
    except (ValueError, OverflowError):
        return False
    return True


def _validate(value: Any, schema: Any, path: str, errors: list[str]) -> None:
    if not isinstance(schema, dict):
        return

    raw_type = schema.get("type")
    schema_types = raw_type if isinstance(raw_type, list) else ([raw_type] if raw_type else [])
    if schema_types and not any(_matches_type(value, t) for t in schema_types):
        errors.append(f"{path} expected {'|'.join(schema_types)}, got {_label(value)} ({_dump(value)})")
        return

    enum = schema.get("enum")
    if isinstance(enum, list) and value not in enum:
        errors.append(f"{path} must be one of {', '.join(_dump(v) for v in enum)}")

    if _is_number(value):
        minimum = schema.get("minimum")
        maximum = schema.get("maximum")
        if _is_number(minimum) and value < minimum:
            errors.append(f"{path} must be >= {minimum}, got {value}")
        if _is_number(maximum) and value > maximum:
            errors.append(f"{path} must be <= {maximum}, got {value}")

    if isinstance(value, str):
        min_length = schema.get("minLength")
        max_length = schema.get("maxLength")
        if _is_number(min_length) and len(value) < min_length:
            errors.append(f"{path} must have length >= {min_length}, got {len(value)}")
        if _is_number(max_length) and len(value) > max_length:
            errors.append(f"{path} must have length <= {max_length}, got {len(value)}")
        pattern = schema.get("pattern")
        if isinstance(pattern, str):
            try:
                if not re.search(pattern, value):
                    errors.append(f"{path} must match pattern {pattern}, got {_dump(value)}")
            except re.error:
                # Unusable patterns in agent-authored schemas are ignored
                pass
        if schema.get("format") == "date-time" and not _is_datetime(value):
            errors.append(f"{path} must be a valid date-time string, got {_dump(value)}")

    if isinstance(value, list):
        min_items = schema.get("minItems")
        max_items = schema.get("maxItems")
        if _is_number(min_items) and len(value) < min_items:
            errors.append(f"{path} must have at least {min_items} items, got {len(value)}")
        if _is_number(max_items) and len(value) > max_items:
            errors.append(f"{path} must have at most {max_items} items, got {len(value)}")
        items = schema.get("items")
        if items:
            for index, item in enumerate(value):
                _validate(item, items, f"{path}[{index}]", errors)

    if isinstance(value, dict):
        for key in schema.get("required") or []:
            if key not in value:
                errors.append(f"{path}.{key} is required")
        properties = schema.get("properties") or {}
        for key, item in value.items():
            if key in properties:
                _validate(item, properties[key], f"{path}.{key}", errors)


def validate_properties(properties: dict[str, Any], schema: dict[str, Any] | None) -> list[str]:
    """Validate a properties object. Returns every violation; empty means valid."""
    errors: list[str] = []
    if schema is None:
        return errors
    _validate(properties, schema, "properties", errors)
    return errors
