"""Translate pydantic models into provider structured-output schemas.

Both converters start from `model_json_schema()`. The Gemini dialect cannot express
tagged unions, so those collapse into a loose object whose description lists the legal
tags; post-hoc validation against the real model enforces the actual shape.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_GEMINI_PRIMITIVES = {
    "string": "STRING",
    "number": "NUMBER",
    "integer": "INTEGER",
    "boolean": "BOOLEAN",
}

_OPENAI_STRIPPED_KEYWORDS = frozenset(
    {
        "maxLength",
        "minLength",
        "pattern",
        "minimum",
        "maximum",
        "exclusiveMinimum",
        "exclusiveMaximum",
        "minItems",
        "maxItems",
        "format",
        "default",
        "title",
        "discriminator",
    }
)


class SchemaResolver:
    """Resolves local `$ref` pointers against a model schema's `$defs`."""

    def __init__(self, root: dict[str, Any]) -> None:
        self.defs: dict[str, Any] = root.get("$defs", {})

    def resolve(self, node: dict[str, Any]) -> dict[str, Any]:
        seen: set[str] = set()
        while isinstance(node, dict) and "$ref" in node:
            ref = node["$ref"]
            if ref in seen:
                raise ValueError(f"Circular schema reference: {ref}")
            seen.add(ref)
            name = ref.rsplit("/", 1)[-1]
            target = self.defs.get(name)
            if target is None:
                raise ValueError(f"Unresolvable schema reference: {ref}")
            siblings = {key: value for key, value in node.items() if key != "$ref"}
            node = {**target, **siblings} if siblings else target
        return node


def split_nullable(node: dict[str, Any]) -> tuple[dict[str, Any], bool]:
    """Return (inner schema, is_nullable) for `anyOf: [X, {"type": "null"}]` wrappers."""
    for key in ("anyOf", "oneOf"):
        options = node.get(key)
        if not isinstance(options, list) or "discriminator" in node:
            continue
        non_null = [option for option in options if option.get("type") != "null"]
        if len(non_null) == len(options):
            continue
        if len(non_null) == 1:
            inner = dict(non_null[0])
            for extra_key in ("description", "maxLength"):
                if extra_key in node and extra_key not in inner:
                    inner[extra_key] = node[extra_key]
            return inner, True
        return {**node, key: non_null}, True
    if node.get("type") == "null":
        return {}, True
    return node, False


def discriminator_values(node: dict[str, Any], resolver: SchemaResolver) -> tuple[str, list[str]]:
    discriminator = node.get("discriminator") or {}
    prop = discriminator.get("propertyName", "type")
    mapping = discriminator.get("mapping")
    if mapping:
        return prop, list(mapping.keys())
    values: list[str] = []
    for option in node.get("oneOf") or node.get("anyOf") or []:
        variant = resolver.resolve(option)
        tag = (variant.get("properties") or {}).get(prop, {})
        if "const" in tag:
            values.append(tag["const"])
        elif tag.get("enum"):
            values.extend(tag["enum"])
    return prop, values


# Gemini


def to_gemini_schema(model: type[BaseModel]) -> dict[str, Any]:
    root = model.model_json_schema()
    resolver = SchemaResolver(root)
    return _gemini_node(root, resolver, path=model.__name__)


def _gemini_node(node: dict[str, Any], resolver: SchemaResolver, *, path: str) -> dict[str, Any]:
    node = resolver.resolve(node)
    inner, nullable = split_nullable(node)
    if nullable:
        converted = _gemini_node(inner, resolver, path=path) if inner else {"type": "STRING"}
        converted["nullable"] = True
        return converted

    description = node.get("description")
    converted = _gemini_node_inner(node, resolver, path=path)
    if description and "description" not in converted:
        converted["description"] = description
    return converted


def _gemini_node_inner(node: dict[str, Any], resolver: SchemaResolver, *, path: str) -> dict[str, Any]:
    if "discriminator" in node and ("oneOf" in node or "anyOf" in node):
        prop, values = discriminator_values(node, resolver)
        return {
            "type": "OBJECT",
            "description": f"Object with '{prop}' field. Valid types: {', '.join(values)}",
            "properties": {prop: {"type": "STRING", "enum": values}},
            "required": [prop],
        }

    for key in ("anyOf", "oneOf"):
        if key in node:
            logger.warning(
                "Plain union collapsed to its first member",
                extra={"schema_path": path, "options": len(node[key])},
            )
            return _gemini_node(node[key][0], resolver, path=path)

    if "allOf" in node:
        members = [resolver.resolve(member) for member in node["allOf"]]
        if all(member.get("type") == "object" or "properties" in member for member in members):
            merged: dict[str, Any] = {"type": "object", "properties": {}, "required": []}
            for member in members:
                merged["properties"].update(member.get("properties") or {})
                merged["required"].extend(member.get("required") or [])
            return _gemini_node(merged, resolver, path=path)
        return _gemini_node(members[0], resolver, path=path)

    if "const" in node:
        value = node["const"]
        if isinstance(value, bool):
            return {"type": "BOOLEAN"}
        if isinstance(value, (int, float)):
            # Gemini only accepts enum on STRING.
            return {"type": "NUMBER", "description": f"Always {value}"}
        return {"type": "STRING", "enum": [str(value)]}

    if "enum" in node:
        return {"type": "STRING", "enum": [str(value) for value in node["enum"]]}

    node_type = node.get("type")
    if isinstance(node_type, str) and node_type in _GEMINI_PRIMITIVES:
        return {"type": _GEMINI_PRIMITIVES[node_type]}

    if node_type == "array":
        items = node.get("items") or {}
        return {"type": "ARRAY", "items": _gemini_node(items, resolver, path=f"{path}[]")}

    if node_type == "object" or "properties" in node:
        properties = node.get("properties") or {}
        if not properties and isinstance(node.get("additionalProperties"), dict):
            return {
                "type": "OBJECT",
                "properties": {},
                "additionalProperties": _gemini_node(
                    node["additionalProperties"], resolver, path=f"{path}{{}}"
                ),
            }
        required_names = set(node.get("required") or [])
        converted_props: dict[str, Any] = {}
        required: list[str] = []
        for name, prop in properties.items():
            converted = _gemini_node(prop, resolver, path=f"{path}.{name}")
            if name not in required_names:
                converted["nullable"] = True
            converted_props[name] = converted
            if name in required_names and not converted.get("nullable"):
                required.append(name)
        result: dict[str, Any] = {"type": "OBJECT", "properties": converted_props}
        if required:
            result["required"] = required
        return result

    logger.warning(
        "Unsupported schema node; falling back to STRING",
        extra={"schema_path": path, "schema_keys": sorted(node.keys())},
    )
    return {"type": "STRING"}


# OpenAI strict structured outputs


def to_openai_json_schema(model: type[BaseModel], *, strict: bool = True) -> dict[str, Any]:
    root = copy.deepcopy(model.model_json_schema())
    defs = root.pop("$defs", {})
    converted = _openai_node(root, strict=strict)
    if defs:
        converted["$defs"] = {name: _openai_node(schema, strict=strict) for name, schema in defs.items()}
    return converted


def openai_response_format(model: type[BaseModel], *, name: str | None = None) -> dict[str, Any]:
    return {
        "type": "json_schema",
        "json_schema": {
            "name": name or model.__name__,
            "schema": to_openai_json_schema(model),
            "strict": True,
        },
    }


def _openai_node(node: dict[str, Any], *, strict: bool) -> dict[str, Any]:
    if "$ref" in node:
        return {"$ref": node["$ref"]}

    result: dict[str, Any] = {}
    for key, value in node.items():
        if strict and key in _OPENAI_STRIPPED_KEYWORDS:
            continue
        if key == "const":
            result["enum"] = [value]
        elif key in ("anyOf", "oneOf", "allOf"):
            target = "anyOf" if key == "oneOf" else key
            result[target] = [_openai_node(option, strict=strict) for option in value]
        elif key == "items" and isinstance(value, dict):
            result["items"] = _openai_node(value, strict=strict)
        elif key == "properties":
            continue
        else:
            result[key] = value

    if "properties" in node:
        required_names = set(node.get("required") or [])
        properties: dict[str, Any] = {}
        for name, prop in node["properties"].items():
            converted = _openai_node(prop, strict=strict)
            if strict and name not in required_names and not _allows_null(converted):
                converted = {"anyOf": [converted, {"type": "null"}]}
            properties[name] = converted
        result["properties"] = properties
        if strict:
            result["required"] = list(properties.keys())
            result["additionalProperties"] = False
    elif strict and node.get("type") == "object" and node.get("additionalProperties") is not True:
        result.setdefault("properties", {})
        result["required"] = []
        result["additionalProperties"] = False
    return result


def _allows_null(node: dict[str, Any]) -> bool:
    if node.get("type") == "null":
        return True
    return any(option.get("type") == "null" for option in node.get("anyOf") or [])


def schema_warnings(model: type[BaseModel]) -> list[str]:
    """List constructs that providers only support loosely (plain unions, open dicts)."""
    root = model.model_json_schema()
    warnings: list[str] = []

    def visit(node: Any, path: str) -> None:
        if isinstance(node, list):
            for index, item in enumerate(node):
                visit(item, f"{path}[{index}]")
            return
        if not isinstance(node, dict):
            return
        for key in ("anyOf", "oneOf"):
            options = node.get(key)
            if isinstance(options, list) and "discriminator" not in node:
                non_null = [option for option in options if option.get("type") != "null"]
                if len(non_null) > 1:
                    warnings.append(f"{path}: plain union of {len(non_null)} members")
        if node.get("additionalProperties") is True or isinstance(node.get("additionalProperties"), dict):
            warnings.append(f"{path}: open-ended object")
        for key, value in node.items():
            if key in ("properties", "$defs"):
                for name, child in value.items():
                    visit(child, f"{path}.{name}")
            elif key in ("items", "anyOf", "oneOf", "allOf"):
                visit(value, f"{path}.{key}")

    visit(root, model.__name__)
    return warnings
