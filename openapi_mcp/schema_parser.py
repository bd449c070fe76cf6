"""Resolve OpenAPI schema fragments into finite, self-contained JSON schemas.

Handles:
- $ref resolution against components.schemas (or any local pointer)
- Self- and mutually-referential schemas (terminal stubs on cycles)
- A hard depth bound for long non-cyclic chains
- oneOf/anyOf/allOf composition (members resolved, note appended)
- Enum value extraction into descriptions
- additionalProperties given as a schema
- Malformed fragments degrade to an untyped schema instead of failing
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Union

from .loader import get_schemas, ref_name, resolve_ref

logger = logging.getLogger(__name__)

MAX_DEPTH = 20

COMPOSITION_KEYS = ("oneOf", "anyOf", "allOf")

_COMPOSITION_NOTES = {
    "oneOf": ("one of", "variant"),
    "anyOf": ("any of", "variant"),
    "allOf": ("all of", "schema"),
}

# Keys with structural meaning; everything else is carried over verbatim.
_STRUCTURAL_KEYS = {
    "$ref",
    "properties",
    "required",
    "additionalProperties",
    "items",
    "not",
    *COMPOSITION_KEYS,
}


@dataclass(frozen=True)
class ScalarSchema:
    keywords: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ObjectSchema:
    properties: tuple[tuple[str, SchemaNode], ...] | None = None
    required: tuple[str, ...] | None = None
    additional: bool | SchemaNode | None = None
    keywords: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ArraySchema:
    items: SchemaNode | None = None
    keywords: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CompositionSchema:
    kind: str
    members: tuple[SchemaNode, ...]
    base: SchemaNode


@dataclass(frozen=True)
class RefSchema:
    ref: str
    keywords: dict[str, Any] = field(default_factory=dict)


SchemaNode = Union[ScalarSchema, ObjectSchema, ArraySchema, CompositionSchema, RefSchema]


def _keywords(raw: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in raw.items() if k not in _STRUCTURAL_KEYS}


def parse_schema(raw: Any) -> SchemaNode:
    """Classify a raw schema mapping into one of the schema node variants."""
    if not isinstance(raw, dict):
        return ScalarSchema()

    ref = raw.get("$ref")
    if isinstance(ref, str):
        return RefSchema(ref=ref, keywords=_keywords(raw))

    for kind in COMPOSITION_KEYS:
        members = raw.get(kind)
        if isinstance(members, list):
            rest = {k: v for k, v in raw.items() if k != kind}
            return CompositionSchema(
                kind=kind,
                members=tuple(parse_schema(m) for m in members),
                base=parse_schema(rest),
            )

    schema_type = raw.get("type")
    if schema_type == "array" or "items" in raw:
        items = raw.get("items")
        keywords = _keywords(raw)
        if "items" in raw and not isinstance(items, dict):
            # tuple-form or boolean items are kept as declared
            keywords["items"] = items
        return ArraySchema(
            items=parse_schema(items) if isinstance(items, dict) else None,
            keywords=keywords,
        )

    if schema_type == "object" or "properties" in raw or "additionalProperties" in raw:
        props = raw.get("properties")
        required = raw.get("required")
        additional = raw.get("additionalProperties")
        if isinstance(additional, dict):
            additional = parse_schema(additional)
        elif not isinstance(additional, bool):
            additional = None
        return ObjectSchema(
            properties=tuple(
                (name, parse_schema(sub)) for name, sub in props.items()
            ) if isinstance(props, dict) else None,
            required=tuple(str(r) for r in required) if isinstance(required, list) else None,
            additional=additional,
            keywords=_keywords(raw),
        )

    return ScalarSchema(keywords=_keywords(raw))


def _format_enum_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def append_description(schema: dict[str, Any], note: str) -> None:
    """Append a sentence to schema['description'] unless it is already there."""
    existing = schema.get("description")
    if not isinstance(existing, str) or not existing.strip():
        schema["description"] = note
        return
    if note in existing:
        return
    existing = existing.rstrip()
    if not existing.endswith((".", "!", "?")):
        existing += "."
    schema["description"] = f"{existing} {note}"


def _augment_enum(schema: dict[str, Any]) -> None:
    values = schema.get("enum")
    if isinstance(values, list) and values:
        allowed = ", ".join(_format_enum_value(v) for v in values)
        append_description(schema, f"Allowed values: {allowed}")


class SchemaResolver:
    """Expand $ref pointers into a finite tree.

    Cycle detection works on the chain of pointers currently being expanded
    (``path_stack``); a pointer met twice on that chain becomes a terminal
    stub carrying only the target's type and property names.
    """

    def __init__(
        self,
        schemas: dict[str, Any] | None = None,
        document: dict[str, Any] | None = None,
        max_depth: int = MAX_DEPTH,
    ):
        self.schemas = schemas if schemas is not None else get_schemas(document or {})
        self.document = document or {}
        self.max_depth = max_depth

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> SchemaResolver:
        return cls(document=document)

    def resolve(self, schema: Any, path_stack: tuple[str, ...] = ()) -> dict[str, Any]:
        """Resolve a raw schema (or parsed node). Never raises."""
        node = schema if isinstance(
            schema, (ScalarSchema, ObjectSchema, ArraySchema, CompositionSchema, RefSchema)
        ) else parse_schema(schema)
        try:
            return self._resolve(node, tuple(path_stack), 0)
        except (TypeError, ValueError, AttributeError) as exc:
            logger.debug("Schema degraded to untyped placeholder: %s", exc)
            return {}

    def lookup(self, ref: str) -> Any:
        """Find the target of a pointer in the definitions table."""
        for prefix in ("#/components/schemas/", "#/definitions/"):
            if ref.startswith(prefix):
                name = ref[len(prefix):].replace("~1", "/").replace("~0", "~")
                if name in self.schemas:
                    return self.schemas[name]
        return resolve_ref(self.document, ref)

    def _resolve(self, node: SchemaNode, stack: tuple[str, ...], depth: int) -> dict[str, Any]:
        if isinstance(node, RefSchema):
            return self._resolve_ref(node, stack, depth)
        if isinstance(node, CompositionSchema):
            return self._resolve_composition(node, stack, depth)
        if isinstance(node, ObjectSchema):
            return self._resolve_object(node, stack, depth)
        if isinstance(node, ArraySchema):
            return self._resolve_array(node, stack, depth)
        result = dict(node.keywords)
        _augment_enum(result)
        return result

    def _resolve_ref(self, node: RefSchema, stack: tuple[str, ...], depth: int) -> dict[str, Any]:
        target = self.lookup(node.ref)
        name = ref_name(node.ref)

        if not isinstance(target, dict):
            logger.debug("Unresolvable reference %s", node.ref)
            result = dict(node.keywords)
            append_description(result, f"Unresolved reference {node.ref}")
            return result

        if node.ref in stack:
            logger.debug("Circular reference to %s truncated", name)
            return self._stub(target, f"Circular reference to {name}")

        if depth >= self.max_depth:
            logger.debug("Maximum depth reached at %s", name)
            return self._stub(target, f"Maximum depth reached for {name}")

        result = self._resolve(parse_schema(target), stack + (node.ref,), depth + 1)
        # sibling keywords next to $ref (description, nullable, ...) win
        result.update(node.keywords)
        _augment_enum(result)
        return result

    def _stub(self, target: dict[str, Any], note: str) -> dict[str, Any]:
        stub: dict[str, Any] = {}
        props = target.get("properties")
        if "type" in target:
            stub["type"] = target["type"]
        elif isinstance(props, dict):
            stub["type"] = "object"
        stub["description"] = note
        if isinstance(props, dict):
            stub["properties"] = {prop: {} for prop in props}
        return stub

    def _resolve_object(self, node: ObjectSchema, stack: tuple[str, ...], depth: int) -> dict[str, Any]:
        result = dict(node.keywords)
        if depth >= self.max_depth:
            return self._stub({**result, "properties": dict(node.properties or ())}, "Maximum depth reached")
        if node.properties is not None:
            result["properties"] = {
                name: self._resolve(sub, stack, depth + 1) for name, sub in node.properties
            }
        if node.required is not None:
            result["required"] = list(node.required)
        if isinstance(node.additional, bool):
            result["additionalProperties"] = node.additional
        elif node.additional is not None:
            result["additionalProperties"] = self._resolve(node.additional, stack, depth + 1)
        _augment_enum(result)
        return result

    def _resolve_array(self, node: ArraySchema, stack: tuple[str, ...], depth: int) -> dict[str, Any]:
        result = dict(node.keywords)
        if node.items is not None:
            if depth >= self.max_depth:
                result["items"] = {}
            else:
                result["items"] = self._resolve(node.items, stack, depth + 1)
        _augment_enum(result)
        return result

    def _resolve_composition(
        self, node: CompositionSchema, stack: tuple[str, ...], depth: int
    ) -> dict[str, Any]:
        result = self._resolve(node.base, stack, depth)
        if depth >= self.max_depth:
            result[node.kind] = [{} for _ in node.members]
        else:
            result[node.kind] = [self._resolve(m, stack, depth + 1) for m in node.members]
        phrase, noun = _COMPOSITION_NOTES[node.kind]
        count = len(node.members)
        append_description(result, f"{phrase} {count} {noun}{'' if count == 1 else 's'}")
        return result
