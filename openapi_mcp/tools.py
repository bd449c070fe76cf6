"""Build tool contracts from a normalized OpenAPI document.

One contract per operation: name (the operationId), a deterministic
description, and an input schema with one property per path/query/header
parameter plus an optional `body`.
"""

from __future__ import annotations

import functools
import logging
from typing import Any

from .models import ROUTED_LOCATIONS, HttpMethod, ToolContract, ToolMetadata
from .naming import build_operation_id, iter_operations
from .registry import collect_parameters, get_request_body, parameter_schema
from .schema_parser import SchemaResolver, append_description

logger = logging.getLogger(__name__)

_ROUTED = {loc.value for loc in ROUTED_LOCATIONS}

JSON_MEDIA_TYPE = "application/json"


def _compare_codes(a: str, b: str) -> int:
    """Numeric compare when both codes are integers, lexical otherwise."""
    if a.isdigit() and b.isdigit():
        return (int(a) > int(b)) - (int(a) < int(b))
    return (a > b) - (a < b)


def sort_response_codes(codes: list[Any]) -> list[str]:
    return sorted((str(c) for c in codes), key=functools.cmp_to_key(_compare_codes))


def make_description(method: HttpMethod, path: str, operation: dict[str, Any]) -> str:
    """Build a tool description.

    "<summary>. <description>" then optional "Tags: ..." and "Returns: ..." lines.
    """
    summary = operation.get("summary") or ""
    description = operation.get("description") or ""

    if summary and description:
        doc = f"{summary}. {description}"
    else:
        doc = summary or description or f"{method.value.upper()} {path}"

    lines = [doc]
    tags = operation.get("tags") or []
    if tags:
        lines.append(f"Tags: {', '.join(str(t) for t in tags)}")
    responses = operation.get("responses") or {}
    if responses:
        lines.append(f"Returns: {', '.join(sort_response_codes(list(responses)))}")
    return "\n".join(lines)


def select_body_schema(content: dict[str, Any]) -> Any:
    """JSON schema if declared, otherwise the first media type's schema."""
    if JSON_MEDIA_TYPE in content:
        media = content[JSON_MEDIA_TYPE]
    elif content:
        media = next(iter(content.values()))
    else:
        return {}
    return media.get("schema", {}) if isinstance(media, dict) else {}


class ToolSchemaBuilder:
    """Produces ToolContracts and keeps the ToolMetadata side index."""

    def __init__(self, document: dict[str, Any], resolver: SchemaResolver | None = None):
        self.document = document
        self.resolver = resolver or SchemaResolver.from_document(document)
        self._metadata: dict[str, ToolMetadata] = {}

    def build(
        self,
        operation: dict[str, Any],
        *,
        path: str,
        method: HttpMethod,
        path_item: dict[str, Any] | None = None,
    ) -> ToolContract:
        """Build the contract for one operation and record its metadata."""
        name = operation.get("operationId") or build_operation_id(method.value, path)
        properties: dict[str, Any] = {}
        required: list[str] = []

        for param in collect_parameters(self.document, path_item or {}, operation):
            if param.get("in") not in _ROUTED:
                continue
            param_name = str(param["name"])
            prop = self.resolver.resolve(parameter_schema(param))
            if param.get("description"):
                append_description(prop, str(param["description"]))
            properties[param_name] = prop
            if param.get("required") is True and param_name not in required:
                required.append(param_name)

        request_body = get_request_body(self.document, operation)
        if request_body is not None:
            content = request_body.get("content") or {}
            body = self.resolver.resolve(select_body_schema(content))
            if len(content) > 1:
                append_description(body, f"Content types: {', '.join(sorted(content))}")
            properties["body"] = body
            if request_body.get("required") is True and "body" not in required:
                required.append("body")

        self._metadata[name] = ToolMetadata(
            operationId=name,
            method=method.value.upper(),
            path=path,
            tags=[str(t) for t in operation.get("tags") or []],
            security=operation.get("security"),
        )

        return ToolContract(
            name=name,
            description=make_description(method, path, operation),
            inputSchema={
                "type": "object",
                "properties": properties,
                "required": required,
                "additionalProperties": False,
            },
        )

    def build_tools(self) -> list[ToolContract]:
        """Build contracts for every operation, in document order."""
        tools = [
            self.build(operation, path=path, method=method, path_item=path_item)
            for path, method, path_item, operation in iter_operations(self.document)
        ]
        logger.info("Generated %d tools", len(tools))
        return tools

    def get_metadata(self, name: str) -> ToolMetadata | None:
        return self._metadata.get(name)


def build_tools(document: dict[str, Any]) -> list[ToolContract]:
    return ToolSchemaBuilder(document).build_tools()
