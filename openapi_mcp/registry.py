"""Index operations by identifier for execution-time lookup."""

from __future__ import annotations

import logging
from typing import Any

from .loader import resolve_ref
from .models import OperationEntry
from .naming import iter_operations

logger = logging.getLogger(__name__)


def _deref(document: dict[str, Any], obj: Any) -> Any:
    """Follow a $ref on a parameter or request-body object (one hop at a time)."""
    seen: set[str] = set()
    while isinstance(obj, dict) and isinstance(obj.get("$ref"), str):
        ref = obj["$ref"]
        if ref in seen:
            return None
        seen.add(ref)
        obj = resolve_ref(document, ref)
    return obj


def collect_parameters(
    document: dict[str, Any], path_item: dict[str, Any], operation: dict[str, Any]
) -> list[dict[str, Any]]:
    """Path-item parameters first, then operation parameters.

    No de-duplication: the same name under different locations is kept twice.
    """
    params: list[dict[str, Any]] = []
    for source in (path_item.get("parameters"), operation.get("parameters")):
        for raw in source or []:
            param = _deref(document, raw)
            if isinstance(param, dict) and param.get("name"):
                params.append(param)
    return params


def get_request_body(document: dict[str, Any], operation: dict[str, Any]) -> dict[str, Any] | None:
    body = _deref(document, operation.get("requestBody"))
    return body if isinstance(body, dict) else None


class OperationRegistry:
    """Read-only mapping of operationId -> OperationEntry."""

    def __init__(self, entries: dict[str, OperationEntry] | None = None):
        self._entries: dict[str, OperationEntry] = dict(entries or {})

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> OperationRegistry:
        return cls(index_operations(document))

    def get(self, operation_id: str) -> OperationEntry | None:
        return self._entries.get(operation_id)

    def __contains__(self, operation_id: object) -> bool:
        return operation_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)


def index_operations(document: dict[str, Any]) -> dict[str, OperationEntry]:
    """Build one entry per operation of a normalized document."""
    entries: dict[str, OperationEntry] = {}
    for path, method, path_item, operation in iter_operations(document):
        operation_id = operation.get("operationId")
        if not operation_id:
            continue
        if operation_id in entries:
            logger.warning("Duplicate operationId %s at %s %s", operation_id, method.value.upper(), path)
        entries[operation_id] = OperationEntry(
            operation_id=operation_id,
            method=method,
            path=path,
            parameters=collect_parameters(document, path_item, operation),
            request_body=get_request_body(document, operation),
        )
    return entries


# Keywords a Swagger 2 style parameter may carry inline instead of in `schema`.
_INLINE_SCHEMA_KEYS = (
    "type", "format", "items", "enum", "default", "minimum", "maximum",
    "minLength", "maxLength", "pattern", "collectionFormat",
)


def parameter_schema(param: dict[str, Any]) -> dict[str, Any]:
    """Return a parameter's schema, building one from inline keywords if needed."""
    schema = param.get("schema")
    if isinstance(schema, dict):
        return schema
    return {k: param[k] for k in _INLINE_SCHEMA_KEYS if k in param}
