"""Assign operation identifiers and default response metadata.

Pattern: {method}_{path}, with every non-alphanumeric path character
replaced by an underscore (one underscore per character).

Examples:
  GET  /test                      -> get__test
  POST /another                   -> post__another
  GET  /api/v1/complex-path/{id}  -> get__api_v1_complex_path__id_
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from typing import Any

from .models import HttpMethod

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")

DEFAULT_RESPONSES: dict[str, Any] = {"200": {"description": "Successful response"}}


def build_operation_id(method: str, path: str) -> str:
    """Build a deterministic identifier from HTTP method and path template."""
    return f"{method.lower()}_{_NON_ALNUM.sub('_', path)}"


def iter_operations(
    document: dict[str, Any],
) -> Iterator[tuple[str, HttpMethod, dict[str, Any], dict[str, Any]]]:
    """Yield (path, method, path_item, operation) in declaration order.

    Skips path items and operations that are not mappings.
    """
    for path, path_item in (document.get("paths") or {}).items():
        if not isinstance(path_item, dict):
            continue
        for method in HttpMethod:
            operation = path_item.get(method.value)
            if isinstance(operation, dict):
                yield path, method, path_item, operation


def normalize_document(document: dict[str, Any]) -> dict[str, Any]:
    """Fill in missing operationIds and responses, in place.

    Re-running on a normalized document changes nothing.
    """
    for path_item in (document.get("paths") or {}).values():
        if not isinstance(path_item, dict):
            continue
        for method in HttpMethod:
            # `post:` with nothing under it decodes to None
            if method.value in path_item and path_item[method.value] is None:
                path_item[method.value] = {}

    for path, method, _path_item, operation in iter_operations(document):
        if not operation.get("operationId"):
            operation["operationId"] = build_operation_id(method.value, path)
            logger.debug("Assigned operationId %s", operation["operationId"])
        if not operation.get("responses"):
            operation["responses"] = {
                code: dict(response) for code, response in DEFAULT_RESPONSES.items()
            }
    return document
