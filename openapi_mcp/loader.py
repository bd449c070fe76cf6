"""Load and parse an OpenAPI document.

Reads JSON or YAML from disk (or a raw string), normalizes it, and exposes
helpers for paths, component schemas and local $ref pointers.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml

from .errors import DocumentError
from .naming import normalize_document

_REF_PREFIX = "#/"


class _DocumentLoader(yaml.SafeLoader):
    """SafeLoader that leaves timestamps as plain strings."""


_DocumentLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_document(source: str | Path | dict[str, Any]) -> dict[str, Any]:
    """Load an OpenAPI document and normalize it in place.

    Accepts an already-parsed dict, a path to a .json/.yaml/.yml file,
    or a raw JSON/YAML string.
    """
    if isinstance(source, dict):
        document = source
    else:
        document = _read_source(source)

    if not isinstance(document, dict):
        raise DocumentError("OpenAPI document must decode to a mapping")
    if not isinstance(document.get("paths"), dict):
        raise DocumentError("OpenAPI document has no 'paths' mapping")

    return normalize_document(document)


def _read_source(source: str | Path) -> Any:
    path = Path(source)
    if isinstance(source, Path) or _looks_like_path(str(source)):
        if not path.is_file():
            raise DocumentError(f"Schema file not found: {path}", {"path": str(path)})
        text = path.read_text(encoding="utf-8")
        if path.suffix == ".json":
            return _parse_json(text)
        if path.suffix in (".yaml", ".yml"):
            return _parse_yaml(text)
        return _parse_text(text)
    return _parse_text(str(source))


def _looks_like_path(source: str) -> bool:
    if "\n" in source or source.lstrip().startswith(("{", "[")):
        return False
    if source.endswith((".json", ".yaml", ".yml")):
        return True
    try:
        return Path(source).is_file()
    except OSError:
        return False


def _parse_text(text: str) -> Any:
    """Parse raw JSON, falling back to YAML."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return _parse_yaml(text)


def _parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise DocumentError(f"Invalid JSON document: {exc}") from exc


def _parse_yaml(text: str) -> Any:
    try:
        return yaml.load(text, Loader=_DocumentLoader)
    except yaml.YAMLError as exc:
        raise DocumentError(f"Invalid YAML document: {exc}") from exc


def get_schemas(document: dict[str, Any]) -> dict[str, Any]:
    """Extract named schemas (components.schemas, or Swagger 2 definitions)."""
    components = document.get("components") or {}
    schemas = components.get("schemas")
    if isinstance(schemas, dict):
        return schemas
    definitions = document.get("definitions")
    return definitions if isinstance(definitions, dict) else {}


def get_servers(document: dict[str, Any]) -> list[dict[str, Any]]:
    servers = document.get("servers") or []
    return [s for s in servers if isinstance(s, dict)]


def resolve_ref(document: dict[str, Any], ref: str) -> Any:
    """Resolve a local $ref pointer in the document.

    Returns None when the pointer is external or does not exist.
    """
    if not isinstance(ref, str) or not ref.startswith(_REF_PREFIX):
        return None
    node: Any = document
    for part in ref[len(_REF_PREFIX):].split("/"):
        part = part.replace("~1", "/").replace("~0", "~")
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def ref_name(ref: str) -> str:
    """Return the last segment of a $ref pointer (the schema name)."""
    return ref.rsplit("/", 1)[-1]
