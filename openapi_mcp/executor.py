"""Turn a tool invocation back into an HTTP request and issue it.

Steps per call:
1. look up the operation (unknown -> NotFoundError)
2. collect missing required parameters and coercion failures; raise one
   ParameterValidationError before any I/O
3. route values to path / query / header
4. negotiate the body content type and encode the body
5. send exactly one request with httpx; non-2xx and network failures
   become a TransportError
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote, urlencode

import httpx

from .config import ServerConfig, resolve_base_url
from .errors import NotFoundError, ParameterValidationError, TransportError
from .models import ExecutionResult, OperationEntry
from .registry import OperationRegistry, parameter_schema

logger = logging.getLogger(__name__)

JSON = "application/json"
FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART = "multipart/form-data"

# First match among the declared media types wins.
CONTENT_TYPE_PREFERENCE = (
    JSON,
    "application/xml",
    "text/xml",
    FORM_URLENCODED,
    MULTIPART,
)


@dataclass
class PreparedRequest:
    """Everything needed for the single outbound call."""

    method: str
    url: str
    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    has_body: bool = False
    content_type: str | None = None


def to_text(value: Any) -> str:
    """Stringify a value the way it should appear on the wire."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def _parse_number(name: str, value: Any) -> int | float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = value
    else:
        try:
            number = float(to_text(value).strip())
        except ValueError:
            raise ValueError(f"Parameter {name} must be a valid number, got: {value}") from None
    if not math.isfinite(number):
        raise ValueError(f"Parameter {name} must be a valid number, got: {value}")
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


def _parse_boolean(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    raise ValueError(f"Parameter {name} must be a boolean, got: {value}")


def _parse_array(name: str, value: Any) -> list[Any]:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            return parsed
        return [token.strip() for token in value.split(",")]
    raise ValueError(f"Parameter {name} must be an array, got: {value}")


def coerce_value(param: dict[str, Any], value: Any) -> Any:
    """Coerce a caller-supplied value to the parameter's declared type.

    Raises ValueError naming the parameter and the offending value.
    """
    name = param.get("name")
    declared = parameter_schema(param).get("type")
    if declared in ("integer", "number"):
        return _parse_number(name, value)
    if declared == "boolean":
        return _parse_boolean(name, value)
    if declared == "array":
        return _parse_array(name, value)
    return to_text(value)


def _find_header(headers: dict[str, str], name: str) -> str | None:
    lowered = name.lower()
    for key, value in headers.items():
        if key.lower() == lowered:
            return value
    return None


def negotiate_content_type(request_body: dict[str, Any], headers: dict[str, str]) -> str | None:
    """Caller-supplied Content-Type, else the preferred declared media type."""
    existing = _find_header(headers, "Content-Type")
    if existing:
        return existing
    declared = list(request_body.get("content") or {})
    for media_type in CONTENT_TYPE_PREFERENCE:
        if media_type in declared:
            return media_type
    return declared[0] if declared else None


def _media_type(content_type: str | None) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def encode_body(body: Any, content_type: str | None) -> Any:
    """Encode the payload for the negotiated content type.

    JSON strings are parsed, form objects flattened to key=value pairs;
    other content types pass through unchanged.
    """
    media_type = _media_type(content_type)
    if media_type == JSON:
        if isinstance(body, str):
            return json.loads(body)
        return body
    if media_type == FORM_URLENCODED and isinstance(body, dict):
        return urlencode([(str(k), to_text(v)) for k, v in body.items()])
    return body


class RequestExecutor:
    """Executes tool calls against the registry using one shared httpx client.

    The executor holds no per-call state; concurrent calls only share the
    read-only registry and configuration.
    """

    def __init__(
        self,
        registry: OperationRegistry,
        base_url: str,
        config: ServerConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.registry = registry
        self.base_url = base_url.rstrip("/")
        self.config = config or ServerConfig()
        self._own_client = client is None
        self.client = client or httpx.AsyncClient(timeout=self.config.timeout)

    @classmethod
    def from_document(
        cls,
        document: dict[str, Any],
        config: ServerConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> RequestExecutor:
        config = config or ServerConfig()
        return cls(
            OperationRegistry.from_document(document),
            resolve_base_url(config, document),
            config,
            client,
        )

    async def __aenter__(self) -> RequestExecutor:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._own_client:
            await self.client.aclose()

    def prepare(self, identifier: str, args: dict[str, Any] | None) -> PreparedRequest:
        """Validate and route arguments. Performs no I/O."""
        entry = self.registry.get(identifier)
        if entry is None:
            raise NotFoundError(identifier)
        args = args or {}

        request = PreparedRequest(method=entry.method.value.upper(), url=self.base_url + entry.path)
        missing: list[tuple[str, str]] = []
        problems: list[str] = []

        for param in entry.parameters:
            name = param["name"]
            location = param.get("in", "query")
            value = args.get(name)
            if value is None:
                if param.get("required"):
                    missing.append((name, location))
                continue
            try:
                value = coerce_value(param, value)
            except ValueError as exc:
                problems.append(str(exc))
                continue
            if location == "header" and not to_text(value).isascii():
                problems.append(f"Header {name} must contain only ASCII characters, got: {value}")
                continue
            self._route(request, location, name, value)

        self._prepare_body(request, entry, args, problems)

        if missing or problems:
            raise _validation_error(missing, problems)
        return request

    @staticmethod
    def _route(request: PreparedRequest, location: str, name: str, value: Any) -> None:
        if location == "path":
            request.url = request.url.replace("{" + name + "}", quote(to_text(value), safe=""))
        elif location == "query":
            request.params[name] = value
        elif location == "header":
            request.headers[name] = to_text(value)

    @staticmethod
    def _prepare_body(
        request: PreparedRequest, entry: OperationEntry, args: dict[str, Any], problems: list[str]
    ) -> None:
        if entry.request_body is None or args.get("body") is None:
            return
        content_type = negotiate_content_type(entry.request_body, request.headers)
        try:
            request.body = encode_body(args["body"], content_type)
        except json.JSONDecodeError as exc:
            problems.append(f"Request body is not valid JSON: {exc.msg}")
            return
        request.has_body = True
        request.content_type = content_type
        if content_type and _find_header(request.headers, "Content-Type") is None:
            request.headers["Content-Type"] = content_type

    async def execute(self, identifier: str, args: dict[str, Any] | None = None) -> ExecutionResult:
        """Run one tool call. Raises NotFoundError, ParameterValidationError or TransportError."""
        request = self.prepare(identifier, args)
        return await self.send(request)

    async def send(self, request: PreparedRequest) -> ExecutionResult:
        headers = httpx.Headers(self.config.default_headers())
        headers.update(request.headers)
        kwargs = self._body_kwargs(request, headers)

        logger.info("%s %s", request.method, request.url)
        try:
            response = await self.client.request(
                request.method,
                request.url,
                params=request.params or None,
                headers=headers,
                timeout=self.config.timeout,
                **kwargs,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", request.method, request.url, exc)
            raise TransportError(
                f"Request failed: {str(exc) or type(exc).__name__}",
                method=request.method,
                url=request.url,
            ) from exc

        data = _decode_body(response)
        if not response.is_success:
            logger.warning("%s %s returned %s", request.method, request.url, response.status_code)
            raise TransportError(
                f"HTTP {response.status_code}: {response.reason_phrase} - {json.dumps(data or {}, default=str)}",
                status=response.status_code,
                status_text=response.reason_phrase,
                data=data,
                method=request.method,
                url=request.url,
            )

        return ExecutionResult(
            status=response.status_code,
            statusText=response.reason_phrase,
            headers=dict(response.headers),
            data=data,
            url=request.url,
            method=request.method,
        )

    @staticmethod
    def _body_kwargs(request: PreparedRequest, headers: httpx.Headers) -> dict[str, Any]:
        if not request.has_body:
            return {}
        body = request.body
        media_type = _media_type(request.content_type)
        if media_type == JSON and not isinstance(body, bytes):
            return {"content": json.dumps(body)}
        if isinstance(body, (str, bytes)):
            return {"content": body}
        if media_type == MULTIPART and isinstance(body, dict):
            # httpx writes the multipart Content-Type with its boundary
            if _media_type(headers.get("Content-Type")) == MULTIPART:
                del headers["Content-Type"]
            return {"files": {str(k): (None, to_text(v)) for k, v in body.items()}}
        return {"content": json.dumps(body)}


def _validation_error(missing: list[tuple[str, str]], problems: list[str]) -> ParameterValidationError:
    parts = []
    if missing:
        parts.append(
            "Missing required parameters: " + ", ".join(f"{name} ({loc})" for name, loc in missing)
        )
    parts.extend(problems)
    return ParameterValidationError("; ".join(parts), missing=missing, problems=problems)


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
