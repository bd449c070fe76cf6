"""Exceptions raised while loading documents and executing tool calls."""

from __future__ import annotations

from typing import Any


class OpenAPIMCPError(Exception):
    """Base exception for openapi_mcp errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class DocumentError(OpenAPIMCPError):
    """The API description could not be read or is structurally unusable."""


class ConfigurationError(OpenAPIMCPError):
    """Startup configuration is incomplete (e.g. no resolvable base URL)."""


class NotFoundError(OpenAPIMCPError):
    """Unknown tool or operation identifier."""

    def __init__(self, name: str):
        super().__init__(f"Operation {name} not found", {"name": name})
        self.name = name


class ParameterValidationError(OpenAPIMCPError):
    """Missing required parameters or values that could not be coerced.

    Raised before any network I/O. ``missing`` holds ``(name, location)``
    pairs; ``problems`` holds one message per coercion failure.
    """

    def __init__(
        self,
        message: str,
        missing: list[tuple[str, str]] | None = None,
        problems: list[str] | None = None,
    ):
        super().__init__(message, {"missing": missing or [], "problems": problems or []})
        self.missing = missing or []
        self.problems = problems or []


class TransportError(OpenAPIMCPError):
    """Non-2xx response or network failure for an outbound call."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        status_text: str | None = None,
        data: Any = None,
        method: str | None = None,
        url: str | None = None,
    ):
        super().__init__(
            message,
            {
                "status": status,
                "statusText": status_text,
                "data": data,
                "method": method,
                "url": url,
            },
        )
        self.status = status
        self.status_text = status_text
        self.data = data
        self.method = method
        self.url = url
