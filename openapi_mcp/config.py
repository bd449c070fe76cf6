"""Immutable runtime configuration for the request executor."""

from __future__ import annotations

import base64
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import ConfigurationError
from .loader import get_servers

DEFAULT_TIMEOUT = 30.0


class ServerConfig(BaseModel):
    """Base-URL override, extra headers, basic auth and per-call timeout."""

    model_config = ConfigDict(frozen=True)

    base_url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    username: str | None = None
    password: str | None = None
    timeout: float = DEFAULT_TIMEOUT

    @field_validator("headers")
    @classmethod
    def _check_headers(cls, headers: dict[str, str]) -> dict[str, str]:
        for name, value in headers.items():
            if not (name.isascii() and value.isascii()):
                raise ConfigurationError(f"Header {name} must contain only ASCII characters")
        return headers

    @model_validator(mode="after")
    def _check_basic_auth(self) -> ServerConfig:
        if bool(self.username) != bool(self.password):
            raise ConfigurationError(
                "Both username and password must be provided for basic authentication"
            )
        return self

    @property
    def has_basic_auth(self) -> bool:
        return bool(self.username and self.password)

    def default_headers(self) -> dict[str, str]:
        """Headers sent with every request, before per-call parameters."""
        headers = {"Content-Type": "application/json", **self.headers}
        if self.has_basic_auth:
            token = base64.b64encode(f"{self.username}:{self.password}".encode()).decode()
            headers["Authorization"] = f"Basic {token}"
        return headers


def resolve_base_url(config: ServerConfig, document: dict[str, Any]) -> str:
    """Explicit override, else the first declared server URL."""
    if config.base_url:
        return config.base_url.rstrip("/")
    for server in get_servers(document):
        url = server.get("url")
        if url:
            return str(url).rstrip("/")
    raise ConfigurationError("No server URL found in OpenAPI schema and no base URL provided")
