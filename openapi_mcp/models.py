"""Typed records shared by the builder, registry and executor."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "HttpMethod",
    "ParameterLocation",
    "OperationEntry",
    "ToolContract",
    "ToolMetadata",
    "ExecutionResult",
]


class HttpMethod(str, Enum):
    """The verbs an operation can be declared under, in visiting order."""

    GET = "get"
    POST = "post"
    PUT = "put"
    PATCH = "patch"
    DELETE = "delete"
    OPTIONS = "options"
    HEAD = "head"


class ParameterLocation(str, Enum):
    PATH = "path"
    QUERY = "query"
    HEADER = "header"
    COOKIE = "cookie"


# Locations that become tool input properties and get routed by the executor.
ROUTED_LOCATIONS = (ParameterLocation.PATH, ParameterLocation.QUERY, ParameterLocation.HEADER)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class OperationEntry(_Frozen):
    """Raw operation metadata indexed for execution-time lookup."""

    operation_id: str
    method: HttpMethod
    path: str
    parameters: list[dict[str, Any]] = Field(default_factory=list)
    request_body: dict[str, Any] | None = None


class ToolContract(_Frozen):
    """The {name, description, inputSchema} triple exposed per operation."""

    name: str
    description: str
    input_schema: dict[str, Any] = Field(alias="inputSchema")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ToolMetadata(_Frozen):
    operation_id: str = Field(alias="operationId")
    method: str
    path: str
    tags: list[str] = Field(default_factory=list)
    security: list[dict[str, Any]] | None = None


class ExecutionResult(_Frozen):
    """Normalized successful response of an outbound call."""

    status: int
    status_text: str = Field(alias="statusText")
    headers: dict[str, str] = Field(default_factory=dict)
    data: Any = None
    url: str
    method: str

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
