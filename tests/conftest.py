"""Shared fixtures for openapi_mcp tests.

Sample documents mirror a small user-management API, and a recording
httpx.MockTransport stands in for the upstream server so no test touches
the network.
"""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from openapi_mcp.config import ServerConfig
from openapi_mcp.executor import RequestExecutor
from openapi_mcp.loader import load_document


# ---------------------------------------------------------------------------
# Sample documents
# ---------------------------------------------------------------------------

USER_API_YAML = """
openapi: 3.0.0
info:
  title: User Management API
  version: 1.0.0
servers:
  - url: https://api.example.com/v1
paths:
  /users:
    get:
      operationId: listUsers
      summary: List all users
      description: Retrieve a paginated list of all users
      tags:
        - Users
      parameters:
        - name: page
          in: query
          schema:
            type: integer
            minimum: 1
            default: 1
          description: Page number
        - name: limit
          in: query
          schema:
            type: integer
            maximum: 100
        - name: active
          in: query
          schema:
            type: boolean
        - name: role
          in: query
          schema:
            type: string
            enum: [admin, user, guest]
          description: Filter by user role
        - name: fields
          in: query
          schema:
            type: array
            items:
              type: string
      responses:
        '200':
          description: List of users
        '400':
          description: Bad request
    post:
      operationId: createUser
      summary: Create new user
      tags:
        - Users
      requestBody:
        required: true
        content:
          application/json:
            schema:
              $ref: '#/components/schemas/CreateUserRequest'
      responses:
        '201':
          description: Created
        '409':
          description: Conflict
  /users/{userId}:
    parameters:
      - name: userId
        in: path
        required: true
        schema:
          type: string
          format: uuid
        description: Unique user identifier
    get:
      operationId: getUserById
      summary: Get user by ID
      tags:
        - Users
      parameters:
        - name: X-Request-Id
          in: header
          required: true
          schema:
            type: string
      responses:
        '200':
          description: User details
        '404':
          description: Not found
    delete:
      operationId: deleteUser
      summary: Delete user
      responses:
        '204':
          description: Deleted
  /uploads:
    post:
      operationId: uploadFile
      requestBody:
        content:
          multipart/form-data:
            schema:
              type: object
              properties:
                file:
                  type: string
                  format: binary
          application/json:
            schema:
              type: object
              properties:
                url:
                  type: string
      responses:
        '200':
          description: Uploaded
  /forms:
    post:
      operationId: submitForm
      requestBody:
        content:
          application/x-www-form-urlencoded:
            schema:
              type: object
      responses:
        '200':
          description: Accepted
components:
  schemas:
    CreateUserRequest:
      type: object
      properties:
        username:
          type: string
          minLength: 3
        email:
          type: string
          format: email
        role:
          type: string
          enum: [admin, user, guest]
        profile:
          $ref: '#/components/schemas/UserProfile'
      required:
        - username
        - email
    UserProfile:
      type: object
      properties:
        bio:
          type: string
          nullable: true
        preferences:
          type: object
          additionalProperties:
            oneOf:
              - type: string
              - type: number
"""

ENTITY_SCHEMAS: dict[str, Any] = {
    "Entity": {
        "type": "object",
        "properties": {
            "id": {"type": "string"},
            "parent": {"$ref": "#/components/schemas/Entity"},
            "children": {
                "type": "array",
                "items": {"$ref": "#/components/schemas/Entity"},
            },
            "metadata": {"$ref": "#/components/schemas/Metadata"},
        },
        "required": ["id"],
    },
    "Metadata": {
        "type": "object",
        "properties": {
            "tags": {"type": "array", "items": {"type": "string"}},
            "entity": {"$ref": "#/components/schemas/Entity"},
        },
    },
}


@pytest.fixture
def user_api() -> dict[str, Any]:
    """Freshly loaded (and normalized) user-management document."""
    return load_document(USER_API_YAML)


@pytest.fixture
def entity_document() -> dict[str, Any]:
    return load_document({
        "openapi": "3.0.0",
        "info": {"title": "Complex API", "version": "1.0.0"},
        "servers": [{"url": "https://api.example.com"}],
        "paths": {
            "/entities": {
                "post": {
                    "operationId": "createEntity",
                    "requestBody": {
                        "content": {
                            "application/json": {
                                "schema": {"$ref": "#/components/schemas/Entity"},
                            }
                        }
                    },
                    "responses": {"200": {"description": "Success"}},
                }
            }
        },
        "components": {"schemas": ENTITY_SCHEMAS},
    })


# ---------------------------------------------------------------------------
# Upstream stand-in
# ---------------------------------------------------------------------------

class FakeAPI:
    """Records every request and answers with a canned response."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status = 200
        self.payload: Any = {"ok": True}
        self.error: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.payload is None:
            return httpx.Response(self.status)
        if isinstance(self.payload, str):
            return httpx.Response(self.status, text=self.payload)
        return httpx.Response(self.status, json=self.payload)

    @property
    def last(self) -> httpx.Request:
        assert self.requests, "no request was sent"
        return self.requests[-1]


@pytest.fixture
def fake_api() -> FakeAPI:
    return FakeAPI()


@pytest.fixture
async def http_client(fake_api):
    async with httpx.AsyncClient(transport=httpx.MockTransport(fake_api.handler)) as client:
        yield client


@pytest.fixture
def executor(user_api, http_client) -> RequestExecutor:
    return RequestExecutor.from_document(user_api, ServerConfig(), client=http_client)
