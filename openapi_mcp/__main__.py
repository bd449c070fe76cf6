"""Entry point: python -m openapi_mcp --schema openapi.yaml

Loads the document, builds the tools and serves them over stdio.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from enum import Enum
from pathlib import Path
from typing import Optional

import typer

from .config import DEFAULT_TIMEOUT, ServerConfig
from .errors import OpenAPIMCPError
from .server import OpenAPIMCPServer

app = typer.Typer(
    add_completion=False,
    help="Expose any REST API as an MCP server based on its OpenAPI schema.",
)

# Placeholders in --headers replaced from the environment
_HEADER_PLACEHOLDERS = ("BEARER_TOKEN", "ORGANIZATION_ID")


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def parse_headers(raw: str | None) -> dict[str, str]:
    """Parse the --headers JSON object, substituting env placeholders."""
    if not raw:
        return {}
    for placeholder in _HEADER_PLACEHOLDERS:
        raw = raw.replace(placeholder, os.environ.get(placeholder, ""))
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError("headers must be a JSON object")
    return {str(k): str(v) for k, v in parsed.items()}


def _configure_logging(level: str) -> None:
    # stdout carries the MCP stdio transport
    logging.basicConfig(
        level=level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def main(
    schema: Path = typer.Option(
        ..., "--schema", "-s", envvar="OPENAPI_MCP_SCHEMA",
        help="Path to OpenAPI schema file (JSON or YAML)",
    ),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", "-b", envvar="OPENAPI_MCP_BASE_URL",
        help="Override base URL from schema",
    ),
    headers: Optional[str] = typer.Option(
        None, "--headers", "-H", envvar="OPENAPI_MCP_HEADERS",
        help="Additional headers as JSON string",
    ),
    username: Optional[str] = typer.Option(
        None, "--username", "-u", envvar="OPENAPI_MCP_USERNAME",
        help="Username for basic authentication",
    ),
    password: Optional[str] = typer.Option(
        None, "--password", "-p", envvar="OPENAPI_MCP_PASSWORD",
        help="Password for basic authentication",
    ),
    timeout: float = typer.Option(
        DEFAULT_TIMEOUT, "--timeout", envvar="OPENAPI_MCP_TIMEOUT",
        help="Per-request timeout in seconds",
    ),
    log_level: LogLevel = typer.Option(
        LogLevel.WARNING, "--log-level", case_sensitive=False, help="Logging level",
    ),
) -> None:
    _configure_logging(log_level.value)

    if not schema.is_file():
        typer.echo(f"Schema file not found: {schema.resolve()}", err=True)
        raise typer.Exit(code=1)

    try:
        extra_headers = parse_headers(headers)
    except ValueError as exc:
        typer.echo(f"Invalid headers JSON: {exc}", err=True)
        raise typer.Exit(code=1)

    try:
        config = ServerConfig(
            base_url=base_url,
            headers=extra_headers,
            username=username,
            password=password,
            timeout=timeout,
        )
        server = OpenAPIMCPServer(schema, config)
    except OpenAPIMCPError as exc:
        typer.echo(f"Failed to start server: {exc.message}", err=True)
        raise typer.Exit(code=1)

    asyncio.run(server.run_stdio())


if __name__ == "__main__":
    app()
