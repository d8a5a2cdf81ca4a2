"""IBAN Engine MCP server (streamable HTTP, served by uvicorn).

Configuration comes from the environment:

* ``IBAN_ENGINE_APP_NAME`` (defaults to ``"iban-engine"``)
* ``IBAN_ENGINE_HOST`` (defaults to ``"127.0.0.1"``)
* ``IBAN_ENGINE_PORT`` (defaults to ``8000``)
* ``IBAN_ENGINE_LOG_LEVEL`` (defaults to ``"info"``)
"""
from __future__ import annotations

import os

import uvicorn

from mcp_framework import ServiceDefinition, attach_request_logger, create_mcp_server, log_interaction
from services import register_iban_service

APP_NAME = os.getenv("IBAN_ENGINE_APP_NAME", "iban-engine")


class ConfigError(ValueError):
    """Raised when an environment setting cannot be used."""


def port_from_env(default: int = 8000) -> int:
    raw = os.getenv("IBAN_ENGINE_PORT")
    if raw is None or not raw.strip():
        return default
    try:
        port = int(raw)
    except ValueError:
        raise ConfigError(f"IBAN_ENGINE_PORT must be an integer, got {raw!r}.") from None
    if not 0 < port < 65536:
        raise ConfigError(f"IBAN_ENGINE_PORT must be between 1 and 65535, got {port}.")
    return port


services = [
    ServiceDefinition(
        name="iban",
        description="Validate, format and inspect IBAN strings.",
        register=register_iban_service,
    ),
]

mcp, http_app = create_mcp_server(services, app_name=APP_NAME, json_response=True)
attach_request_logger(http_app)

log_interaction("startup", {"services": [service.name for service in services]}, {"app": APP_NAME})


def main() -> None:
    host = os.getenv("IBAN_ENGINE_HOST", "127.0.0.1")
    port = port_from_env()
    log_level = os.getenv("IBAN_ENGINE_LOG_LEVEL", "info").lower()

    # Serves the MCP endpoint on http://host:port/mcp
    uvicorn.run(http_app, host=host, port=port, log_level=log_level)


if __name__ == "__main__":
    main()
