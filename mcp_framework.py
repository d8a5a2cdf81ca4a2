"""Utilities for composing the IBAN Engine FastMCP server from services."""
from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from fastmcp import FastMCP
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("uvicorn.error")

# Compact or grouped by four ("DE89 3704 ..."), any case.
_IBAN_IN_TEXT = re.compile(
    r"\b[A-Z]{2}[0-9]{2}(?:\s?[A-Z0-9]{4}){2,7}(?:\s?[A-Z0-9]{1,4})?\b",
    re.IGNORECASE | re.ASCII,
)


@dataclass
class ServiceDefinition:
    """Describe a service that can register tools on a FastMCP instance."""

    name: str
    description: str
    register: Callable[[FastMCP], None]


def mask_iban(iban: str) -> str:
    """Keep the first and last four characters of an IBAN, star the rest.

    Whitespace inside the IBAN is kept where it is and does not count.
    """
    total = sum(1 for ch in iban if not ch.isspace())
    if total < 8:
        return iban

    masked = []
    seen = 0
    for ch in iban:
        if ch.isspace():
            masked.append(ch)
            continue
        masked.append(ch if seen < 4 or seen >= total - 4 else "*")
        seen += 1
    return "".join(masked)


def mask_ibans(value: Any) -> Any:
    """Mask IBAN-looking substrings anywhere inside a log payload."""
    if isinstance(value, str):
        return _IBAN_IN_TEXT.sub(lambda m: mask_iban(m.group(0)), value)
    if isinstance(value, dict):
        return {key: mask_ibans(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [mask_ibans(item) for item in value]
    return value


def log_interaction(action: str, input_data: Any, output_data: Any) -> None:
    """Emit a structured log entry via the standard uvicorn logger (JSON Lines)."""

    entry = {
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "action": action,
        "input": mask_ibans(input_data),
        "output": mask_ibans(output_data),
    }

    try:
        serialized = json.dumps(entry, ensure_ascii=False)
    except TypeError:
        sanitized_entry = {
            "timestamp": entry["timestamp"],
            "action": entry["action"],
            "input": json.loads(json.dumps(entry["input"], default=str)),
            "output": json.loads(json.dumps(entry["output"], default=str)),
        }
        serialized = json.dumps(sanitized_entry, ensure_ascii=False)

    logger.info(serialized)


def create_mcp_server(
    services: Iterable[ServiceDefinition],
    *,
    app_name: str = "iban-engine",
    json_response: bool = True,
):
    """Create an MCP server instance and register all provided services."""

    mcp = FastMCP(app_name)

    for service in services:
        service.register(mcp)

    app = mcp.http_app(json_response=json_response)
    return mcp, app


def describe_jsonrpc_call(body: bytes) -> dict[str, Any]:
    """Summarize an MCP JSON-RPC request body for the request log."""
    if not body:
        return {}
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        return {"body_parse_error": str(exc)}

    if isinstance(payload, list):
        return {"batch": [describe_jsonrpc_message(item) for item in payload]}
    return describe_jsonrpc_message(payload)


def describe_jsonrpc_message(message: Any) -> dict[str, Any]:
    if not isinstance(message, dict):
        return {"body_parse_error": "JSON-RPC message must be an object"}

    info: dict[str, Any] = {"jsonrpc_method": message.get("method")}
    if "id" in message:
        info["id"] = message["id"]

    params = message.get("params")
    if isinstance(params, dict):
        info["param_keys"] = sorted(params.keys())
        if message.get("method") == "tools/call":
            info["tool"] = params.get("name")
            info["arguments"] = params.get("arguments")
    return info


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with its MCP call summary, status and duration."""

    def __init__(self, app, action: str = "http_request"):
        super().__init__(app)
        self.action = action

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_info: dict[str, Any] = {
            "method": request.method,
            "path": request.url.path,
            "query": request.url.query,
            "client": request.client.host if request.client else None,
        }
        if request.method == "POST":
            request_info.update(describe_jsonrpc_call(await request.body()))

        response: Response | None = None
        output_data: dict[str, Any] = {}
        started = time.perf_counter()

        try:
            response = await call_next(request)
            return response
        except Exception as exc:
            output_data.update({"error": str(exc), "type": exc.__class__.__name__})
            raise
        finally:
            output_data["status_code"] = response.status_code if response else None
            output_data["duration_ms"] = round((time.perf_counter() - started) * 1000, 2)
            log_interaction(self.action, request_info, output_data)


def attach_request_logger(app, *, action: str = "http_request") -> None:
    """Attach middleware that logs incoming HTTP requests and responses."""
    app.add_middleware(RequestLoggerMiddleware, action=action)
