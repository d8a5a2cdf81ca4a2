from __future__ import annotations

import json
import logging

import pytest
from starlette.applications import Starlette
from starlette.responses import JSONResponse
from starlette.routing import Route
from starlette.testclient import TestClient

from mcp_framework import (
    attach_request_logger,
    describe_jsonrpc_call,
    log_interaction,
    mask_iban,
    mask_ibans,
)
from services.iban_service import format_only


def _last_entry(caplog) -> dict:
    records = [r for r in caplog.records if r.name == "uvicorn.error"]
    return json.loads(records[-1].getMessage())


def test_mask_iban() -> None:
    assert mask_iban("GB82WEST12345698765432") == "GB82**************5432"
    assert mask_iban("DE89") == "DE89"


def test_mask_iban_keeps_spacing() -> None:
    assert mask_iban("DE89 3704 0044 0532 0130 00") == "DE89 **** **** **** **30 00"


def test_mask_ibans_walks_nested_payloads() -> None:
    payload = {
        "iban": "DE89370400440532013000",
        "note": "pay to NL91ABNA0417164300 today",
        "items": ["BE68539007547034", 3],
        "count": 1,
    }
    assert mask_ibans(payload) == {
        "iban": "DE89**************3000",
        "note": "pay to NL91**********4300 today",
        "items": ["BE68********7034", 3],
        "count": 1,
    }


def test_mask_ibans_handles_spaced_lower_case_input() -> None:
    assert mask_ibans({"iban": "de89 3704 0044 0532 0130 00"}) == {
        "iban": "de89 **** **** **** **30 00"
    }
    assert mask_ibans("gb82west12345698765432") == "gb82**************5432"


def test_mask_ibans_handles_formatted_output() -> None:
    masked = mask_ibans(format_only("TR330006100519786457841326"))
    assert masked == {"formatted": "TR33 **** **** **** **** **13 26"}


def test_mask_ibans_leaves_short_codes_alone() -> None:
    assert mask_ibans("order DE89 shipped") == "order DE89 shipped"
    assert mask_ibans("version 2024") == "version 2024"


def test_log_interaction_masks_spaced_iban(caplog) -> None:
    caplog.set_level(logging.INFO, logger="uvicorn.error")
    log_interaction(
        "iban_format",
        {"iban": "de89 3704 0044 0532 0130 00"},
        {"formatted": "DE89 3704 0044 0532 0130 00"},
    )

    assert "0532" not in caplog.text
    entry = _last_entry(caplog)
    assert entry["input"] == {"iban": "de89 **** **** **** **30 00"}
    assert entry["output"] == {"formatted": "DE89 **** **** **** **30 00"}


def test_log_interaction_writes_json_line(caplog) -> None:
    caplog.set_level(logging.INFO, logger="uvicorn.error")
    log_interaction("startup", {"services": ["iban"]}, {"app": "iban-engine"})

    entry = _last_entry(caplog)
    assert entry["action"] == "startup"
    assert entry["input"] == {"services": ["iban"]}
    assert entry["output"] == {"app": "iban-engine"}
    assert entry["timestamp"].endswith("Z")


def test_log_interaction_stringifies_unknown_types(caplog) -> None:
    caplog.set_level(logging.INFO, logger="uvicorn.error")
    log_interaction("odd", {"value": {1, 2}}, "done")

    entry = _last_entry(caplog)
    assert entry["input"] == {"value": "{1, 2}"}
    assert entry["output"] == "done"


def test_describe_jsonrpc_call_tool_call() -> None:
    body = json.dumps(
        {
            "jsonrpc": "2.0",
            "id": 7,
            "method": "tools/call",
            "params": {"name": "iban_check", "arguments": {"iban": "DE89370400440532013000"}},
        }
    ).encode()
    assert describe_jsonrpc_call(body) == {
        "jsonrpc_method": "tools/call",
        "id": 7,
        "param_keys": ["arguments", "name"],
        "tool": "iban_check",
        "arguments": {"iban": "DE89370400440532013000"},
    }


def test_describe_jsonrpc_call_batch_and_notifications() -> None:
    body = json.dumps(
        [
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            {"jsonrpc": "2.0", "id": 1, "method": "tools/list", "params": {}},
        ]
    ).encode()
    assert describe_jsonrpc_call(body) == {
        "batch": [
            {"jsonrpc_method": "notifications/initialized"},
            {"jsonrpc_method": "tools/list", "id": 1, "param_keys": []},
        ]
    }


def test_describe_jsonrpc_call_bad_bodies() -> None:
    assert describe_jsonrpc_call(b"") == {}
    assert "body_parse_error" in describe_jsonrpc_call(b"{not json")
    assert "body_parse_error" in describe_jsonrpc_call(b"\xff\xfe")
    assert describe_jsonrpc_call(b"42") == {"body_parse_error": "JSON-RPC message must be an object"}


def _make_app() -> Starlette:
    async def echo(request):
        return JSONResponse({"ok": True})

    async def fail(request):
        raise RuntimeError("kaboom")

    app = Starlette(routes=[Route("/mcp", echo, methods=["GET", "POST"]), Route("/fail", fail)])
    attach_request_logger(app)
    return app


def test_request_logger_records_tool_call_with_masked_arguments(caplog) -> None:
    caplog.set_level(logging.INFO, logger="uvicorn.error")
    client = TestClient(_make_app())

    body = {
        "jsonrpc": "2.0",
        "id": 1,
        "method": "tools/call",
        "params": {"name": "iban_check", "arguments": {"iban": "de89 3704 0044 0532 0130 00"}},
    }
    response = client.post("/mcp?x=1", json=body)
    assert response.status_code == 200

    entry = _last_entry(caplog)
    assert entry["action"] == "http_request"
    assert entry["input"]["method"] == "POST"
    assert entry["input"]["path"] == "/mcp"
    assert entry["input"]["query"] == "x=1"
    assert entry["input"]["jsonrpc_method"] == "tools/call"
    assert entry["input"]["tool"] == "iban_check"
    assert entry["input"]["arguments"] == {"iban": "de89 **** **** **** **30 00"}
    assert entry["output"]["status_code"] == 200
    assert entry["output"]["duration_ms"] >= 0
    assert "0532" not in caplog.text


def test_request_logger_skips_body_for_get(caplog) -> None:
    caplog.set_level(logging.INFO, logger="uvicorn.error")
    client = TestClient(_make_app())

    assert client.get("/mcp").status_code == 200
    entry = _last_entry(caplog)
    assert "jsonrpc_method" not in entry["input"]
    assert entry["input"]["method"] == "GET"


def test_request_logger_records_unparsable_body(caplog) -> None:
    caplog.set_level(logging.INFO, logger="uvicorn.error")
    client = TestClient(_make_app())

    response = client.post("/mcp", content=b"{not json")
    assert response.status_code == 200
    assert "body_parse_error" in _last_entry(caplog)["input"]


def test_request_logger_records_errors(caplog) -> None:
    caplog.set_level(logging.INFO, logger="uvicorn.error")
    client = TestClient(_make_app())

    with pytest.raises(RuntimeError):
        client.get("/fail")

    output = _last_entry(caplog)["output"]
    assert output["status_code"] is None
    assert output["error"] == "kaboom"
    assert output["type"] == "RuntimeError"
