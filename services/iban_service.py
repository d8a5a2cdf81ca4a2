"""IBAN validation service for MCP."""
from __future__ import annotations

from typing import Any, Callable

from fastmcp import FastMCP
from pydantic import BaseModel

from iban_utils import IBAN_LENGTHS, format_iban, get_country_code, validate, validate_iban
from mcp_framework import log_interaction, mask_iban


class IbanResult(BaseModel):
    valid: bool
    normalized_iban: str
    country: str | None = None
    reason: str | None = None


def check_iban(iban: str) -> IbanResult:
    return IbanResult(**validate_iban(iban))


def validate_only(iban: str) -> dict[str, Any]:
    return {"iban": mask_iban(format_iban(iban).replace(" ", "")), "valid": validate(iban)}


def format_only(iban: str) -> dict[str, str]:
    return {"formatted": format_iban(iban)}


def country_info(iban: str) -> dict[str, Any]:
    """Country prefix of ``iban`` and what the length table says about it."""
    country = get_country_code(iban)
    expected = IBAN_LENGTHS.get(country) if country else None
    return {
        "country": country,
        "supported": expected is not None,
        "expected_length": expected,
    }


def supported_countries() -> dict[str, dict[str, int]]:
    return {"countries": dict(sorted(IBAN_LENGTHS.items()))}


def _run_logged(action: str, input_data: dict[str, Any], func: Callable[[], Any]) -> Any:
    try:
        result = func()
    except Exception as exc:
        log_interaction(
            f"{action}_error",
            input_data,
            {"error": str(exc), "type": exc.__class__.__name__},
        )
        raise

    output = result.model_dump() if isinstance(result, BaseModel) else result
    log_interaction(action, input_data, output)
    return result


def register_iban_service(mcp: FastMCP) -> None:
    """Register IBAN validation tools on the provided MCP instance."""

    @mcp.tool()
    def iban_check(iban: str) -> IbanResult:
        """
        Validate an IBAN and return structured result.

        Args:
            iban: IBAN string (can contain spaces, lower/upper case)

        Returns:
            IbanResult: {valid, normalized_iban, country, reason}
        """
        return _run_logged("iban_check", {"iban": iban}, lambda: check_iban(iban))

    @mcp.tool()
    def iban_validate(iban: str) -> dict[str, Any]:
        """Return whether the IBAN passes shape, country length and MOD97 checks."""
        return _run_logged("iban_validate", {"iban": iban}, lambda: validate_only(iban))

    @mcp.tool()
    def iban_format(iban: str) -> dict[str, str]:
        """Format an IBAN in groups of four characters (no validation)."""
        return _run_logged("iban_format", {"iban": iban}, lambda: format_only(iban))

    @mcp.tool()
    def iban_country_code(iban: str) -> dict[str, Any]:
        """Return the two letter country prefix and its expected IBAN length."""
        return _run_logged("iban_country_code", {"iban": iban}, lambda: country_info(iban))

    @mcp.tool()
    def iban_supported_countries() -> dict[str, dict[str, int]]:
        """List every supported country code with its expected IBAN length."""
        return _run_logged("iban_supported_countries", {}, supported_countries)
