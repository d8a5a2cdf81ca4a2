"""MCP services exposing the IBAN Engine."""

from .iban_service import register_iban_service

__all__ = ["register_iban_service"]
