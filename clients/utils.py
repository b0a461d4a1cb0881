"""Shared utilities for the service clients.

This module contains the SSL setup and the envelope folding shared by the
agent and scheduler clients, so both report failures in the same
``{"success": False, "error": ...}`` shape.
"""

import json
import ssl
from typing import Any

import aiohttp
import certifi

USER_AGENT = "digestctl/0.1 (+aiohttp)"


def create_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Create SSL context with optional certificate verification.

    Args:
        verify: If True, verify SSL certificates using certifi bundle.
                If False, disable verification (for self-hosted services).

    Returns:
        Configured SSL context
    """
    if verify:
        return ssl.create_default_context(cafile=certifi.where())
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def failure(error: str) -> dict[str, Any]:
    """Build a failure envelope."""
    return {"success": False, "error": error}


def describe_exception(exc: BaseException) -> str:
    """Message for a transport exception, never empty."""
    text = str(exc).strip()
    return text or type(exc).__name__


async def read_envelope(
    resp: aiohttp.ClientResponse,
    payload_key: str | None = None,
) -> dict[str, Any]:
    """Fold an HTTP response into a ``{success, ...}`` envelope.

    - A JSON object carrying ``success`` is passed through untouched.
    - A JSON object without ``success`` becomes the payload of a success
      (2xx) or the source of the error text (non-2xx).
    - A non-JSON body becomes the message of a success (2xx) or the error
      text (non-2xx).

    Args:
        resp: Response to read
        payload_key: When set, a successful bare payload is nested under
            this key instead of being merged into the envelope
    """
    text = _decode(await resp.read(), resp.charset)
    try:
        body = json.loads(text) if text.strip() else None
    except (ValueError, RecursionError):
        body = None

    ok = resp.status < 300
    if isinstance(body, dict):
        if "success" in body:
            return body
        if ok:
            return _success(body, payload_key)
        error = body.get("error") or body.get("message") or body.get("detail")
        if isinstance(error, str) and error.strip():
            return failure(error)
        return failure(f"HTTP {resp.status}")

    if ok:
        return _success({"message": text}, payload_key)
    return failure(text.strip() or f"HTTP {resp.status}")


def _success(payload: dict[str, Any], payload_key: str | None) -> dict[str, Any]:
    if payload_key:
        return {"success": True, payload_key: payload}
    return {"success": True, **payload}


def _decode(raw: bytes, charset: str | None) -> str:
    """Decode a body without failing on bad bytes or an unknown charset."""
    try:
        return raw.decode(charset or "utf-8", errors="replace")
    except LookupError:
        return raw.decode("utf-8", errors="replace")
