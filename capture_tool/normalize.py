"""Turn raw HTTP headers and bodies into the canonical packet fields.

Everything here is pure: no I/O, and malformed input degrades to empty or
None fields instead of raising.
"""
from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Optional

from .models import DIRECTION_REQUEST, BodyContent, JsonRpcMetadata
from .utils import dump_json, escape_surrogates

logger = logging.getLogger(__name__)

# Probed in order, case-sensitively.
SESSION_HEADER_NAMES = (
    "mcp-session-id",
    "Mcp-Session-Id",
    "X-MCP-Session-Id",
    "x-mcp-session-id",
    "MCP-Session-Id",
)
HOST_HEADER_NAMES = ("host", "Host")

# JavaScript falsy values that JSON can carry.
_FALSY_JSON_VALUES = (None, False, 0, "")


def _first_header(headers: object, names: tuple[str, ...]) -> Optional[str]:
    if not isinstance(headers, Mapping):
        return None
    for name in names:
        value = headers.get(name)
        if value:
            return escape_surrogates(str(value))
    return None


def normalize_session_id(headers: object) -> Optional[str]:
    """Return the first non-empty known session header value, else None."""
    return _first_header(headers, SESSION_HEADER_NAMES)


def extract_host(headers: object) -> Optional[str]:
    return _first_header(headers, HOST_HEADER_NAMES)


def serialize_headers(headers: object) -> str:
    """Serialize headers to JSON; unusable input is stored as an empty object."""
    if not isinstance(headers, Mapping):
        return "{}"
    try:
        return dump_json(dict(headers))
    except (TypeError, ValueError):
        logger.debug("Headers are not JSON serializable; storing string values")
        return dump_json({str(key): str(value) for key, value in headers.items()})


def extract_body(body: object) -> BodyContent:
    """Split a body into its raw text and the text stored as JSON.

    Strings are kept as-is in both fields without validation; dicts and
    lists are serialized. Anything else yields an empty body.
    """
    if body is None or body == "" or body == b"":
        return BodyContent(raw="", json=None)
    if isinstance(body, (bytes, bytearray)):
        body = bytes(body).decode("utf-8", errors="replace")
    if isinstance(body, str):
        text = escape_surrogates(body)
        return BodyContent(raw=text, json=text)
    if isinstance(body, (dict, list)):
        try:
            raw = dump_json(body)
        except (TypeError, ValueError):
            logger.debug("Body of type %s is not JSON serializable", type(body).__name__)
            return BodyContent(raw="", json=None)
        return BodyContent(raw=raw, json=raw)
    return BodyContent(raw="", json=None)


def coerce_jsonrpc_id(value: Any) -> Optional[str]:
    """Coerce a JSON-RPC id to the string used for storage and matching.

    Numbers use a direct string conversion so 1 and 1.0 stay distinct.
    """
    if value is None:
        return None
    if isinstance(value, str):
        return escape_surrogates(value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    try:
        return dump_json(value)
    except (TypeError, ValueError):
        return escape_surrogates(str(value))


def _present(value: Any) -> bool:
    # Empty objects and arrays count as present.
    if isinstance(value, (dict, list)):
        return True
    return value not in _FALSY_JSON_VALUES


def _as_text(value: Any) -> str:
    if isinstance(value, str):
        return escape_surrogates(value)
    return dump_json(value)


def extract_jsonrpc_metadata(body: object) -> JsonRpcMetadata:
    """Pull id, method, result and error out of a JSON-RPC body.

    Accepts the body text or an already decoded object. Non-JSON input and
    documents that are not objects give an all-None result.
    """
    if not body:
        return JsonRpcMetadata()
    if isinstance(body, (str, bytes, bytearray)):
        try:
            parsed = json.loads(body)
        except (TypeError, ValueError):
            logger.debug("Body is not valid JSON; JSON-RPC fields left empty")
            return JsonRpcMetadata()
    else:
        parsed = body
    if not isinstance(parsed, dict):
        return JsonRpcMetadata()

    method = parsed.get("method")
    result = parsed.get("result")
    error = parsed.get("error")
    try:
        return JsonRpcMetadata(
            id=coerce_jsonrpc_id(parsed.get("id")),
            method=_as_text(method) if _present(method) else None,
            result=dump_json(result) if _present(result) else None,
            error=dump_json(error) if _present(error) else None,
        )
    except (TypeError, ValueError):
        logger.debug("JSON-RPC envelope could not be re-serialized")
        return JsonRpcMetadata()


def generate_info(
    direction: str,
    method: Optional[str],
    url: Optional[str],
    status_code: Optional[int],
    jsonrpc_method: Optional[str],
) -> str:
    """One-line summary shown in packet listings."""
    rpc_info = f" {jsonrpc_method}" if jsonrpc_method else ""
    if direction == DIRECTION_REQUEST:
        return f"{method} {url}{rpc_info}"
    return f"{status_code}{rpc_info}"


def packet_length(headers_json: str, body_raw: str) -> int:
    """Approximate packet size: UTF-8 bytes of serialized headers plus body."""
    return len(headers_json.encode("utf-8", errors="replace")) + len(body_raw.encode("utf-8", errors="replace"))
