"""Property-list codec used for every private store request and response."""
from __future__ import annotations

import logging
import plistlib
from typing import Any, Dict, List, Mapping, Optional
from xml.parsers.expat import ExpatError

from .errors import MalformedResponseError

log = logging.getLogger(__name__)

BODY_PREVIEW_LIMIT = 2048


def encode(content: Mapping[str, Any]) -> bytes:
    # Store requests are always XML plists.
    payload = {key: value for key, value in content.items() if value is not None}
    return plistlib.dumps(payload, fmt=plistlib.FMT_XML)


def decode(body: bytes) -> Any:
    """Parse an XML or binary plist body into plain Python values.

    Raises :class:`MalformedResponseError` with a preview of the raw body
    when the payload is not a well-formed property list.
    """
    try:
        return plistlib.loads(body)
    except (ValueError, ExpatError) as exc:
        preview = body_preview(body)
        log.warning("undecodable plist response (%d bytes): %s", len(body or b""), preview)
        raise MalformedResponseError(
            "failed to parse server response", metadata={"body": preview}
        ) from exc


def body_preview(body: bytes) -> str:
    return (body or b"")[:BODY_PREVIEW_LIMIT].decode("utf-8", errors="replace")


def _mismatch(key: str, expected: str, value: Any) -> MalformedResponseError:
    return MalformedResponseError(
        f"unexpected type for {key!r}: expected {expected}, got {type(value).__name__}",
        metadata={key: repr(value)[:256]},
    )


def expect_dict(value: Any, key: str = "<root>") -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise _mismatch(key, "dict", value)
    return value


def get_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise _mismatch(key, "string", value)
    return value


def get_int(data: Mapping[str, Any], key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    # bool is an int subclass; a boolean status is not a status code.
    if isinstance(value, bool) or not isinstance(value, int):
        raise _mismatch(key, "integer", value)
    return value


def get_code(data: Mapping[str, Any], key: str) -> Optional[str]:
    """Project a failure code that the store sends as either string or integer."""
    value = data.get(key)
    if value is None or value == "":
        return None
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise _mismatch(key, "string or integer", value)
    return str(value)


def get_dict(data: Mapping[str, Any], key: str) -> Optional[Dict[str, Any]]:
    value = data.get(key)
    if value is None:
        return None
    return expect_dict(value, key)


def get_list(data: Mapping[str, Any], key: str) -> Optional[List[Any]]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, list):
        raise _mismatch(key, "array", value)
    return value
