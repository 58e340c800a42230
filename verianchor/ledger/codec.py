"""
Transport codec for log messages.

The mirror node hands back every message base64-encoded. Writers put
canonical JSON in, but the topic is shared and may also carry plain
text, so decoding is tolerant: JSON when it parses, the raw text when
it does not.
"""
import base64
import json
import re
from typing import Any, Mapping, Optional, Union

from verianchor.models.log_entry import LogEntry

_NON_BASE64 = re.compile(r"[^A-Za-z0-9+/]")


def _raw_message(entry: Union[LogEntry, Mapping[str, Any], None]) -> Optional[Any]:
    if entry is None:
        return None
    if isinstance(entry, LogEntry):
        return entry.raw_message
    if isinstance(entry, Mapping):
        return entry.get("message")
    return None


def _lenient_b64decode(raw: str) -> bytes:
    """
    Decode base64 the forgiving way: URL-safe characters are accepted,
    anything outside the alphabet is skipped, decoding stops at the first
    '=' and missing padding is restored. A dangling sixth bit group is
    dropped. Never raises.
    """
    cleaned = raw.split("=", 1)[0].replace("-", "+").replace("_", "/")
    cleaned = _NON_BASE64.sub("", cleaned)
    if len(cleaned) % 4 == 1:
        cleaned = cleaned[:-1]
    return base64.b64decode(cleaned + "=" * (-len(cleaned) % 4))


def decode_log_message(entry: Union[LogEntry, Mapping[str, Any], None]) -> Optional[Any]:
    """
    Decode a mirror node message into the original payload.

    Returns the parsed JSON value, or the UTF-8 text when it is not JSON.
    None only when there is no entry or no message. Never raises for
    malformed content.
    """
    raw = _raw_message(entry)
    if not raw:
        return None
    if isinstance(raw, bytes):
        raw = raw.decode("ascii", errors="ignore")
    elif not isinstance(raw, str):
        raw = str(raw)

    data = _lenient_b64decode(raw)
    text = data.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


def encode_log_message(payload: Any) -> str:
    """Inverse of decode_log_message: str is sent as-is, anything else as JSON."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")
