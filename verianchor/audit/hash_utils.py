import json
import hashlib
from typing import Any, Union


def canonical_json(payload: Any) -> str:
    """
    Deterministic JSON serialization: sorted keys, no whitespace.
    The same event always produces the same anchored message.
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def sha256_hex(data: Union[bytes, bytearray, str]) -> str:
    """SHA-256 over raw bytes (str is UTF-8 encoded first), lowercase hex."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(bytes(data)).hexdigest()
