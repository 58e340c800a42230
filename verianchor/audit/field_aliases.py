from typing import Any, Optional, Sequence, Tuple

# Order matters: the first alias present in the payload wins.
HASH_FIELD_ALIASES: Tuple[str, ...] = ("recordHash", "record_hash", "hash")
CONTENT_ID_ALIASES: Tuple[str, ...] = ("ipfsCid", "ipfs_cid", "cid")


def resolve_field(payload: Any, aliases: Sequence[str]) -> Optional[Any]:
    """
    Return the value of the first alias present with a usable value.

    Anything that is not a mapping (raw text payloads, lists, None)
    resolves to None. Empty strings count as absent.
    """
    if not isinstance(payload, dict):
        return None

    for name in aliases:
        value = payload.get(name)
        if value is not None and value != "":
            return value
    return None
