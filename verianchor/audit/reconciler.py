import logging
import time
from typing import Any, Optional

from verianchor.audit.field_aliases import (
    CONTENT_ID_ALIASES,
    HASH_FIELD_ALIASES,
    resolve_field,
)
from verianchor.audit.hash_utils import sha256_hex
from verianchor.ledger.codec import decode_log_message
from verianchor.models.verdict import (
    AuthenticityVerdict,
    REASON_MISMATCH,
    REASON_MISSING_FIELDS,
    REASON_MISSING_REFERENCE,
    REASON_NO_ENTRIES,
    REASON_VERIFIED,
)
from verianchor.telemetry import emit_verification_telemetry

logger = logging.getLogger("verianchor.audit")


def anchor_reference_of(record: Any) -> Optional[str]:
    """Anchor reference carried by a domain object or a raw document."""
    if record is None:
        return None
    if isinstance(record, dict):
        return record.get("anchor_reference") or record.get("hcsMessageId")
    return getattr(record, "anchor_reference", None)


class AuthenticityReconciler:
    """
    Recomputes trust in a stored artifact from two independent sources:
    the hash anchored in the ordered log and the bytes in content storage.
    The database's own copy of the hash is never consulted.

    log_reader needs fetch_by_transaction_id(topic_id, transaction_id);
    content_fetcher needs fetch(content_id) -> bytes.
    """

    def __init__(self, log_reader, content_fetcher, topic_id: Optional[str] = None):
        self.log_reader = log_reader
        self.content_fetcher = content_fetcher
        self.topic_id = topic_id

    def verify(self, record: Any, topic_id: Optional[str] = None) -> AuthenticityVerdict:
        """
        Raises LogReadError / ContentFetchError when a source cannot be read.
        Every other outcome, including tampering, is a verdict.
        """
        start_time = time.perf_counter()
        verdict = self._verify(record, topic_id or self.topic_id)
        emit_verification_telemetry(
            outcome=verdict.outcome,
            latency_ms=int((time.perf_counter() - start_time) * 1000),
        )
        return verdict

    def _verify(self, record: Any, topic_id: Optional[str]) -> AuthenticityVerdict:
        # 1. Nothing to look up
        transaction_id = anchor_reference_of(record)
        if not transaction_id:
            return AuthenticityVerdict(success=False, reason=REASON_MISSING_REFERENCE)

        # 2. Log side
        entries = self.log_reader.fetch_by_transaction_id(topic_id, transaction_id)
        if not entries:
            return AuthenticityVerdict(success=False, reason=REASON_NO_ENTRIES)

        # 3. One logical write per reference is assumed
        if len(entries) > 1:
            logger.warning(
                f"{len(entries)} log messages share transaction {transaction_id}; using the first"
            )

        # 4. Claimed values
        decoded = decode_log_message(entries[0])
        claimed_hash = resolve_field(decoded, HASH_FIELD_ALIASES)
        content_id = resolve_field(decoded, CONTENT_ID_ALIASES)

        # 5. Anchored message without the fields we need; a non-string
        # hash or identifier is as unusable as a missing one
        if not isinstance(claimed_hash, str) or not isinstance(content_id, str):
            return AuthenticityVerdict(
                success=False,
                reason=REASON_MISSING_FIELDS,
                claimed_hash=claimed_hash if isinstance(claimed_hash, str) else None,
                content_id=content_id if isinstance(content_id, str) else None,
            )

        # 6-7. Content side; fetch errors propagate
        blob = self.content_fetcher.fetch(content_id)
        computed_hash = sha256_hex(blob)

        # 8-9
        success = computed_hash == claimed_hash
        if not success:
            logger.warning(f"Hash mismatch for transaction {transaction_id}")

        return AuthenticityVerdict(
            success=success,
            reason=REASON_VERIFIED if success else REASON_MISMATCH,
            claimed_hash=claimed_hash,
            computed_hash=computed_hash,
            content_id=content_id,
        )
