from dataclasses import dataclass
from typing import Any, Dict, Optional


REASON_MISSING_REFERENCE = "No anchor reference on record"
REASON_NO_ENTRIES = "No log messages found for transaction"
REASON_MISSING_FIELDS = "Log message does not contain expected fields"
REASON_VERIFIED = "Record verified: content matches anchored hash"
REASON_MISMATCH = "Hash mismatch between anchored hash and content"


@dataclass(frozen=True)
class AuthenticityVerdict:
    """
    Result of a single authenticity check.

    success=False means the check ran and did not pass. Failures to run
    the check at all (log or content store unreachable) are exceptions,
    never verdicts.
    """
    success: bool
    reason: str
    claimed_hash: Optional[str] = None
    computed_hash: Optional[str] = None
    content_id: Optional[str] = None

    @property
    def outcome(self) -> str:
        """Coarse label used for telemetry; carries no record data."""
        if self.success:
            return "verified"
        return {
            REASON_MISSING_REFERENCE: "missing_reference",
            REASON_NO_ENTRIES: "no_entries",
            REASON_MISSING_FIELDS: "missing_fields",
        }.get(self.reason, "mismatch")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "reason": self.reason,
            "claimedHash": self.claimed_hash,
            "computedHash": self.computed_hash,
            "contentId": self.content_id,
        }
