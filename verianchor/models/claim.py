from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class ClaimStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PAID = "PAID"


class ClaimEventType(str, Enum):
    CLAIM_CREATED = "CLAIM_CREATED"
    CLAIM_APPROVED = "CLAIM_APPROVED"
    CLAIM_REJECTED = "CLAIM_REJECTED"
    CLAIM_PAID = "CLAIM_PAID"


# Allowed moves; anything not listed is an InvalidTransition.
CLAIM_TRANSITIONS = {
    ClaimStatus.PENDING: {ClaimStatus.APPROVED, ClaimStatus.REJECTED},
    ClaimStatus.APPROVED: {ClaimStatus.PAID},
    ClaimStatus.REJECTED: set(),
    ClaimStatus.PAID: set(),
}


@dataclass(frozen=True)
class AnchorEvent:
    """One entry of a claim's anchored history. Never edited or removed."""
    event_type: str
    anchor_reference: Optional[str]
    recorded_at: datetime


@dataclass(frozen=True)
class MedicalRecord:
    """
    Owning record whose content lives off-box.
    anchor_reference is the transaction id of its anchor message.
    """
    record_id: str
    patient_id: str
    title: str = ""
    anchor_reference: Optional[str] = None
    content_id: Optional[str] = None
    record_type: str = ""
    content_hash: Optional[str] = None   # display only, never trusted for verification


@dataclass
class Claim:
    claim_id: str
    claimant_id: str
    insurer_id: str
    record_id: str
    amount_requested: float
    currency: str = "NGN"
    description: Optional[str] = None
    attachments: List[str] = field(default_factory=list)
    status: ClaimStatus = ClaimStatus.PENDING
    amount_approved: float = 0.0
    decision_reason: Optional[str] = None
    history: List[AnchorEvent] = field(default_factory=list)

    def has_event(self, event_type: str) -> bool:
        return any(e.event_type == event_type for e in self.history)

    def to_dict(self) -> dict:
        return {
            "claimId": self.claim_id,
            "claimant": self.claimant_id,
            "insurer": self.insurer_id,
            "record": self.record_id,
            "amountRequested": self.amount_requested,
            "currency": self.currency,
            "description": self.description,
            "attachments": list(self.attachments),
            "status": self.status.value,
            "amountApproved": self.amount_approved,
            "decisionReason": self.decision_reason,
            "hcsEvents": [
                {
                    "eventType": e.event_type,
                    "hcsMessageId": e.anchor_reference,
                    "timestamp": e.recorded_at.isoformat(),
                }
                for e in self.history
            ],
        }
