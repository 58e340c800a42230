import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from verianchor.claims.outbox import AnchorOutbox, apply_changes
from verianchor.errors import (
    AccessDenied,
    InvalidTransition,
    LogUnavailable,
    RecordValidationFailed,
)
from verianchor.ledger.writer import AnchorFailurePolicy
from verianchor.models.claim import (
    AnchorEvent,
    Claim,
    ClaimEventType,
    ClaimStatus,
    CLAIM_TRANSITIONS,
)
from verianchor.models.verdict import AuthenticityVerdict

logger = logging.getLogger("verianchor.claims")

# Claim events are part of the claim's audit trail: a transition whose
# anchor cannot be written does not happen.
CLAIM_ANCHOR_POLICY = AnchorFailurePolicy.FATAL


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ClaimWorkflow:
    """
    PENDING -> APPROVED -> PAID, or PENDING -> REJECTED.

    Each transition anchors one event, appends one history entry and only
    then persists the new status. Approval is additionally gated on the
    authenticity verdict of the claim's underlying medical record.
    """

    def __init__(self, repository, writer, reconciler, outbox: Optional[AnchorOutbox] = None):
        self.repository = repository
        self.writer = writer
        self.reconciler = reconciler
        self.outbox = outbox or AnchorOutbox()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _anchor_and_persist(
        self,
        claim: Claim,
        event_type: ClaimEventType,
        event: Dict[str, Any],
        changes: Dict[str, Any],
    ) -> str:
        # A previous attempt may have anchored before dying; its event and changes win
        entry = self.outbox.add(claim.claim_id, event_type.value, event, changes)
        event, changes = entry.event, entry.changes

        anchor_reference = entry.anchor_reference
        if not anchor_reference:
            try:
                anchor_reference = self.writer.submit_with_policy(event, CLAIM_ANCHOR_POLICY)
            except LogUnavailable:
                self.outbox.discard(entry)
                raise
            self.outbox.record_anchor(entry, anchor_reference)

        claim.history.append(AnchorEvent(
            event_type=event_type.value,
            anchor_reference=anchor_reference,
            recorded_at=datetime.now(timezone.utc),
        ))
        apply_changes(claim, changes)
        self.repository.save(claim)
        self.outbox.complete(entry)

        logger.info(f"Claim {claim.claim_id}: {event_type.value} anchored as {anchor_reference}")
        return anchor_reference

    @staticmethod
    def _check_transition(claim: Claim, target: ClaimStatus) -> None:
        if target not in CLAIM_TRANSITIONS[claim.status]:
            raise InvalidTransition(
                f"Claim {claim.claim_id} cannot move from {claim.status.value} to {target.value}"
            )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def file_claim(
        self,
        claimant_id: str,
        insurer_id: str,
        record_id: str,
        amount_requested: float,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        attachments: Optional[List[str]] = None,
        claimant_did: Optional[str] = None,
        insurer_did: Optional[str] = None,
    ) -> Claim:
        record = self.repository.get_record(record_id)
        if record.patient_id != claimant_id:
            raise AccessDenied("Claims can only be filed for the claimant's own records")
        if amount_requested <= 0:
            raise ValueError("amount_requested must be positive")

        claim = Claim(
            claim_id=uuid.uuid4().hex,
            claimant_id=claimant_id,
            insurer_id=insurer_id,
            record_id=record_id,
            amount_requested=amount_requested,
            currency=currency or "NGN",
            description=description,
            attachments=list(attachments or []),
        )
        # The claim exists before its creation anchor; a crash in between
        # leaves an outbox entry for replay_pending().
        self.repository.save(claim)

        event = {
            "eventType": ClaimEventType.CLAIM_CREATED.value,
            "claimId": claim.claim_id,
            "claimantDID": claimant_did,
            "recordHcsMessageId": record.anchor_reference,
            "insurerDID": insurer_did,
            "amountRequested": amount_requested,
            "currency": claim.currency,
            "timestamp": _now_iso(),
        }
        try:
            self._anchor_and_persist(claim, ClaimEventType.CLAIM_CREATED, event, {})
        except LogUnavailable:
            self.repository.delete(claim.claim_id)
            raise
        return claim

    def validate_claim_record(self, claim_id: str) -> AuthenticityVerdict:
        claim = self.repository.get(claim_id)
        record = self.repository.get_record(claim.record_id)
        return self.reconciler.verify(record)

    def approve_claim(
        self,
        claim_id: str,
        insurer_id: str,
        amount_approved: Optional[float] = None,
        insurer_did: Optional[str] = None,
        claimant_did: Optional[str] = None,
    ) -> Claim:
        claim = self.repository.get(claim_id)
        if claim.insurer_id != insurer_id:
            raise AccessDenied(f"Insurer {insurer_id} is not assigned to claim {claim_id}")
        self._check_transition(claim, ClaimStatus.APPROVED)

        verdict = self.reconciler.verify(self.repository.get_record(claim.record_id))
        if not verdict.success:
            raise RecordValidationFailed("Record validation failed", verdict)

        amount = amount_approved or claim.amount_requested
        event = {
            "eventType": ClaimEventType.CLAIM_APPROVED.value,
            "claimId": claim.claim_id,
            "insurerDID": insurer_did,
            "claimantDID": claimant_did,
            "amountApproved": amount,
            "currency": claim.currency,
            "timestamp": _now_iso(),
        }
        self._anchor_and_persist(
            claim,
            ClaimEventType.CLAIM_APPROVED,
            event,
            {"status": ClaimStatus.APPROVED, "amount_approved": amount},
        )
        return claim

    def reject_claim(
        self,
        claim_id: str,
        insurer_id: str,
        reason: Optional[str] = None,
        insurer_did: Optional[str] = None,
        claimant_did: Optional[str] = None,
    ) -> Claim:
        claim = self.repository.get(claim_id)
        if claim.insurer_id != insurer_id:
            raise AccessDenied(f"Insurer {insurer_id} is not assigned to claim {claim_id}")
        self._check_transition(claim, ClaimStatus.REJECTED)

        decision_reason = reason or "No reason provided"
        event = {
            "eventType": ClaimEventType.CLAIM_REJECTED.value,
            "claimId": claim.claim_id,
            "insurerDID": insurer_did,
            "claimantDID": claimant_did,
            "reason": decision_reason,
            "timestamp": _now_iso(),
        }
        self._anchor_and_persist(
            claim,
            ClaimEventType.CLAIM_REJECTED,
            event,
            {"status": ClaimStatus.REJECTED, "decision_reason": decision_reason},
        )
        return claim

    def mark_paid(self, claim_id: str, payout_reference: Optional[str] = None) -> Claim:
        """Record a completed payout. The payout itself happens elsewhere."""
        claim = self.repository.get(claim_id)
        self._check_transition(claim, ClaimStatus.PAID)

        event = {
            "eventType": ClaimEventType.CLAIM_PAID.value,
            "claimId": claim.claim_id,
            "amountPaid": claim.amount_approved,
            "currency": claim.currency,
            "payoutReference": payout_reference,
            "timestamp": _now_iso(),
        }
        self._anchor_and_persist(
            claim,
            ClaimEventType.CLAIM_PAID,
            event,
            {"status": ClaimStatus.PAID},
        )
        return claim
