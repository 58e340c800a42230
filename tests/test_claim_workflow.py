import pytest

from verianchor.audit.reconciler import AuthenticityReconciler
from verianchor.claims.outbox import AnchorOutbox
from verianchor.claims.repository import ClaimRepository
from verianchor.claims.workflow import ClaimWorkflow
from verianchor.config import AnchorConfig
from verianchor.content.store import InMemoryContentStore
from verianchor.errors import (
    AccessDenied,
    ClaimNotFound,
    InvalidTransition,
    LogUnavailable,
    RecordValidationFailed,
)
from verianchor.ledger.codec import decode_log_message
from verianchor.ledger.in_process import InProcessLog
from verianchor.ledger.writer import AnchorWriter
from verianchor.models.claim import ClaimStatus, MedicalRecord
from fixtures.mirror import sha

TOPIC = "0.0.4242"
CONTENT = b'{"diagnosis":"malaria","cost":1200}'


class FlakyLog(InProcessLog):
    """In-process log whose submissions can be switched off."""

    def __init__(self):
        super().__init__(default_topic_id=TOPIC)
        self.down = False

    def submit(self, topic_id, message):
        if self.down:
            raise ConnectionError("consensus node unreachable")
        return super().submit(topic_id, message)


@pytest.fixture
def stack():
    log = FlakyLog()
    content = InMemoryContentStore()
    writer = AnchorWriter(AnchorConfig(default_topic_id=TOPIC), log)
    reconciler = AuthenticityReconciler(log, content, topic_id=TOPIC)
    repo = ClaimRepository()
    outbox = AnchorOutbox()
    workflow = ClaimWorkflow(repo, writer, reconciler, outbox)

    cid = content.put(CONTENT)
    record_anchor = writer.submit({"recordHash": sha(CONTENT), "ipfsCid": cid})
    repo.add_record(MedicalRecord("rec-1", "patient-1", "Malaria treatment", record_anchor, cid))
    return {"log": log, "content": content, "repo": repo, "workflow": workflow, "outbox": outbox, "cid": cid}


def file(workflow):
    return workflow.file_claim("patient-1", "insurer-1", "rec-1", 1200.0, description="Malaria")


def test_filing_anchors_created_event(stack):
    claim = file(stack["workflow"])

    stored = stack["repo"].get(claim.claim_id)
    assert stored.status == ClaimStatus.PENDING
    assert stored.currency == "NGN"
    assert [e.event_type for e in stored.history] == ["CLAIM_CREATED"]

    entries = stack["log"].fetch_by_transaction_id(TOPIC, stored.history[0].anchor_reference)
    decoded = decode_log_message(entries[0])
    assert decoded["eventType"] == "CLAIM_CREATED"
    assert decoded["claimId"] == claim.claim_id
    assert decoded["amountRequested"] == 1200.0


def test_only_owner_can_file(stack):
    with pytest.raises(AccessDenied):
        stack["workflow"].file_claim("someone-else", "insurer-1", "rec-1", 10.0)


def test_filing_fails_cleanly_when_log_is_down(stack):
    stack["log"].down = True
    with pytest.raises(LogUnavailable):
        file(stack["workflow"])
    assert stack["repo"].list() == []
    assert stack["outbox"].pending() == []


def test_full_happy_path(stack):
    wf = stack["workflow"]
    claim = file(wf)

    wf.approve_claim(claim.claim_id, "insurer-1")
    wf.mark_paid(claim.claim_id, payout_reference="hts-transfer-1")

    stored = stack["repo"].get(claim.claim_id)
    assert stored.status == ClaimStatus.PAID
    assert stored.amount_approved == 1200.0
    assert [e.event_type for e in stored.history] == ["CLAIM_CREATED", "CLAIM_APPROVED", "CLAIM_PAID"]
    assert len({e.anchor_reference for e in stored.history}) == 3


def test_partial_approval_amount(stack):
    wf = stack["workflow"]
    claim = file(wf)
    approved = wf.approve_claim(claim.claim_id, "insurer-1", amount_approved=800.0)
    assert approved.amount_approved == 800.0


def test_rejection_is_terminal(stack):
    wf = stack["workflow"]
    claim = file(wf)

    rejected = wf.reject_claim(claim.claim_id, "insurer-1")
    assert rejected.status == ClaimStatus.REJECTED
    assert rejected.decision_reason == "No reason provided"

    with pytest.raises(InvalidTransition):
        wf.approve_claim(claim.claim_id, "insurer-1")
    with pytest.raises(InvalidTransition):
        wf.mark_paid(claim.claim_id)


def test_cannot_pay_before_approval(stack):
    claim = file(stack["workflow"])
    with pytest.raises(InvalidTransition):
        stack["workflow"].mark_paid(claim.claim_id)


def test_only_assigned_insurer_decides(stack):
    claim = file(stack["workflow"])
    with pytest.raises(AccessDenied):
        stack["workflow"].approve_claim(claim.claim_id, "insurer-2")
    with pytest.raises(AccessDenied):
        stack["workflow"].reject_claim(claim.claim_id, "insurer-2")


def test_approval_is_gated_on_authentic_record(stack):
    wf = stack["workflow"]
    claim = file(wf)
    stack["content"].overwrite(stack["cid"], b'{"diagnosis":"malaria","cost":99999}')

    with pytest.raises(RecordValidationFailed) as exc_info:
        wf.approve_claim(claim.claim_id, "insurer-1")

    assert exc_info.value.verdict.success is False
    stored = stack["repo"].get(claim.claim_id)
    assert stored.status == ClaimStatus.PENDING
    assert len(stored.history) == 1


def test_failed_anchor_leaves_claim_untouched(stack):
    wf = stack["workflow"]
    claim = file(wf)
    stack["log"].down = True

    with pytest.raises(LogUnavailable):
        wf.reject_claim(claim.claim_id, "insurer-1", reason="Duplicate")

    stored = stack["repo"].get(claim.claim_id)
    assert stored.status == ClaimStatus.PENDING
    assert stored.decision_reason is None
    assert len(stored.history) == 1
    assert stack["outbox"].pending() == []


def test_validate_claim_record(stack):
    claim = file(stack["workflow"])
    assert stack["workflow"].validate_claim_record(claim.claim_id).success is True


def test_unknown_claim(stack):
    with pytest.raises(ClaimNotFound):
        stack["workflow"].approve_claim("nope", "insurer-1")
