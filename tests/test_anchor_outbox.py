from datetime import datetime, timedelta
from unittest.mock import MagicMock

import pytest

from verianchor.claims.outbox import AnchorOutbox, replay_pending
from verianchor.claims.repository import ClaimRepository
from verianchor.claims.workflow import ClaimWorkflow
from verianchor.errors import LogUnavailable
from verianchor.models.claim import AnchorEvent, Claim, ClaimStatus, MedicalRecord


def pending_claim(repo):
    claim = Claim("c-1", "patient-1", "insurer-1", "rec-1", 500.0)
    repo.save(claim)
    return claim


def test_add_is_idempotent_per_claim_and_event():
    outbox = AnchorOutbox()
    first = outbox.add("c-1", "CLAIM_APPROVED", {"eventType": "CLAIM_APPROVED"}, {"status": "APPROVED"})
    second = outbox.add("c-1", "CLAIM_APPROVED", {"eventType": "something else"})
    assert first is second
    assert len(outbox.pending()) == 1
    assert outbox.get("c-1", "CLAIM_APPROVED") is first


def test_replay_submits_unanchored_entries_and_applies_changes():
    repo = ClaimRepository()
    pending_claim(repo)
    outbox = AnchorOutbox()
    outbox.add("c-1", "CLAIM_REJECTED", {"eventType": "CLAIM_REJECTED"},
               {"status": "REJECTED", "decision_reason": "Duplicate"})
    writer = MagicMock()
    writer.submit.return_value = "tx-replayed"

    finished = replay_pending(outbox, writer, repo)

    assert len(finished) == 1
    assert outbox.pending() == []
    stored = repo.get("c-1")
    assert stored.status == ClaimStatus.REJECTED
    assert stored.decision_reason == "Duplicate"
    assert [(e.event_type, e.anchor_reference) for e in stored.history] == [("CLAIM_REJECTED", "tx-replayed")]


def test_replay_reuses_existing_anchor():
    repo = ClaimRepository()
    pending_claim(repo)
    outbox = AnchorOutbox()
    entry = outbox.add("c-1", "CLAIM_APPROVED", {"eventType": "CLAIM_APPROVED"}, {"status": "APPROVED"})
    outbox.record_anchor(entry, "tx-before-crash")
    writer = MagicMock()

    replay_pending(outbox, writer, repo)

    writer.submit.assert_not_called()
    assert repo.get("c-1").history[0].anchor_reference == "tx-before-crash"


def test_replay_never_duplicates_history():
    repo = ClaimRepository()
    claim = pending_claim(repo)
    # Crash after the history entry was saved, before the entry was completed
    claim.history.append(AnchorEvent("CLAIM_APPROVED", "tx-1", datetime(2025, 1, 1)))
    claim.status = ClaimStatus.APPROVED
    repo.save(claim)
    outbox = AnchorOutbox()
    entry = outbox.add("c-1", "CLAIM_APPROVED", {"eventType": "CLAIM_APPROVED"}, {"status": "APPROVED"})
    outbox.record_anchor(entry, "tx-1")
    writer = MagicMock()

    assert replay_pending(outbox, writer, repo) == [entry]

    writer.submit.assert_not_called()
    assert len(repo.get(claim.claim_id).history) == 1
    assert outbox.pending() == []


def test_completed_entries_are_evicted():
    outbox = AnchorOutbox()
    entry = outbox.add("c-1", "CLAIM_PAID", {"eventType": "CLAIM_PAID"}, {"status": "PAID"})

    outbox.complete(entry)

    assert entry.completed is True
    assert outbox.get("c-1", "CLAIM_PAID") is None
    assert outbox.pending() == []


def test_replay_keeps_entries_pending_while_log_is_down():
    repo = ClaimRepository()
    pending_claim(repo)
    outbox = AnchorOutbox()
    outbox.add("c-1", "CLAIM_PAID", {"eventType": "CLAIM_PAID"}, {"status": "PAID"})
    writer = MagicMock()
    writer.submit.side_effect = LogUnavailable("still down")

    assert replay_pending(outbox, writer, repo) == []
    assert len(outbox.pending()) == 1
    assert repo.get("c-1").history == []


def test_replay_drops_entries_for_missing_claims():
    outbox = AnchorOutbox()
    outbox.add("ghost", "CLAIM_CREATED", {"eventType": "CLAIM_CREATED"})
    assert replay_pending(outbox, MagicMock(), ClaimRepository()) == []
    assert outbox.pending() == []


def test_workflow_retry_after_crash_does_not_anchor_twice():
    repo = ClaimRepository()
    repo.add_record(MedicalRecord("rec-1", "patient-1"))
    pending_claim(repo)
    writer = MagicMock()
    writer.submit_with_policy.return_value = "tx-once"
    reconciler = MagicMock()
    outbox = AnchorOutbox()
    workflow = ClaimWorkflow(repo, writer, reconciler, outbox)

    # Crash after anchoring, before the claim is saved
    original_save = repo.save
    repo.save = MagicMock(side_effect=RuntimeError("process died"))
    with pytest.raises(RuntimeError):
        workflow.reject_claim("c-1", "insurer-1", reason="Duplicate")
    repo.save = original_save

    assert outbox.get("c-1", "CLAIM_REJECTED").anchor_reference == "tx-once"

    workflow.reject_claim("c-1", "insurer-1", reason="Duplicate")

    assert writer.submit_with_policy.call_count == 1
    stored = repo.get("c-1")
    assert stored.status == ClaimStatus.REJECTED
    assert [e.anchor_reference for e in stored.history] == ["tx-once"]
    assert outbox.pending() == []


def test_retry_persists_what_the_first_attempt_anchored():
    repo = ClaimRepository()
    repo.add_record(MedicalRecord("rec-1", "patient-1"))
    pending_claim(repo)
    writer = MagicMock()
    writer.submit_with_policy.return_value = "tx-250"
    outbox = AnchorOutbox()
    workflow = ClaimWorkflow(repo, writer, MagicMock(), outbox)

    original_save = repo.save
    repo.save = MagicMock(side_effect=RuntimeError("process died"))
    with pytest.raises(RuntimeError):
        workflow.approve_claim("c-1", "insurer-1", amount_approved=250.0)
    repo.save = original_save

    claim = workflow.approve_claim("c-1", "insurer-1", amount_approved=400.0)

    anchored_event = writer.submit_with_policy.call_args[0][0]
    assert writer.submit_with_policy.call_count == 1
    assert anchored_event["amountApproved"] == 250.0
    assert claim.amount_approved == 250.0
    assert repo.get("c-1").amount_approved == 250.0
    assert repo.get("c-1").status == ClaimStatus.APPROVED


def test_timestamps_are_timezone_aware():
    repo = ClaimRepository()
    repo.add_record(MedicalRecord("rec-1", "patient-1"))
    pending_claim(repo)
    writer = MagicMock()
    writer.submit_with_policy.return_value = "tx-1"
    outbox = AnchorOutbox()
    entry = outbox.add("c-2", "CLAIM_PAID", {"eventType": "CLAIM_PAID"})

    ClaimWorkflow(repo, writer, MagicMock(), outbox).reject_claim("c-1", "insurer-1")

    assert entry.created_at.utcoffset() == timedelta(0)
    assert repo.get("c-1").history[0].recorded_at.utcoffset() == timedelta(0)
    assert writer.submit_with_policy.call_args[0][0]["timestamp"].endswith("Z")
