"""
Anchor outbox.

Saving a claim and anchoring its event are two separate writes with no
shared transaction. Every transition first records an outbox entry keyed
by claim id + event type, and only clears it once the anchored history
entry has been persisted. A crash in between leaves a pending entry that
replay_pending() finishes later.
"""
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from verianchor.errors import ClaimNotFound, LogUnavailable
from verianchor.models.claim import AnchorEvent, ClaimStatus

logger = logging.getLogger("verianchor.claims")


@dataclass
class OutboxEntry:
    claim_id: str
    event_type: str
    event: Dict[str, Any]
    changes: Dict[str, Any] = field(default_factory=dict)   # claim fields set by the transition
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    anchor_reference: Optional[str] = None
    completed: bool = False

    @property
    def key(self) -> str:
        return outbox_key(self.claim_id, self.event_type)


def outbox_key(claim_id: str, event_type: str) -> str:
    return f"{claim_id}:{event_type}"


class AnchorOutbox:

    def __init__(self):
        self._entries: Dict[str, OutboxEntry] = {}
        self._lock = threading.Lock()

    def add(
        self,
        claim_id: str,
        event_type: str,
        event: Dict[str, Any],
        changes: Optional[Dict[str, Any]] = None,
    ) -> OutboxEntry:
        """Idempotent: an existing entry for the same key is returned unchanged."""
        key = outbox_key(claim_id, event_type)
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None:
                return existing
            entry = OutboxEntry(
                claim_id=claim_id,
                event_type=event_type,
                event=event,
                changes=dict(changes or {}),
            )
            self._entries[key] = entry
            return entry

    def record_anchor(self, entry: OutboxEntry, anchor_reference: str) -> None:
        with self._lock:
            entry.anchor_reference = anchor_reference

    def complete(self, entry: OutboxEntry) -> None:
        """Mark the transition finished and stop tracking it."""
        with self._lock:
            entry.completed = True
            self._entries.pop(entry.key, None)

    def discard(self, entry: OutboxEntry) -> None:
        """Drop an entry whose transition was abandoned before anything was written."""
        with self._lock:
            self._entries.pop(entry.key, None)

    def get(self, claim_id: str, event_type: str) -> Optional[OutboxEntry]:
        with self._lock:
            return self._entries.get(outbox_key(claim_id, event_type))

    def pending(self) -> List[OutboxEntry]:
        with self._lock:
            return [e for e in self._entries.values() if not e.completed]


def apply_changes(claim, changes: Dict[str, Any]) -> None:
    for name, value in changes.items():
        if name == "status":
            value = ClaimStatus(value)
        setattr(claim, name, value)


def replay_pending(outbox: AnchorOutbox, writer, repository) -> List[OutboxEntry]:
    """
    Finish transitions interrupted between anchoring and persisting.

    Entries that already have an anchor reference are not re-submitted.
    A history entry is only appended when the claim does not already have
    one for that event type. Returns the entries completed by this call;
    entries whose anchor still cannot be submitted stay pending.
    """
    finished: List[OutboxEntry] = []

    for entry in sorted(outbox.pending(), key=lambda e: e.created_at):
        try:
            claim = repository.get(entry.claim_id)
        except ClaimNotFound:
            logger.warning(f"Outbox entry {entry.key} points at a missing claim; dropping it")
            outbox.discard(entry)
            continue

        if claim.has_event(entry.event_type):
            outbox.complete(entry)
            finished.append(entry)
            continue

        if not entry.anchor_reference:
            try:
                outbox.record_anchor(entry, writer.submit(entry.event))
            except LogUnavailable as e:
                logger.warning(f"Outbox replay for {entry.key} still failing: {e}")
                continue

        claim.history.append(AnchorEvent(
            event_type=entry.event_type,
            anchor_reference=entry.anchor_reference,
            recorded_at=datetime.now(timezone.utc),
        ))
        apply_changes(claim, entry.changes)
        repository.save(claim)
        outbox.complete(entry)
        finished.append(entry)
        logger.info(f"Outbox replay completed {entry.key}")

    return finished
