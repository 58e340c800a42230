import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from verianchor.audit.hash_utils import sha256_hex
from verianchor.errors import RecordNotFound
from verianchor.ledger.writer import AnchorFailurePolicy
from verianchor.models.lab_result import LabActor, LabResult, TimelineEvent

logger = logging.getLogger("verianchor.labs")


class TimelineSink(ABC):
    """Patient health-timeline feed."""

    @abstractmethod
    def append(self, event: TimelineEvent) -> None:
        pass


class InMemoryTimeline(TimelineSink):

    def __init__(self):
        self._events: List[TimelineEvent] = []
        self._lock = threading.Lock()

    def append(self, event: TimelineEvent) -> None:
        with self._lock:
            self._events.append(event)

    def for_patient(self, patient_id: str) -> List[TimelineEvent]:
        with self._lock:
            return [e for e in self._events if e.patient_id == patient_id]


class LabResultStore:

    def __init__(self):
        self._results: Dict[str, LabResult] = {}
        self._lock = threading.Lock()

    def save(self, result: LabResult) -> None:
        with self._lock:
            self._results[result.lab_result_id] = result

    def get(self, lab_result_id: str) -> LabResult:
        with self._lock:
            result = self._results.get(lab_result_id)
        if result is None:
            raise RecordNotFound(f"Lab result {lab_result_id} not found")
        return result


class LabResultAnchoring:
    """
    Write path for lab results:
    store payload off-box -> hash it -> anchor {hash, cid} -> persist -> timeline.
    The anchor carries both field spellings so any alias-aware reader resolves it.

    The anchor is part of the result (FATAL). The timeline entry is a
    convenience feed, so by default its failure is logged and dropped
    while the stored, anchored result stands.
    """

    def __init__(
        self,
        content_store,
        writer,
        results: LabResultStore,
        timeline: TimelineSink,
        on_timeline_failure: AnchorFailurePolicy = AnchorFailurePolicy.IGNORE,
    ):
        self.content_store = content_store
        self.writer = writer
        self.results = results
        self.timeline = timeline
        self.on_timeline_failure = AnchorFailurePolicy(on_timeline_failure)

    def create_lab_result(
        self,
        patient_id: str,
        lab: LabActor,
        test_type: str,
        data: Dict[str, Any],
        notes: Optional[str] = None,
        date_collected: Optional[str] = None,
        patient_did: Optional[str] = None,
    ) -> LabResult:
        if not test_type:
            raise ValueError("test_type is required")

        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        payload = {
            "patientDid": patient_did,
            "labDid": lab.did,
            "testType": test_type,
            "data": data,
            "notes": notes,
            "dateCollected": date_collected or now,
            "createdAt": now,
        }
        blob = json.dumps(payload, sort_keys=True).encode("utf-8")

        # 1-2. Off-box copy and its digest
        content_id = self.content_store.put(blob, name=f"lab-result-{uuid.uuid4().hex}.json")
        content_hash = sha256_hex(blob)

        # 3. Anchor; failure aborts before anything is persisted
        anchor_reference = self.writer.submit_with_policy(
            {
                "type": "LabResultAnchor",
                "patientDID": patient_did,
                "labDID": lab.did,
                "testType": test_type,
                "cid": content_id,
                "hash": content_hash,
                "recordHash": content_hash,
                "ipfsCid": content_id,
                "timestamp": now,
            },
            AnchorFailurePolicy.FATAL,
        )

        # 4. Persist
        result = LabResult(
            lab_result_id=uuid.uuid4().hex,
            patient_id=patient_id,
            lab_id=lab.lab_id,
            test_type=test_type,
            content_id=content_id,
            content_hash=content_hash,
            anchor_reference=anchor_reference,
            date_collected=payload["dateCollected"],
            date_reported=now,
            notes=notes,
        )
        self.results.save(result)

        # 5. Timeline
        self._append_timeline(result, lab)

        logger.info(f"Lab result {result.lab_result_id} anchored as {anchor_reference}")
        return result

    def _append_timeline(self, result: LabResult, lab: LabActor) -> None:
        event = TimelineEvent(
            patient_id=result.patient_id,
            event_type="lab_result",
            title=f"Lab result: {result.test_type}",
            description=f"A new {result.test_type} result was recorded by {lab.name}.",
            actor={"id": lab.lab_id, "did": lab.did, "name": lab.name, "role": "lab"},
            meta={
                "cid": result.content_id,
                "hcsMessageId": result.anchor_reference,
                "labResultId": result.lab_result_id,
                "testType": result.test_type,
                "notes": result.notes,
            },
        )
        try:
            self.timeline.append(event)
        except Exception as e:
            if self.on_timeline_failure is AnchorFailurePolicy.FATAL:
                raise
            logger.error(f"Failed to append timeline event for {result.lab_result_id}: {e}")
