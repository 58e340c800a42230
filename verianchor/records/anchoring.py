import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from verianchor.audit.hash_utils import sha256_hex
from verianchor.ledger.writer import AnchorFailurePolicy
from verianchor.models.claim import MedicalRecord

logger = logging.getLogger("verianchor.records")

RECORD_CREATED_EVENT = "HEALTH_RECORD_CREATED"


class RecordAnchoring:
    """
    Write path for medical records:
    store metadata off-box -> hash it -> anchor {recordHash, ipfsCid} -> persist.

    The anchor is what later lets the reconciler vouch for the record, so a
    record whose anchor cannot be written is not persisted (FATAL).
    """

    def __init__(self, content_store, writer, repository):
        self.content_store = content_store
        self.writer = writer
        self.repository = repository

    def create_record(
        self,
        patient_id: str,
        record_type: str,
        title: str = "",
        data: Optional[Dict[str, Any]] = None,
        notes: Optional[str] = None,
        added_by: Optional[str] = None,
        date: Optional[str] = None,
    ) -> MedicalRecord:
        if not patient_id:
            raise ValueError("patient_id is required")
        if not record_type:
            raise ValueError("record_type is required")

        record_id = f"rec-{uuid.uuid4().hex}"
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        metadata = {
            "recordId": record_id,
            "patient": patient_id,
            "type": record_type,
            "title": title,
            "date": date or now,
            "notes": notes,
            "addedBy": added_by,
            "data": data or {},
            "createdAt": now,
        }
        blob = json.dumps(metadata, sort_keys=True).encode("utf-8")

        content_id = self.content_store.put(blob, name=f"health-record-{record_id}.json")
        content_hash = sha256_hex(blob)

        anchor_reference = self.writer.submit_with_policy(
            {
                "eventType": RECORD_CREATED_EVENT,
                "recordId": record_id,
                "patientId": patient_id,
                "type": record_type,
                "title": title,
                "addedBy": added_by,
                "recordHash": content_hash,
                "ipfsCid": content_id,
                "timestamp": now,
            },
            AnchorFailurePolicy.FATAL,
        )

        record = self.repository.add_record(MedicalRecord(
            record_id=record_id,
            patient_id=patient_id,
            title=title,
            anchor_reference=anchor_reference,
            content_id=content_id,
            record_type=record_type,
            content_hash=content_hash,
        ))
        logger.info(f"Health record {record_id} anchored as {anchor_reference}")
        return record
