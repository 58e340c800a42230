from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class LabActor:
    lab_id: str
    did: Optional[str] = None
    name: str = "Lab"


@dataclass(frozen=True)
class LabResult:
    """
    Persisted lab result. The payload itself lives in content storage;
    content_hash is kept for display only and is never trusted for
    verification.
    """
    lab_result_id: str
    patient_id: str
    lab_id: str
    test_type: str
    content_id: str
    content_hash: str
    anchor_reference: str
    date_collected: str
    date_reported: str
    notes: Optional[str] = None


@dataclass(frozen=True)
class TimelineEvent:
    patient_id: str
    event_type: str
    title: str
    description: str
    actor: Dict[str, Any] = field(default_factory=dict)
    meta: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
