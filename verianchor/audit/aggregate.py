import logging
from typing import Any, Dict, List, Optional, Sequence

from verianchor.errors import AnchorError
from verianchor.ledger.codec import decode_log_message
from verianchor.models.claim import AnchorEvent

logger = logging.getLogger("verianchor.audit")


def build_audit_timeline(
    log_reader,
    history: Sequence[AnchorEvent],
    topic_id: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Decode the anchored message behind every history entry, in append order.

    One failing lookup does not sink the batch: the entry is reported with
    mirrorDecoded=None and an inline 'error' string instead.
    """
    timeline: List[Dict[str, Any]] = []

    for event in history:
        item: Dict[str, Any] = {
            "eventType": event.event_type,
            "recordedAt": event.recorded_at.isoformat(),
            "hcsMessageId": event.anchor_reference,
            "mirrorDecoded": None,
        }

        if not event.anchor_reference:
            item["error"] = "No anchor reference recorded for event"
            timeline.append(item)
            continue

        try:
            entries = log_reader.fetch_by_transaction_id(topic_id, event.anchor_reference)
            item["mirrorDecoded"] = decode_log_message(entries[0]) if entries else None
        except (AnchorError, ValueError) as e:
            logger.warning(f"Audit lookup failed for {event.event_type}: {e}")
            item["error"] = str(e)

        timeline.append(item)

    return timeline
