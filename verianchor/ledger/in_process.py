import threading
import time
from collections import defaultdict
from typing import Any, Dict, List, Optional

from verianchor.ledger.codec import encode_log_message
from verianchor.ledger.writer import LogSubmitter
from verianchor.models.log_entry import LogEntry


class InProcessLog(LogSubmitter):
    """
    Local append-only topic log with the same read shape as the mirror node.

    Used for offline development and tests. It implements both the write
    side (LogSubmitter) and the reader methods the reconciler calls, so it
    can stand in for MirrorLogReader.
    """

    def __init__(self, operator_id: str = "0.0.1001", default_topic_id: Optional[str] = None):
        self.operator_id = operator_id
        self.default_topic_id = default_topic_id
        self._messages: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._lock = threading.Lock()
        self._last_ns = 0

    def _next_transaction_id(self) -> str:
        # Strictly increasing so two submissions never share an id
        now = max(time.time_ns(), self._last_ns + 1)
        self._last_ns = now
        return f"{self.operator_id}@{now // 1_000_000_000}.{now % 1_000_000_000:09d}"

    def submit(self, topic_id: str, message: str) -> Dict[str, Any]:
        with self._lock:
            topic = self._messages[topic_id]
            transaction_id = self._next_transaction_id()
            now = time.time_ns()
            topic.append({
                "message": encode_log_message(message),
                "consensus_timestamp": f"{now // 1_000_000_000}.{now % 1_000_000_000:09d}",
                "topic_id": topic_id,
                "sequence_number": len(topic) + 1,
                "transaction_id": transaction_id,
            })
        return {"transactionId": transaction_id, "topicId": topic_id, "status": "SUCCESS"}

    def fetch_by_transaction_id(self, topic_id: Optional[str], transaction_id: str) -> List[LogEntry]:
        if not transaction_id:
            raise ValueError("transaction_id is required")
        topic = topic_id or self.default_topic_id
        with self._lock:
            matches = [m for m in self._messages.get(topic, []) if m["transaction_id"] == transaction_id]
        return [LogEntry.from_mirror(m) for m in matches]

    def fetch_topic_messages(self, topic_id: Optional[str] = None, limit: int = 25, order: str = "asc") -> List[LogEntry]:
        if order not in ("asc", "desc"):
            raise ValueError(f"order must be 'asc' or 'desc', got {order}")
        if limit <= 0:
            raise ValueError("limit must be positive")
        topic = topic_id or self.default_topic_id
        with self._lock:
            messages = list(self._messages.get(topic, []))
        if order == "desc":
            messages.reverse()
        return [LogEntry.from_mirror(m) for m in messages[:limit]]
