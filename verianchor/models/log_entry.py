from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class LogEntry:
    """
    One message as returned by the mirror node read path.
    Transient: fetched on demand, never persisted by the core.
    """
    raw_message: Optional[str]            # base64 as delivered by the mirror node
    consensus_timestamp: Optional[str] = None
    topic_id: Optional[str] = None
    sequence_number: Optional[int] = None

    @classmethod
    def from_mirror(cls, message: Dict[str, Any]) -> "LogEntry":
        return cls(
            raw_message=message.get("message"),
            consensus_timestamp=message.get("consensus_timestamp"),
            topic_id=message.get("topic_id"),
            sequence_number=message.get("sequence_number"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "message": self.raw_message,
            "consensus_timestamp": self.consensus_timestamp,
            "topic_id": self.topic_id,
            "sequence_number": self.sequence_number,
        }
