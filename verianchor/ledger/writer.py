import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional

import requests

from verianchor.audit.hash_utils import canonical_json
from verianchor.config import AnchorConfig
from verianchor.errors import LogUnavailable

logger = logging.getLogger("verianchor.ledger")


class AnchorFailurePolicy(str, Enum):
    """
    What a call site does when anchoring fails.

    FATAL: the enclosing write fails with it (claim transitions).
    IGNORE: logged and dropped, the primary write stands (timeline appends).
    """
    FATAL = "fatal"
    IGNORE = "ignore"


class LogSubmitter(ABC):
    """Write path of the ordered log."""

    @abstractmethod
    def submit(self, topic_id: str, message: str) -> Dict[str, Any]:
        """
        Append one message to the topic.
        Must return a mapping with the log's 'transactionId'.
        """
        pass


class HttpLogSubmitter(LogSubmitter):
    """
    Submits through a ledger relay service that owns the operator keys.
    POST {log_submit_url} {"topicId", "message"} -> {"transactionId"}
    """

    def __init__(self, config: AnchorConfig, session: Optional[requests.Session] = None):
        if not config.log_submit_url:
            raise ValueError("LOG_SUBMIT_URL is not configured")
        self.config = config
        self.session = session or requests.Session()

    def submit(self, topic_id: str, message: str) -> Dict[str, Any]:
        response = self.session.post(
            self.config.log_submit_url,
            json={"topicId": topic_id, "message": message},
            timeout=self.config.http_timeout,
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()
        return response.json()


class AnchorWriter:
    """
    Serializes events canonically and appends them to the configured topic.
    Returns the transaction id, which callers store on the owning record.
    """

    def __init__(
        self,
        config: AnchorConfig,
        submitter: LogSubmitter,
        topic_id: Optional[str] = None,
    ):
        self.topic_id = topic_id or config.default_topic_id
        if not self.topic_id:
            raise ValueError("AnchorWriter needs a topic id (HEDERA_TOPIC_ID)")
        self.submitter = submitter

    def submit(self, event: Any) -> str:
        try:
            message = canonical_json(event)
        except (TypeError, ValueError) as e:
            raise ValueError(f"Event is not JSON-serializable: {e}") from e

        try:
            ack = self.submitter.submit(self.topic_id, message)
        except LogUnavailable:
            raise
        except Exception as e:
            logger.error(f"Failed to submit anchor to topic {self.topic_id}: {e}")
            raise LogUnavailable(f"Log submission failed: {e}", cause=e) from e

        transaction_id = (ack or {}).get("transactionId")
        if not transaction_id:
            raise LogUnavailable("Log acknowledged submission without a transactionId")

        event_type = None
        if isinstance(event, dict):
            event_type = event.get("eventType") or event.get("type")
        logger.info(f"Anchored {event_type or 'event'} on {self.topic_id}: {transaction_id}")
        return transaction_id

    def submit_with_policy(
        self,
        event: Any,
        on_anchor_failure: AnchorFailurePolicy = AnchorFailurePolicy.FATAL,
    ) -> Optional[str]:
        """submit(), except that IGNORE turns LogUnavailable into None."""
        try:
            return self.submit(event)
        except LogUnavailable as e:
            if AnchorFailurePolicy(on_anchor_failure) is AnchorFailurePolicy.FATAL:
                raise
            logger.warning(f"Anchor submission failed and was ignored: {e}")
            return None
