import logging
from typing import Any, Dict, List, Optional

import requests

from verianchor.config import AnchorConfig
from verianchor.errors import LogReadError
from verianchor.models.log_entry import LogEntry

logger = logging.getLogger("verianchor.ledger")


class MirrorLogReader:
    """
    Read path of the ordered log (Hedera mirror node REST API).

    No retries here: a failed read is reported once, with its cause, and
    the caller decides what to do about it.
    """

    def __init__(self, config: AnchorConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def _resolve_topic(self, topic_id: Optional[str]) -> str:
        topic = topic_id or self.config.default_topic_id
        if not topic:
            raise LogReadError("Topic ID not provided and no default topic configured")
        return topic

    def _get_messages(self, url: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            response = self.session.get(
                url,
                params=params,
                timeout=self.config.http_timeout,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
            body = response.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Mirror node request failed: {e}")
            raise LogReadError(f"Mirror node request failed: {e}", cause=e) from e
        except ValueError as e:
            logger.error(f"Mirror node returned a non-JSON body: {e}")
            raise LogReadError("Mirror node returned a non-JSON body", cause=e) from e

        if not isinstance(body, dict):
            raise LogReadError("Mirror node returned an unexpected body")
        return body.get("messages") or []

    def fetch_by_transaction_id(
        self,
        topic_id: Optional[str],
        transaction_id: str,
    ) -> List[LogEntry]:
        """
        All messages on the topic written by the given transaction.
        Empty list (not an error) when nothing matches.
        """
        if not transaction_id:
            raise ValueError("transaction_id is required")

        topic = self._resolve_topic(topic_id)
        url = f"{self.config.mirror_node_url}/api/v1/topics/{topic}/messages"
        messages = self._get_messages(url, {"transactionid": transaction_id})

        logger.debug(f"Mirror node returned {len(messages)} message(s) for {transaction_id}")
        return [LogEntry.from_mirror(m) for m in messages]

    def fetch_topic_messages(
        self,
        topic_id: Optional[str] = None,
        limit: int = 25,
        order: str = "asc",
    ) -> List[LogEntry]:
        """Latest messages on a topic, for explorer-style listings."""
        if order not in ("asc", "desc"):
            raise ValueError(f"order must be 'asc' or 'desc', got {order}")
        if limit <= 0:
            raise ValueError("limit must be positive")

        topic = self._resolve_topic(topic_id)
        url = f"{self.config.mirror_node_url}/api/v1/topics/{topic}/messages"
        messages = self._get_messages(url, {"limit": limit, "order": order})
        return [LogEntry.from_mirror(m) for m in messages]
