import logging
from typing import Optional

import requests

from verianchor.config import AnchorConfig
from verianchor.errors import ContentFetchError

logger = logging.getLogger("verianchor.content")

IPFS_SCHEME = "ipfs://"


class ContentGateway:
    """Fetches content-addressed payloads (IPFS) through an HTTP gateway."""

    def __init__(self, config: AnchorConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def url_for(self, content_id: str) -> str:
        if content_id.startswith(IPFS_SCHEME):
            content_id = content_id[len(IPFS_SCHEME):]
        return f"{self.config.ipfs_gateway}/{content_id.lstrip('/')}"

    def fetch(self, content_id: str) -> bytes:
        """
        Raw bytes for the identifier. Any failure raises ContentFetchError:
        an unreachable store must never look like tampered content.
        """
        if not content_id:
            raise ContentFetchError("No content identifier provided")

        url = self.url_for(content_id)
        try:
            response = self.session.get(url, timeout=self.config.http_timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error(f"Content fetch failed for {content_id}: {e}")
            raise ContentFetchError(f"Content fetch failed for {content_id}: {e}", cause=e) from e

        return response.content
