import threading
from abc import ABC, abstractmethod
from typing import Dict, Optional

import requests

from verianchor.audit.hash_utils import sha256_hex
from verianchor.errors import ContentFetchError, ContentStoreError


class ContentStore(ABC):
    """Write side of content-addressed storage (pinning service)."""

    @abstractmethod
    def put(self, data: bytes, name: str = "") -> str:
        """Store bytes and return their content identifier."""
        pass


class InMemoryContentStore(ContentStore):
    """
    Content store keyed by a digest of the bytes themselves.
    Also exposes fetch() so it can stand in for ContentGateway.
    """

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, data: bytes, name: str = "") -> str:
        content_id = f"sha256-{sha256_hex(data)}"
        with self._lock:
            self._blobs[content_id] = bytes(data)
        return content_id

    def fetch(self, content_id: str) -> bytes:
        if content_id.startswith("ipfs://"):
            content_id = content_id[len("ipfs://"):]
        with self._lock:
            if content_id not in self._blobs:
                raise ContentFetchError(f"Content {content_id} not found")
            return self._blobs[content_id]

    def overwrite(self, content_id: str, data: bytes) -> None:
        """Replace stored bytes in place. Only meaningful for tamper simulations."""
        with self._lock:
            self._blobs[content_id] = bytes(data)


class PinataContentStore(ContentStore):
    """Pins raw bytes through the Pinata pinning API and returns the CID."""

    PIN_FILE_URL = "https://api.pinata.cloud/pinning/pinFileToIPFS"

    def __init__(self, jwt: str, session: Optional[requests.Session] = None, timeout: float = 15.0):
        if not jwt:
            raise ValueError("Pinata JWT is required")
        self.jwt = jwt
        self.session = session or requests.Session()
        self.timeout = timeout

    def put(self, data: bytes, name: str = "") -> str:
        try:
            response = self.session.post(
                self.PIN_FILE_URL,
                files={"file": (name or "record.json", data)},
                headers={"Authorization": f"Bearer {self.jwt}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            return response.json()["IpfsHash"]
        except (requests.exceptions.RequestException, KeyError, ValueError) as e:
            raise ContentStoreError(f"IPFS upload failed: {e}", cause=e) from e
