import os
from dataclasses import dataclass, replace
from typing import Optional

from dotenv import load_dotenv

DEFAULT_MIRROR_NODE_URL = "https://testnet.mirrornode.hedera.com"
DEFAULT_IPFS_GATEWAY = "https://ipfs.io/ipfs"
DEFAULT_HTTP_TIMEOUT = 15.0


@dataclass(frozen=True)
class AnchorConfig:
    """
    Explicit configuration for the anchoring / verification stack.

    Built once (usually via from_env) and handed to every client that
    needs it. Nothing in the package reads these values from the
    environment on its own.
    """
    mirror_node_url: str = DEFAULT_MIRROR_NODE_URL
    ipfs_gateway: str = DEFAULT_IPFS_GATEWAY
    default_topic_id: Optional[str] = None
    log_submit_url: Optional[str] = None
    pinata_jwt: Optional[str] = None
    http_timeout: float = DEFAULT_HTTP_TIMEOUT

    def __post_init__(self):
        # Trailing slashes would produce '//' in every URL we build
        object.__setattr__(self, "mirror_node_url", self.mirror_node_url.rstrip("/"))
        object.__setattr__(self, "ipfs_gateway", self.ipfs_gateway.rstrip("/"))
        if self.http_timeout <= 0:
            raise ValueError("http_timeout must be positive")

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "AnchorConfig":
        if load_env_file:
            load_dotenv()

        timeout_raw = os.getenv("VERIANCHOR_HTTP_TIMEOUT")
        return cls(
            mirror_node_url=os.getenv("MIRROR_NODE_URL") or DEFAULT_MIRROR_NODE_URL,
            ipfs_gateway=os.getenv("IPFS_GATEWAY") or DEFAULT_IPFS_GATEWAY,
            default_topic_id=os.getenv("HEDERA_TOPIC_ID") or None,
            log_submit_url=os.getenv("LOG_SUBMIT_URL") or None,
            pinata_jwt=os.getenv("PINATA_JWT") or None,
            http_timeout=float(timeout_raw) if timeout_raw else DEFAULT_HTTP_TIMEOUT,
        )

    def with_topic(self, topic_id: str) -> "AnchorConfig":
        return replace(self, default_topic_id=topic_id)
