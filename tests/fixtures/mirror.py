import base64
import hashlib
import json

import requests

from verianchor.models.log_entry import LogEntry


def b64(text: str) -> str:
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def entry_for(payload, sequence_number: int = 1) -> LogEntry:
    """Mirror-node style entry carrying json.dumps(payload), or a raw string."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return LogEntry(
        raw_message=b64(text),
        consensus_timestamp="1700000000.000000001",
        topic_id="0.0.4242",
        sequence_number=sequence_number,
    )


def sha(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class FakeResponse:

    def __init__(self, status_code=200, json_data=None, content=b""):
        self.status_code = status_code
        self._json = json_data
        self.content = content

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """Stands in for requests.Session; replays canned responses or raises."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def _handle(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def get(self, url, **kwargs):
        return self._handle("GET", url, **kwargs)

    def post(self, url, **kwargs):
        return self._handle("POST", url, **kwargs)


class FakeLogReader:
    """Maps transaction id -> list of entries, or an exception to raise."""

    def __init__(self, entries_by_tx=None):
        self.entries_by_tx = entries_by_tx or {}
        self.calls = []

    def fetch_by_transaction_id(self, topic_id, transaction_id):
        self.calls.append((topic_id, transaction_id))
        result = self.entries_by_tx.get(transaction_id, [])
        if isinstance(result, Exception):
            raise result
        return result


class FakeContent:

    def __init__(self, blobs=None, error=None):
        self.blobs = blobs or {}
        self.error = error
        self.calls = []

    def fetch(self, content_id):
        self.calls.append(content_id)
        if self.error is not None:
            raise self.error
        return self.blobs[content_id]
