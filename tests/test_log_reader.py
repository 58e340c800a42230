import pytest
import requests

from verianchor.config import AnchorConfig
from verianchor.errors import LogReadError
from verianchor.ledger.reader import MirrorLogReader
from fixtures.mirror import FakeResponse, FakeSession, b64

CONFIG = AnchorConfig(mirror_node_url="https://mirror.test/", default_topic_id="0.0.4242")


def test_queries_topic_messages_by_transaction():
    session = FakeSession(FakeResponse(json_data={"messages": [
        {"message": b64("{}"), "consensus_timestamp": "1.2", "topic_id": "0.0.7", "sequence_number": 3},
    ]}))
    reader = MirrorLogReader(CONFIG, session=session)

    entries = reader.fetch_by_transaction_id("0.0.7", "0.0.1001@1700000000.000000001")

    method, url, kwargs = session.calls[0]
    assert method == "GET"
    assert url == "https://mirror.test/api/v1/topics/0.0.7/messages"
    assert kwargs["params"] == {"transactionid": "0.0.1001@1700000000.000000001"}
    assert kwargs["timeout"] == 15.0
    assert len(entries) == 1
    assert entries[0].sequence_number == 3
    assert entries[0].consensus_timestamp == "1.2"


def test_falls_back_to_default_topic():
    session = FakeSession(FakeResponse(json_data={"messages": []}))
    MirrorLogReader(CONFIG, session=session).fetch_by_transaction_id(None, "tx")
    assert "/topics/0.0.4242/" in session.calls[0][1]


def test_no_matches_is_an_empty_list():
    session = FakeSession(FakeResponse(json_data={"links": {}}))
    assert MirrorLogReader(CONFIG, session=session).fetch_by_transaction_id(None, "tx") == []


def test_missing_topic_everywhere_is_a_read_error():
    reader = MirrorLogReader(AnchorConfig(), session=FakeSession())
    with pytest.raises(LogReadError):
        reader.fetch_by_transaction_id(None, "tx")


def test_empty_transaction_id_is_rejected():
    with pytest.raises(ValueError):
        MirrorLogReader(CONFIG, session=FakeSession()).fetch_by_transaction_id(None, "")


@pytest.mark.parametrize("session", [
    FakeSession(error=requests.exceptions.Timeout("timed out")),
    FakeSession(error=requests.exceptions.ConnectionError("refused")),
    FakeSession(FakeResponse(status_code=503)),
    FakeSession(FakeResponse(status_code=200, json_data=None)),
])
def test_transport_failures_raise_with_cause(session):
    reader = MirrorLogReader(CONFIG, session=session)
    with pytest.raises(LogReadError) as exc_info:
        reader.fetch_by_transaction_id(None, "tx")
    assert exc_info.value.cause is not None


def test_topic_listing_passes_limit_and_order():
    session = FakeSession(FakeResponse(json_data={"messages": [{"message": b64("a")}]}))
    entries = MirrorLogReader(CONFIG, session=session).fetch_topic_messages(limit=5, order="desc")
    assert session.calls[0][2]["params"] == {"limit": 5, "order": "desc"}
    assert len(entries) == 1


def test_topic_listing_rejects_unknown_order():
    with pytest.raises(ValueError):
        MirrorLogReader(CONFIG, session=FakeSession()).fetch_topic_messages(order="sideways")
