import datetime
from types import SimpleNamespace

import pydgraph
import pytest

from config import Settings
from chatgraph.memory.graph import DgraphStore
from chatgraph.memory.models import ChatMessage
from chatgraph.memory.repository import FIND_SESSION_QUERY, HistoryRepository
from chatgraph.utils.errors import GraphStoreError


class _Txn:
    def __init__(self, read_only, error=None):
        self.read_only = read_only
        self.error = error
        self.discarded = False
        self.queries = []
        self.requests = []

    def query(self, query, variables=None):
        self.queries.append((query, variables))
        if self.error is not None:
            raise self.error
        return SimpleNamespace(json=b'{"messages": []}')

    def create_mutation(self, set_obj=None, del_nquads=None):
        return {"set_obj": set_obj, "del_nquads": del_nquads}

    def create_request(self, query=None, variables=None, mutations=None, commit_now=None):
        return {"query": query, "variables": variables, "mutations": mutations, "commit_now": commit_now}

    def do_request(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(uids={"msg0": "0x2a"})

    def discard(self):
        self.discarded = True


class _Client:
    def __init__(self, stub):
        self.stub = stub
        self.error = None
        self.txns = []
        self.operations = []

    def txn(self, read_only=False):
        txn = _Txn(read_only, self.error)
        self.txns.append(txn)
        return txn

    def alter(self, operation):
        self.operations.append(operation)
        if self.error is not None:
            raise self.error


class _Stub:
    def __init__(self, addr, api_key=None):
        self.addr = addr
        self.api_key = api_key
        self.closed = False

    @classmethod
    def from_cloud(cls, addr, api_key):
        return cls(addr, api_key=api_key)

    def close(self):
        self.closed = True


@pytest.fixture
def dgraph(monkeypatch):
    monkeypatch.setattr(pydgraph, "DgraphClientStub", _Stub)
    monkeypatch.setattr(pydgraph, "DgraphClient", _Client)
    return DgraphStore("localhost:9080", name="website")


def test_query_is_read_only_and_decodes_json(dgraph):
    raw = dgraph.query("query q($sessionID: string) { q() }", variables={"$sessionID": "s1"})

    assert raw == '{"messages": []}'
    (txn,) = dgraph._client.txns
    assert txn.read_only is True
    assert txn.queries[0][1] == {"$sessionID": "s1"}
    assert txn.discarded


def test_query_failure_is_wrapped_and_discarded(dgraph):
    dgraph._client.error = RuntimeError("deadline exceeded")

    with pytest.raises(GraphStoreError) as excinfo:
        dgraph.query("{ q() }")
    assert "'website'" in str(excinfo.value)
    assert "deadline exceeded" in str(excinfo.value)
    assert dgraph._client.txns[0].discarded


def test_mutate_commits_upsert_in_one_request(dgraph):
    payload = [{"uid": "uid(session)", "ChatSession.sessionID": "s1"}]

    uids = dgraph.mutate(set_obj=payload, query="q", variables={"$sessionID": "s1"})

    assert uids == {"msg0": "0x2a"}
    (txn,) = dgraph._client.txns
    assert txn.read_only is False
    (request,) = txn.requests
    assert request["commit_now"] is True
    assert request["query"] == "q"
    assert request["variables"] == {"$sessionID": "s1"}
    assert request["mutations"] == [{"set_obj": payload, "del_nquads": None}]
    assert txn.discarded


def test_mutate_failure_is_wrapped_and_discarded(dgraph):
    dgraph._client.error = RuntimeError("Transaction has been aborted")

    with pytest.raises(GraphStoreError) as excinfo:
        dgraph.mutate(del_nquads="<0x1> * * .")
    assert "Dgraph mutation failed on 'website'" in str(excinfo.value)
    assert dgraph._client.txns[0].discarded


def test_mutate_without_payload_opens_no_transaction(dgraph):
    with pytest.raises(ValueError):
        dgraph.mutate()
    assert dgraph._client.txns == []


def test_alter_schema_failure_is_wrapped(dgraph):
    dgraph.alter_schema("ChatMessage.role: string .")
    assert dgraph._client.operations[0].schema == "ChatMessage.role: string ."

    dgraph._client.error = RuntimeError("unauthorized")
    with pytest.raises(GraphStoreError) as excinfo:
        dgraph.alter_schema("ChatMessage.role: string .")
    assert "'website'" in str(excinfo.value)


def test_close_closes_stub(dgraph):
    dgraph.close()
    assert dgraph._stub.closed


def test_cloud_connection_uses_api_key(monkeypatch):
    monkeypatch.setattr(pydgraph, "DgraphClientStub", _Stub)
    monkeypatch.setattr(pydgraph, "DgraphClient", _Client)

    store = DgraphStore.from_settings(
        Settings(dgraph_addr="blue.cloud.dgraph.io:443", dgraph_api_key="secret", dgraph_connection_name="website")
    )

    assert store.name == "website"
    assert store._stub.addr == "blue.cloud.dgraph.io:443"
    assert store._stub.api_key == "secret"


def test_repository_append_goes_out_as_upsert(dgraph):
    repository = HistoryRepository(dgraph)
    ts = datetime.datetime(2025, 3, 1, 9, 30, tzinfo=datetime.timezone.utc)
    message = ChatMessage(role="user", content="hi", timestamp=ts, session_ref="s1")

    repository.append_messages("s1", [message])

    (request,) = dgraph._client.txns[0].requests
    assert request["query"] == FIND_SESSION_QUERY
    assert request["variables"] == {"$sessionID": "s1"}
    assert request["commit_now"] is True
    set_obj = request["mutations"][0]["set_obj"]
    assert set_obj[0]["uid"] == "uid(session)"
    assert set_obj[1]["ChatMessage.content"] == "hi"
    assert message.id == "0x2a"
