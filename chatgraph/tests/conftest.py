import copy
import datetime
import json
import sys
from pathlib import Path
from typing import Dict, List

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from config import Settings  # noqa: E402
from chatgraph.llm.conversation import Conversation  # noqa: E402
from chatgraph.memory.repository import HistoryRepository  # noqa: E402


class FakeGraphStore:
    """In-memory stand-in for Dgraph that understands the queries chatgraph sends."""

    def __init__(self):
        self.nodes: Dict[str, Dict] = {}
        self.queries: List[tuple] = []
        self.mutations: List[Dict] = []
        self.schemas: List[str] = []
        self.query_error = None
        self.mutate_error = None
        self.alter_error = None
        self.raw_response = None
        self.reverse_reads = False
        self._counter = 0

    # -- helpers -----------------------------------------------------------

    def _new_uid(self) -> str:
        self._counter += 1
        return hex(self._counter)

    def typed(self, type_name: str) -> Dict[str, Dict]:
        return {uid: n for uid, n in self.nodes.items() if n.get("dgraph.type") == type_name}

    def messages_for(self, session_id: str) -> Dict[str, Dict]:
        return {
            uid: n for uid, n in self.typed("ChatMessage").items()
            if n.get("ChatMessage.sessionRef") == session_id
        }

    def sessions_for(self, session_id: str) -> Dict[str, Dict]:
        return {
            uid: n for uid, n in self.typed("ChatSession").items()
            if n.get("ChatSession.sessionID") == session_id
        }

    # -- GraphStore --------------------------------------------------------

    def query(self, query, variables=None):
        variables = dict(variables or {})
        self.queries.append((query, variables))
        if self.query_error is not None:
            raise self.query_error
        if self.raw_response is not None:
            return self.raw_response

        if "getSessionMessages" in query:
            rows = [
                {
                    "uid": uid,
                    "role": n["ChatMessage.role"],
                    "content": n["ChatMessage.content"],
                    "timestamp": n["ChatMessage.timestamp"],
                    "sessionRef": n["ChatMessage.sessionRef"],
                    "position": n.get("ChatMessage.position"),
                }
                for uid, n in self.messages_for(variables["$sessionID"]).items()
            ]
            rows.sort(key=lambda r: r["timestamp"])
            if self.reverse_reads:
                rows.reverse()
            return json.dumps({"messages": rows})

        if "sessionRecords" in query:
            sid = variables["$sessionID"]
            return json.dumps({
                "sessions": [{"uid": uid} for uid in self.sessions_for(sid)],
                "messages": [{"uid": uid} for uid in self.messages_for(sid)],
            })

        if "getTestNode" in query:
            nodes = [
                {
                    "uid": uid,
                    "name": n["TestNode.name"],
                    "timestamp": n["TestNode.timestamp"],
                    "session": n["TestNode.sessionLink"],
                }
                for uid, n in self.typed("TestNode").items()
                if n.get("TestNode.sessionLink") == variables["$testID"]
            ]
            return json.dumps({"testNodes": nodes})

        raise AssertionError(f"unexpected query: {query}")

    def mutate(self, set_obj=None, del_nquads=None, query=None, variables=None):
        self.mutations.append({
            "set_obj": copy.deepcopy(set_obj),
            "del_nquads": del_nquads,
            "query": query,
            "variables": dict(variables or {}),
        })
        if self.mutate_error is not None:
            raise self.mutate_error

        uids: Dict[str, str] = {}
        if set_obj is not None:
            session_uid = None
            if query and "findSession" in query:
                found = self.sessions_for(variables["$sessionID"])
                session_uid = next(iter(found), None)

            def resolve(ref):
                nonlocal session_uid
                if ref == "uid(session)":
                    if session_uid is None:
                        session_uid = self._new_uid()
                    return session_uid
                if ref.startswith("_:"):
                    name = ref[2:]
                    if name not in uids:
                        uids[name] = self._new_uid()
                    return uids[name]
                return ref

            objs = set_obj if isinstance(set_obj, list) else [set_obj]
            for obj in objs:
                node = self.nodes.setdefault(resolve(obj["uid"]), {})
                for key, value in obj.items():
                    if key == "uid":
                        continue
                    if isinstance(value, dict):
                        node[key] = resolve(value["uid"])
                    elif isinstance(value, list):
                        node.setdefault(key, []).extend(resolve(v["uid"]) for v in value)
                    else:
                        node[key] = value

        if del_nquads:
            for line in del_nquads.splitlines():
                self.nodes.pop(line.split()[0].strip("<>"), None)
        return uids

    def alter_schema(self, schema):
        self.schemas.append(schema)
        if self.alter_error is not None:
            raise self.alter_error


class FakeChatModel:
    name = "fake-model"

    def __init__(self, replies=None, error=None):
        self.replies = list(replies or [])
        self.error = error
        self.calls: List[Dict] = []

    def complete(self, messages, temperature):
        self.calls.append({"messages": [dict(m) for m in messages], "temperature": temperature})
        if self.error is not None:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return f"  reply {len(self.calls)}  \n"


class TickingClock:
    """Returns a new UTC instant, one second later, on every call."""

    def __init__(self, start=datetime.datetime(2025, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)):
        self.current = start

    def __call__(self):
        now = self.current
        self.current += datetime.timedelta(seconds=1)
        return now


@pytest.fixture
def settings():
    return Settings(
        dgraph_addr="fake:9080",
        model_api_key="test-key",
        temperature=0.7,
        default_system_prompt="You are a helpful assistant",
        serialize_sessions=True,
    )


@pytest.fixture
def store():
    return FakeGraphStore()


@pytest.fixture
def model():
    return FakeChatModel()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def repository(store, settings):
    return HistoryRepository(store, settings=settings)


@pytest.fixture
def conversation(repository, settings, model, clock):
    return Conversation(repository, settings, model_resolver=lambda _settings: model, clock=clock)
