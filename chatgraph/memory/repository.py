"""Chat history persistence on top of Dgraph.

Sessions are ``ChatSession`` nodes keyed by ``ChatSession.sessionID``;
messages are ``ChatMessage`` nodes carrying a ``ChatMessage.sessionRef``
scalar plus an ``in_session`` edge back to their session.  A session
materialises the first time a message is appended under its id.
"""
from __future__ import annotations

import json
from typing import Dict, Iterable, List

from pydantic import ValidationError

from chatgraph.memory.graph import DgraphStore, GraphStore, dumps
from chatgraph.memory.models import ChatMessage, ClearChatResult
from chatgraph.utils.errors import GraphStoreError, HistoryLoadError, HistoryPersistError
from chatgraph.utils.logger import get_logger

logger = get_logger(__name__)

# ---------------------------------------------------------------------------
# DQL
# ---------------------------------------------------------------------------

LOAD_HISTORY_QUERY = """
query getSessionMessages($sessionID: string) {
    messages(func: eq(ChatMessage.sessionRef, $sessionID), orderasc: ChatMessage.timestamp) @filter(type(ChatMessage)) {
        uid
        role: ChatMessage.role
        content: ChatMessage.content
        timestamp: ChatMessage.timestamp
        sessionRef: ChatMessage.sessionRef
        position: ChatMessage.position
    }
}
"""

FIND_SESSION_QUERY = """
query findSession($sessionID: string) {
    var(func: eq(ChatSession.sessionID, $sessionID), first: 1) @filter(type(ChatSession)) {
        session as uid
    }
}
"""

SESSION_RECORDS_QUERY = """
query sessionRecords($sessionID: string) {
    sessions(func: eq(ChatSession.sessionID, $sessionID)) @filter(type(ChatSession)) {
        uid
    }
    messages(func: eq(ChatMessage.sessionRef, $sessionID)) @filter(type(ChatMessage)) {
        uid
    }
}
"""

SESSION_VAR = "uid(session)"


class HistoryRepository:
    """Sole reader and writer of chat sessions and messages."""

    def __init__(self, store: GraphStore, settings=None):
        self.store = store
        self.settings = settings
        self.connection = getattr(settings, "dgraph_connection_name", None) or getattr(store, "name", "default")

    @classmethod
    def from_settings(cls, settings) -> "HistoryRepository":
        return cls(DgraphStore.from_settings(settings), settings=settings)

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load_history(self, session_id: str) -> List[ChatMessage]:
        """Return every stored message of ``session_id``, oldest first.

        An unknown session yields an empty list.  Store or parse failures
        raise :class:`HistoryLoadError`.
        """
        variables = {"$sessionID": session_id}
        try:
            raw = self.store.query(LOAD_HISTORY_QUERY, variables=variables)
        except GraphStoreError as exc:
            raise HistoryLoadError(
                f"Loading history failed for session {session_id}: {exc}", session_id
            ) from exc

        try:
            data = json.loads(raw) if raw else {}
            rows = data.get("messages")
            if rows is None:
                logger.debug("[%s] No 'messages' block for session %s. JSON: %s", self.connection, session_id, raw)
                rows = []
            if not isinstance(rows, list):
                raise TypeError(f"'messages' is a {type(rows).__name__}, expected a list")
            messages = [self._parse_row(row, session_id) for row in rows]
        except (ValueError, TypeError, AttributeError, ValidationError) as exc:
            raise HistoryLoadError(
                f"Failed to parse Dgraph response for session {session_id}: {exc}. JSON: {raw}",
                session_id,
                payload=raw,
            ) from exc

        # The store is asked for ascending order already; a stable sort keeps
        # us honest if a read path does not honour it.
        messages.sort(key=ChatMessage.sort_key)
        return messages

    @staticmethod
    def _parse_row(row: Dict, session_id: str) -> ChatMessage:
        row = dict(row)
        if row.get("sessionRef") is None:
            row["sessionRef"] = session_id
        if row.get("position") is None:
            row["position"] = 0
        return ChatMessage.model_validate(row)

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def append_messages(self, session_id: str, messages: Iterable[ChatMessage]) -> Dict[str, str]:
        """Persist ``messages`` under ``session_id`` in a single upsert.

        The session node is matched by its id (or created), each message gets
        a new node linked both ways to it.  Returns the uids Dgraph assigned
        to the new message nodes, keyed by blank-node name.
        """
        messages = list(messages)
        if not messages:
            return {}

        payload = self.build_set_payload(session_id, messages)
        try:
            uids = self.store.mutate(
                set_obj=payload,
                query=FIND_SESSION_QUERY,
                variables={"$sessionID": session_id},
            )
        except GraphStoreError as exc:
            raise HistoryPersistError(
                f"Persisting messages failed for session {session_id}: {exc}. Payload: {dumps(payload)}",
                session_id,
                payload=payload,
            ) from exc

        uids = uids or {}
        for index, message in enumerate(messages):
            message.id = uids.get(f"msg{index}", message.id)
            message.session_ref = session_id
        logger.info("[%s] Stored %d message(s) for session %s", self.connection, len(messages), session_id)
        return uids

    @staticmethod
    def build_set_payload(session_id: str, messages: List[ChatMessage]) -> List[Dict]:
        """Return the JSON set mutation for one batch of messages."""
        session_obj: Dict = {
            "uid": SESSION_VAR,
            "dgraph.type": "ChatSession",
            "ChatSession.sessionID": session_id,
            "ChatSession.has_message": [],
        }
        payload: List[Dict] = [session_obj]

        for index, message in enumerate(messages):
            if not message.role or message.content is None or message.timestamp is None:
                raise ValueError(
                    f"Message {index} for session {session_id} is missing role, content or timestamp"
                )
            blank = f"_:msg{index}"
            payload.append(
                {
                    "uid": blank,
                    "dgraph.type": "ChatMessage",
                    "ChatMessage.role": message.role,
                    "ChatMessage.content": message.content,
                    "ChatMessage.timestamp": message.timestamp.isoformat(timespec="microseconds"),
                    "ChatMessage.sessionRef": session_id,
                    "ChatMessage.position": index,
                    "in_session": {"uid": SESSION_VAR},
                }
            )
            session_obj["ChatSession.has_message"].append({"uid": blank})
        return payload

    # ------------------------------------------------------------------
    # Clear
    # ------------------------------------------------------------------

    def clear_session(self, session_id: str) -> ClearChatResult:
        """Delete the session node and all of its messages.

        Never raises: failures come back as ``success=False``.  A session
        with nothing stored counts as already clear.
        """
        variables = {"$sessionID": session_id}
        try:
            raw = self.store.query(SESSION_RECORDS_QUERY, variables=variables)
            data = json.loads(raw) if raw else {}
            session_uids = [row["uid"] for row in data.get("sessions") or []]
            message_uids = [row["uid"] for row in data.get("messages") or []]
        except Exception as exc:
            logger.error(
                "[%s] Looking up records to clear failed for session %s: %s", self.connection, session_id, exc
            )
            return ClearChatResult(
                success=False,
                message=f"Failed to look up chat history for session {session_id}: {exc}",
            )

        uids = session_uids + message_uids
        if not uids:
            return ClearChatResult(
                success=True,
                message=f"No chat history found for session {session_id}; nothing to clear.",
            )

        del_nquads = "\n".join(f"<{uid}> * * ." for uid in uids)
        try:
            self.store.mutate(del_nquads=del_nquads)
        except Exception as exc:
            logger.error("[%s] Clearing chat failed for session %s: %s", self.connection, session_id, exc)
            return ClearChatResult(
                success=False,
                message=f"Failed to clear chat history from Dgraph: {exc}",
            )

        count = len(message_uids)
        logger.info(
            "[%s] Cleared session %s: %d message(s), %d session node(s)",
            self.connection,
            session_id,
            count,
            len(session_uids),
        )
        return ClearChatResult(
            success=True,
            message=f"Cleared {count} message(s) for session {session_id}.",
            deleted_messages=count,
        )

