"""Multi-turn chat on top of a stateless chat completion API.

``Conversation.chat`` loads the session's stored turns, appends the new user
message, asks the model for a reply and stores both new messages.  Model
problems fail the turn; storage problems only cost memory:

* history cannot be loaded  -> treat the session as new
* new turn cannot be stored -> reply anyway, next turn will not see it
"""
from __future__ import annotations

import contextlib
import datetime
from typing import Callable, List, Optional

from pydantic import BaseModel

from chatgraph.llm.client import ChatModel, resolve_model
from chatgraph.llm.prompt_builder import build_messages, describe_history
from chatgraph.memory.locks import SessionLocks
from chatgraph.memory.models import ChatMessage, Role, utcnow
from chatgraph.memory.repository import HistoryRepository
from chatgraph.utils.errors import HistoryLoadError, HistoryPersistError, ModelInvocationError
from chatgraph.utils.logger import get_logger

logger = get_logger(__name__)


class ChatReply(BaseModel):
    content: str


class Conversation:
    """Conversation orchestrator.

    Parameters
    ----------
    repository
        Where turns are loaded from and appended to.
    settings
        ``config.Settings``; supplies the model, temperature and default
        system prompt.
    model_resolver
        Maps settings to a :class:`ChatModel`. Defaults to
        :func:`chatgraph.llm.client.resolve_model`.
    clock
        Returns the current UTC instant; injectable for tests.
    locks
        Per-session lock registry. A fresh one is created when
        ``settings.serialize_sessions`` is set and none is given.
    """

    def __init__(
        self,
        repository: HistoryRepository,
        settings,
        model_resolver: Callable[..., ChatModel] = resolve_model,
        clock: Callable[[], datetime.datetime] = utcnow,
        locks: Optional[SessionLocks] = None,
    ):
        self.repository = repository
        self.settings = settings
        self.model_resolver = model_resolver
        self.clock = clock
        if locks is None and settings.serialize_sessions:
            locks = SessionLocks()
        self.locks = locks

    def chat(self, session_id: str, user_message: str) -> ChatReply:
        model = self.model_resolver(self.settings)

        with self._session_lock(session_id):
            # One instant for both messages of the turn.
            turn_timestamp = self.clock()

            history = self._load_history(session_id)
            if not history:
                history = [
                    ChatMessage(
                        role=Role.SYSTEM.value,
                        content=self.settings.default_system_prompt,
                        timestamp=turn_timestamp,
                        session_ref=session_id,
                    )
                ]

            user_msg = ChatMessage(
                role=Role.USER.value,
                content=user_message,
                timestamp=turn_timestamp,
                session_ref=session_id,
                position=0,
            )
            history.append(user_msg)

            messages = build_messages(history, session_id=session_id)
            logger.debug(
                "Effective message history being sent for session %s:\n%s",
                session_id,
                describe_history(history),
            )

            content = self._invoke(model, messages, session_id)

            assistant_msg = ChatMessage(
                role=Role.ASSISTANT.value,
                content=content,
                timestamp=turn_timestamp,
                session_ref=session_id,
                position=1,
            )
            try:
                self.repository.append_messages(session_id, [user_msg, assistant_msg])
            except HistoryPersistError as exc:
                logger.error(
                    "Error saving new messages for session %s: %s. Subsequent history may be incomplete.",
                    session_id,
                    exc,
                )

        return ChatReply(content=content)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _session_lock(self, session_id: str):
        if self.locks is None:
            return contextlib.nullcontext()
        return self.locks.hold(session_id)

    def _load_history(self, session_id: str) -> List[ChatMessage]:
        try:
            return self.repository.load_history(session_id)
        except HistoryLoadError as exc:
            logger.warning(
                "Error loading history for session %s: %s. Treating as new session.",
                session_id,
                exc,
            )
            return []

    def _invoke(self, model: ChatModel, messages, session_id: str) -> str:
        try:
            raw = model.complete(messages, temperature=self.settings.temperature)
        except ModelInvocationError:
            raise
        except Exception as exc:
            raise ModelInvocationError(f"error invoking model for session {session_id}: {exc}") from exc
        return (raw or "").strip()
