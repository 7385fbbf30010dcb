"""Prompt construction helpers.

All LLM-facing message lists are assembled via this module so the
role-tagged history maps onto chat completion messages in one place.
"""
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from chatgraph.memory.models import ChatMessage, Role
from chatgraph.utils.logger import get_logger

logger = get_logger(__name__)

KNOWN_ROLES = frozenset(role.value for role in Role)


def build_messages(
    history: Iterable[ChatMessage],
    *,
    session_id: Optional[str] = None,
) -> List[Dict[str, str]]:
    """Return a list of ChatCompletion-style messages for ``history``.

    Parameters
    ----------
    history
        The in-memory conversation, oldest first, including the new user turn.
    session_id
        Only used to make the warning about dropped messages traceable.

    Messages whose role is not system/user/assistant are left out and
    reported with a warning.
    """
    messages: List[Dict[str, str]] = []
    for msg in history:
        if msg.role not in KNOWN_ROLES:
            logger.warning(
                "Dropping message with unknown role %r from prompt (session=%s, uid=%s)",
                msg.role,
                session_id or msg.session_ref,
                msg.id,
            )
            continue
        messages.append(msg.as_prompt())
    return messages


def describe_history(history: Iterable[ChatMessage], width: int = 80) -> str:
    """One line per message, used for debug logging of the effective history."""
    lines = []
    for msg in history:
        content = msg.content if len(msg.content) <= width else msg.content[: width - 3] + "..."
        lines.append(f"  - Role: {msg.role}, Content: {content}, Timestamp: {msg.timestamp.isoformat()}")
    return "\n".join(lines)
