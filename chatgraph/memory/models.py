import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class ChatMessage(BaseModel):
    """A single chat turn (system, user or assistant) as stored in Dgraph.

    Attributes
    ----------
    id
        Dgraph uid, ``None`` until the message has been persisted.
    role
        "system", "user" or "assistant" – mirrors OpenAI ChatCompletion roles
        so that the stored turns can be reused verbatim in prompts.  Kept as a
        plain string so unexpected values read back from the store survive
        until the prompt builder decides what to do with them.
    content
        The natural-language message.
    timestamp
        Instant (UTC) the turn was captured.  Primary ordering key.
    session_ref
        The ``session_id`` this message belongs to.
    position
        Index inside the batch that persisted the message; breaks ties
        between messages of the same turn, which share one timestamp.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="uid")
    role: str
    content: str
    timestamp: datetime.datetime
    session_ref: str = Field(default="", alias="sessionRef")
    position: int = 0

    @field_validator("timestamp")
    @classmethod
    def _normalise_utc(cls, value: datetime.datetime) -> datetime.datetime:
        # Naive timestamps are taken to be UTC already.
        if value.tzinfo is None:
            return value.replace(tzinfo=datetime.timezone.utc)
        return value.astimezone(datetime.timezone.utc)

    def sort_key(self):
        return (self.timestamp, self.position)

    def as_prompt(self) -> dict:
        return {"role": self.role, "content": self.content}


class ClearChatResult(BaseModel):
    success: bool
    message: str
    deleted_messages: int = 0
