from __future__ import annotations

"""FastAPI host for the chatgraph handlers.

Run with:
    uvicorn chatgraph.backend.app:app --reload --port 8000
or:
    chatgraph-serve

Env vars required:
    CHAT_MODEL_API_KEY (or OPENAI_API_KEY)
    DGRAPH_ADDR
"""

import os
from functools import lru_cache
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from loguru import logger
from pydantic import BaseModel, Field

from config import get_settings
from chatgraph.llm.conversation import ChatReply, Conversation
from chatgraph.memory.graph import DgraphStore, GraphStore
from chatgraph.memory.models import ClearChatResult
from chatgraph.memory.probe import probe_graph_store
from chatgraph.memory.repository import HistoryRepository
from chatgraph.memory.schema import apply_schema
from chatgraph.utils.errors import (
    GraphProbeError,
    ModelInvocationError,
    ModelResolutionError,
    SchemaError,
)

app = FastAPI(title="chatgraph", version="0.1.0")

# ---------------------------------------------------------------------------
# Pydantic Schemas
# ---------------------------------------------------------------------------


class ChatRequest(BaseModel):
    session_id: str = Field(description="Caller-chosen conversation id, e.g. a client generated UUID.")
    message: str


class ClearChatRequest(BaseModel):
    session_id: str


class AdminResult(BaseModel):
    result: str


class Greeting(BaseModel):
    greeting: str


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def get_graph_store() -> GraphStore:
    return DgraphStore.from_settings(get_settings())


@lru_cache(maxsize=1)
def get_conversation() -> Conversation:
    settings = get_settings()
    repository = HistoryRepository(get_graph_store(), settings=settings)
    return Conversation(repository, settings)


def get_repository(conversation: Conversation = Depends(get_conversation)) -> HistoryRepository:
    return conversation.repository


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def say_hello(name: Optional[str] = None) -> str:
    return f"Hello, {name if name is not None else 'World'}!"


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.post("/chat", response_model=ChatReply)
def chat(req: ChatRequest, conversation: Conversation = Depends(get_conversation)):
    try:
        return conversation.chat(req.session_id, req.message)
    except ModelResolutionError as e:
        logger.error("Model resolution failed for session {}: {}", req.session_id, e)
        raise HTTPException(status_code=500, detail=str(e))
    except ModelInvocationError as e:
        logger.error("Model invocation failed for session {}: {}", req.session_id, e)
        raise HTTPException(status_code=502, detail=str(e))


@app.post("/chat/clear", response_model=ClearChatResult)
def clear_chat(req: ClearChatRequest, repository: HistoryRepository = Depends(get_repository)):
    result = repository.clear_session(req.session_id)
    if not result.success:
        logger.warning("Clearing session {} failed: {}", req.session_id, result.message)
    return result


@app.post("/admin/schema", response_model=AdminResult)
def apply_dgraph_schema(store: GraphStore = Depends(get_graph_store)):
    try:
        return AdminResult(result=apply_schema(store))
    except SchemaError as e:
        logger.error("Schema alteration failed: {}", e)
        raise HTTPException(status_code=500, detail=str(e))


@app.post("/admin/probe", response_model=AdminResult)
def test_dgraph_interaction(store: GraphStore = Depends(get_graph_store)):
    try:
        return AdminResult(result=probe_graph_store(store))
    except GraphProbeError as e:
        logger.error("Dgraph probe failed: {}", e)
        raise HTTPException(status_code=500, detail=str(e))


@app.get("/hello", response_model=Greeting)
def hello(name: Optional[str] = None):
    return Greeting(greeting=say_hello(name))


@app.get("/health")
def health():
    return {"status": "ok"}


def main() -> None:
    import uvicorn

    uvicorn.run(
        "chatgraph.backend.app:app",
        host=os.getenv("CHATGRAPH_HOST", "127.0.0.1"),
        port=int(os.getenv("CHATGRAPH_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
