"""
Exception types for chatgraph.

Fatal-to-turn errors (model resolution / invocation) propagate to the caller.
History errors are degraded-but-recoverable: the orchestrator logs them and
carries on.
"""
from typing import Any, Optional


class ChatGraphError(Exception):
    """Base exception for chatgraph errors."""
    pass


class GraphStoreError(ChatGraphError):
    """Transport-level failure talking to the graph database."""
    pass


class SessionError(ChatGraphError):
    """Base exception for failures tied to one chat session."""

    def __init__(self, message: str, session_id: str, payload: Optional[Any] = None):
        super().__init__(message)
        self.session_id = session_id
        self.payload = payload


class HistoryLoadError(SessionError):
    """Reading or parsing a session's history failed."""
    pass


class HistoryPersistError(SessionError):
    """Writing new messages for a session failed."""
    pass


class ModelResolutionError(ChatGraphError):
    """The configured chat model could not be resolved."""
    pass


class ModelInvocationError(ChatGraphError):
    """The chat model call failed or returned nothing usable."""
    pass


class SchemaError(ChatGraphError):
    pass


class GraphProbeError(ChatGraphError):
    pass
