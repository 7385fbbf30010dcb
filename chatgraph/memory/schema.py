"""Dgraph schema for chat memory.

Run once per deployment:

    chatgraph-schema

Applying it again converges to the same schema.
"""
import sys

from chatgraph.memory.graph import GraphStore
from chatgraph.utils.errors import GraphStoreError, SchemaError
from chatgraph.utils.logger import get_logger

logger = get_logger(__name__)

CHAT_SCHEMA = """
ChatSession.sessionID: string @index(exact) .
ChatSession.has_message: [uid] @reverse .

ChatMessage.role: string .
ChatMessage.content: string .
ChatMessage.timestamp: datetime @index(hour) .
ChatMessage.sessionRef: string @index(exact) .
ChatMessage.position: int .
in_session: uid @reverse .

TestNode.name: string .
TestNode.timestamp: datetime .
TestNode.sessionLink: string @index(exact) .

type ChatSession {
    ChatSession.sessionID
    ChatSession.has_message
}

type ChatMessage {
    ChatMessage.role
    ChatMessage.content
    ChatMessage.timestamp
    ChatMessage.sessionRef
    ChatMessage.position
    in_session
}

type TestNode {
    TestNode.name
    TestNode.timestamp
    TestNode.sessionLink
}
"""


def apply_schema(store: GraphStore) -> str:
    """Declare the predicates, indexes and types chat memory relies on."""
    try:
        store.alter_schema(CHAT_SCHEMA)
    except GraphStoreError as exc:
        raise SchemaError(f"failed to alter Dgraph schema: {exc}") from exc
    logger.info("Dgraph schema applied")
    return "Dgraph schema applied successfully."


def main() -> int:
    from config import get_settings
    from chatgraph.memory.graph import DgraphStore

    store = DgraphStore.from_settings(get_settings())
    try:
        print(apply_schema(store))
    except SchemaError as exc:
        logger.error(str(exc))
        return 1
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
