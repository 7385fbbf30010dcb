"""Round-trip check against the graph store: write a test node, read it back."""
import json
from typing import Any, Dict, List

from chatgraph.memory.graph import GraphStore, dumps
from chatgraph.memory.models import utcnow
from chatgraph.utils.errors import GraphProbeError, GraphStoreError
from chatgraph.utils.logger import get_logger

logger = get_logger(__name__)

PROBE_SESSION_LINK = "test-session-dgraph-debug"

PROBE_QUERY = """
query getTestNode($testID: string) {
    testNodes(func: eq(TestNode.sessionLink, $testID)) {
        uid
        name: TestNode.name
        timestamp: TestNode.timestamp
        session: TestNode.sessionLink
    }
}
"""


def probe_graph_store(store: GraphStore) -> str:
    test_node = {
        "uid": "_:testnode",
        "dgraph.type": "TestNode",
        "TestNode.name": "Dgraph Test Entry",
        "TestNode.timestamp": utcnow().isoformat(timespec="microseconds"),
        "TestNode.sessionLink": PROBE_SESSION_LINK,
    }

    logger.info("Attempting to execute test mutation: %s", dumps([test_node]))
    try:
        uids = store.mutate(set_obj=[test_node])
    except GraphStoreError as exc:
        raise GraphProbeError(f"test mutation failed: {exc}. Payload: {dumps([test_node])}") from exc
    logger.info("Test mutation assigned uids: %s", uids)

    try:
        raw = store.query(PROBE_QUERY, variables={"$testID": PROBE_SESSION_LINK})
    except GraphStoreError as exc:
        raise GraphProbeError(f"test query failed: {exc}") from exc
    logger.info("Test query JSON response: %s", raw)

    try:
        nodes: List[Dict[str, Any]] = json.loads(raw).get("testNodes") or []
    except (ValueError, AttributeError) as exc:
        raise GraphProbeError(f"failed to parse test query response: {exc}. JSON: {raw}") from exc

    if not nodes:
        raise GraphProbeError(
            f"no test nodes found for sessionLink {PROBE_SESSION_LINK}; "
            "the mutation may have failed silently or the query is incorrect"
        )
    return f"Dgraph test successful! Found test node: {nodes[0]}"
