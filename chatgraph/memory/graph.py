"""Graph store access for chat memory.

``GraphStore`` is the narrow interface the repository, schema provisioner and
probe depend on.  ``DgraphStore`` implements it over ``pydgraph``; tests
substitute an in-memory fake.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Optional, Protocol

import pydgraph

from chatgraph.utils.errors import GraphStoreError
from chatgraph.utils.logger import get_logger

logger = get_logger(__name__)


class GraphStore(Protocol):
    """Protocol for the graph store (Dgraph implementation)."""

    def query(self, query: str, variables: Optional[Dict[str, str]] = None) -> str:
        """Run a read-only DQL query and return the raw JSON document."""
        ...

    def mutate(
        self,
        set_obj: Any = None,
        del_nquads: Optional[str] = None,
        query: Optional[str] = None,
        variables: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        """Apply a JSON set and/or N-Quad delete in one committed transaction.

        When ``query`` is given the mutation runs as an upsert block and may
        reference the query's variables via ``uid(var)``.  Returns the uids
        assigned to blank nodes.
        """
        ...

    def alter_schema(self, schema: str) -> None:
        """Apply a schema definition. Idempotent."""
        ...


# ---------------------------------------------------------------------------
# Dgraph implementation
# ---------------------------------------------------------------------------


class DgraphStore:
    """``GraphStore`` backed by a pydgraph client.

    Every call runs in its own transaction which is always discarded
    afterwards; writes use ``commit_now`` so a batch is applied atomically
    or not at all.
    """

    def __init__(self, addr: str, api_key: Optional[str] = None, name: str = "default"):
        if api_key:
            self._stub = pydgraph.DgraphClientStub.from_cloud(addr, api_key)
        else:
            self._stub = pydgraph.DgraphClientStub(addr)
        self._client = pydgraph.DgraphClient(self._stub)
        self.name = name
        logger.info("Dgraph connection '%s' configured for %s", name, addr)

    @classmethod
    def from_settings(cls, settings) -> "DgraphStore":
        return cls(
            settings.dgraph_addr,
            api_key=settings.dgraph_api_key,
            name=settings.dgraph_connection_name,
        )

    def query(self, query: str, variables: Optional[Dict[str, str]] = None) -> str:
        txn = self._client.txn(read_only=True)
        try:
            response = txn.query(query, variables=variables)
        except Exception as exc:
            raise GraphStoreError(f"Dgraph query failed on '{self.name}': {exc}") from exc
        finally:
            txn.discard()
        raw = response.json
        return raw.decode("utf-8") if isinstance(raw, bytes) else raw

    def mutate(
        self,
        set_obj: Any = None,
        del_nquads: Optional[str] = None,
        query: Optional[str] = None,
        variables: Optional[Dict[str, str]] = None,
    ) -> Dict[str, str]:
        if set_obj is None and not del_nquads:
            raise ValueError("mutate() needs a set object or delete N-Quads")

        txn = self._client.txn()
        try:
            mutation = txn.create_mutation(set_obj=set_obj, del_nquads=del_nquads)
            request = txn.create_request(
                query=query,
                variables=variables,
                mutations=[mutation],
                commit_now=True,
            )
            response = txn.do_request(request)
        except Exception as exc:
            raise GraphStoreError(f"Dgraph mutation failed on '{self.name}': {exc}") from exc
        finally:
            txn.discard()
        return dict(response.uids)

    def alter_schema(self, schema: str) -> None:
        try:
            self._client.alter(pydgraph.Operation(schema=schema))
        except Exception as exc:
            raise GraphStoreError(f"Dgraph schema alteration failed on '{self.name}': {exc}") from exc

    def close(self) -> None:
        self._stub.close()


def dumps(payload: Any) -> str:
    """Compact JSON used when a payload is quoted in logs or errors."""
    return json.dumps(payload, default=str, separators=(",", ":"))
