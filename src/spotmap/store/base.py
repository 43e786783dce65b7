"""
Document store contract.

The core never talks to a database SDK directly. It consumes this small surface:
- get-by-id
- equality/range filter queries with an orderable cursor for pagination
- batched multi-document writes (committed atomically)
- a server-timestamp sentinel

Backends: `spotmap.store.memory.InMemoryDocumentStore` (tests, local runs) and
`spotmap.store.firestore.FirestoreDocumentStore`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Protocol, Sequence

FilterOp = Literal["==", "!=", "<", "<=", ">", ">=", "in"]

RANGE_OPS = frozenset({"<", "<=", ">", ">="})

# Pseudo field name for ordering/paginating by document id.
DOCUMENT_ID = "__name__"


class StoreError(Exception):
    """Backend failure (network, permission, quota, bad query)."""


class DocumentNotFound(StoreError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"{collection}/{doc_id} not found")
        self.collection = collection
        self.doc_id = doc_id


class _ServerTimestamp:
    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP: Any = _ServerTimestamp()


@dataclass(frozen=True)
class Filter:
    field: str
    op: FilterOp
    value: Any


@dataclass(frozen=True)
class Document:
    id: str
    data: dict[str, Any] = field(default_factory=dict)


class WriteBatch(Protocol):
    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    def delete(self, collection: str, doc_id: str) -> None: ...

    def __len__(self) -> int: ...

    def commit(self) -> None:
        """Apply every staged write, or none of them."""
        ...


class DocumentStore(Protocol):
    def get(self, collection: str, doc_id: str) -> Document | None: ...

    def query(
        self,
        collection: str,
        *,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
        start_after: str | None = None,
        limit: int | None = None,
    ) -> list[Document]:
        """Run a filtered query.

        `start_after` is a document id cursor and requires `order_by=DOCUMENT_ID`.
        Like Firestore, range filters may target a single field only.
        """
        ...

    def add(self, collection: str, data: dict[str, Any]) -> str: ...

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None: ...

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        """Merge `data` into an existing document; raises `DocumentNotFound` if missing."""
        ...

    def delete(self, collection: str, doc_id: str) -> None: ...

    def batch(self) -> WriteBatch: ...


def check_single_range_field(filters: Sequence[Filter]) -> None:
    """Reject queries with range filters on more than one field."""
    fields = {f.field for f in filters if f.op in RANGE_OPS}
    if len(fields) > 1:
        raise StoreError(
            f"Range filters on multiple fields are not supported: {sorted(fields)}"
        )
