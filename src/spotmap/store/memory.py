"""
In-memory document store.

Mirrors the Firestore behaviors the core depends on so tests exercise the same
query shapes as production:
- a filter never matches a document that lacks the field (even `== None`)
- range filters may target one field per query
- batches apply all staged writes or none
"""

from __future__ import annotations

import copy
import threading
import uuid
from typing import Any, Callable, Sequence

from spotmap.core.time import utc_now
from spotmap.store.base import (
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    Document,
    DocumentNotFound,
    Filter,
    StoreError,
    check_single_range_field,
)

_MISSING = object()


def _resolve_timestamps(data: dict[str, Any]) -> dict[str, Any]:
    now = utc_now()
    return {k: (now if v is SERVER_TIMESTAMP else copy.deepcopy(v)) for k, v in data.items()}


def _matches(doc_id: str, data: dict[str, Any], f: Filter) -> bool:
    value = doc_id if f.field == DOCUMENT_ID else data.get(f.field, _MISSING)
    if value is _MISSING:
        return False
    if f.op == "==":
        return value == f.value
    if f.op == "!=":
        return value != f.value
    if f.op == "in":
        return value in f.value
    if value is None or f.value is None:
        return False
    try:
        if f.op == "<":
            return value < f.value
        if f.op == "<=":
            return value <= f.value
        if f.op == ">":
            return value > f.value
        if f.op == ">=":
            return value >= f.value
    except TypeError:
        return False
    raise StoreError(f"Unsupported filter operator: {f.op}")


class InMemoryWriteBatch:
    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self._ops: list[tuple[str, str, str, dict[str, Any] | None]] = []

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._ops.append(("set", collection, doc_id, dict(data)))

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._ops.append(("update", collection, doc_id, dict(data)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._ops.append(("delete", collection, doc_id, None))

    def __len__(self) -> int:
        return len(self._ops)

    def commit(self) -> None:
        self._store._apply_batch(self._ops)
        self._ops = []


class InMemoryDocumentStore:
    """Thread-safe dict-of-dicts store keyed by (collection, doc_id)."""

    def __init__(self, seed: dict[str, dict[str, dict[str, Any]]] | None = None):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()
        # Test hook: called before every operation with its name; may raise to simulate outages.
        self.fault: Callable[[str], None] | None = None
        for collection, docs in (seed or {}).items():
            for doc_id, data in docs.items():
                self.set(collection, doc_id, data)

    def _check_fault(self, op: str) -> None:
        if self.fault is not None:
            self.fault(op)

    def get(self, collection: str, doc_id: str) -> Document | None:
        self._check_fault("get")
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            if data is None:
                return None
            return Document(id=doc_id, data=copy.deepcopy(data))

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
        self._check_fault("query")
        check_single_range_field(filters)
        if start_after is not None and order_by != DOCUMENT_ID:
            raise StoreError("start_after cursors require order_by=DOCUMENT_ID")

        with self._lock:
            items = [
                (doc_id, data)
                for doc_id, data in self._collections.get(collection, {}).items()
                if all(_matches(doc_id, data, f) for f in filters)
            ]

            if order_by == DOCUMENT_ID:
                items.sort(key=lambda kv: kv[0], reverse=descending)
            elif order_by is not None:
                # Firestore drops documents without the order-by field.
                items = [kv for kv in items if kv[1].get(order_by) is not None]
                items.sort(key=lambda kv: kv[1][order_by], reverse=descending)

            if start_after is not None:
                if descending:
                    items = [kv for kv in items if kv[0] < start_after]
                else:
                    items = [kv for kv in items if kv[0] > start_after]
            if limit is not None:
                items = items[: int(limit)]
            return [Document(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in items]

    def add(self, collection: str, data: dict[str, Any]) -> str:
        self._check_fault("add")
        doc_id = uuid.uuid4().hex[:20]
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = _resolve_timestamps(data)
        return doc_id

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._check_fault("set")
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = _resolve_timestamps(data)

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._check_fault("update")
        with self._lock:
            existing = self._collections.get(collection, {}).get(doc_id)
            if existing is None:
                raise DocumentNotFound(collection, doc_id)
            existing.update(_resolve_timestamps(data))

    def delete(self, collection: str, doc_id: str) -> None:
        self._check_fault("delete")
        with self._lock:
            self._collections.get(collection, {}).pop(doc_id, None)

    def batch(self) -> InMemoryWriteBatch:
        return InMemoryWriteBatch(self)

    def _apply_batch(self, ops: list[tuple[str, str, str, dict[str, Any] | None]]) -> None:
        self._check_fault("commit")
        with self._lock:
            staged = copy.deepcopy(self._collections)
            for kind, collection, doc_id, data in ops:
                docs = staged.setdefault(collection, {})
                if kind == "set":
                    docs[doc_id] = _resolve_timestamps(data or {})
                elif kind == "update":
                    if doc_id not in docs:
                        raise DocumentNotFound(collection, doc_id)
                    docs[doc_id].update(_resolve_timestamps(data or {}))
                else:
                    docs.pop(doc_id, None)
            self._collections = staged

    def raw(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return the stored mapping (including missing-vs-null distinctions) for inspection."""
        with self._lock:
            data = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(data) if data is not None else None
