"""
Firestore-backed document store (firebase-admin).

Install with the `firestore` extra. Credentials come from a service-account JSON
(`store.credentials_path`) or, when unset, Application Default Credentials.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as gexc
from google.cloud.firestore_v1.base_query import FieldFilter
from google.cloud.firestore_v1.field_path import FieldPath

from spotmap.config.settings import StoreSettings
from spotmap.core.env import resolve_project_path
from spotmap.store.base import (
    DOCUMENT_ID,
    SERVER_TIMESTAMP,
    Document,
    DocumentNotFound,
    Filter,
    StoreError,
    check_single_range_field,
)

logger = logging.getLogger(__name__)

_APP_NAME = "spotmap"


def _to_firestore(data: dict[str, Any]) -> dict[str, Any]:
    return {k: (firestore.SERVER_TIMESTAMP if v is SERVER_TIMESTAMP else v) for k, v in data.items()}


def _get_app(settings: StoreSettings) -> firebase_admin.App:
    try:
        return firebase_admin.get_app(_APP_NAME)
    except ValueError:
        pass
    cred = (
        credentials.Certificate(str(resolve_project_path(settings.credentials_path)))
        if settings.credentials_path
        else credentials.ApplicationDefault()
    )
    options = {"projectId": settings.project_id} if settings.project_id else None
    return firebase_admin.initialize_app(cred, options, name=_APP_NAME)


class FirestoreWriteBatch:
    def __init__(self, client: Any):
        self._client = client
        self._batch = client.batch()
        self._count = 0

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._batch.set(self._client.collection(collection).document(doc_id), _to_firestore(data))
        self._count += 1

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        self._batch.update(self._client.collection(collection).document(doc_id), _to_firestore(data))
        self._count += 1

    def delete(self, collection: str, doc_id: str) -> None:
        self._batch.delete(self._client.collection(collection).document(doc_id))
        self._count += 1

    def __len__(self) -> int:
        return self._count

    def commit(self) -> None:
        try:
            self._batch.commit()
        except gexc.GoogleAPICallError as exc:
            raise StoreError(f"Batch commit failed: {exc}") from exc
        self._batch = self._client.batch()
        self._count = 0


class FirestoreDocumentStore:
    """`DocumentStore` implementation on top of `google.cloud.firestore.Client`."""

    def __init__(self, settings: StoreSettings, client: Any | None = None):
        self._client = client if client is not None else firestore.client(app=_get_app(settings))

    def get(self, collection: str, doc_id: str) -> Document | None:
        try:
            snap = self._client.collection(collection).document(doc_id).get()
        except gexc.GoogleAPICallError as exc:
            raise StoreError(f"get {collection}/{doc_id} failed: {exc}") from exc
        if not snap.exists:
            return None
        return Document(id=snap.id, data=snap.to_dict() or {})

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
        check_single_range_field(filters)
        col = self._client.collection(collection)
        q: Any = col
        for f in filters:
            field_path = FieldPath.document_id() if f.field == DOCUMENT_ID else f.field
            q = q.where(filter=FieldFilter(field_path, f.op, f.value))
        direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
        if order_by == DOCUMENT_ID:
            q = q.order_by(FieldPath.document_id(), direction=direction)
        elif order_by is not None:
            q = q.order_by(order_by, direction=direction)
        if start_after is not None and order_by != DOCUMENT_ID:
            raise StoreError("start_after cursors require order_by=DOCUMENT_ID")
        try:
            if start_after is not None:
                q = q.start_after(col.document(start_after).get())
            if limit is not None:
                q = q.limit(int(limit))
            return [Document(id=snap.id, data=snap.to_dict() or {}) for snap in q.stream()]
        except gexc.GoogleAPICallError as exc:
            raise StoreError(f"query on {collection} failed: {exc}") from exc

    def add(self, collection: str, data: dict[str, Any]) -> str:
        try:
            _, ref = self._client.collection(collection).add(_to_firestore(data))
        except gexc.GoogleAPICallError as exc:
            raise StoreError(f"add to {collection} failed: {exc}") from exc
        return ref.id

    def set(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            self._client.collection(collection).document(doc_id).set(_to_firestore(data))
        except gexc.GoogleAPICallError as exc:
            raise StoreError(f"set {collection}/{doc_id} failed: {exc}") from exc

    def update(self, collection: str, doc_id: str, data: dict[str, Any]) -> None:
        try:
            self._client.collection(collection).document(doc_id).update(_to_firestore(data))
        except gexc.NotFound as exc:
            raise DocumentNotFound(collection, doc_id) from exc
        except gexc.GoogleAPICallError as exc:
            raise StoreError(f"update {collection}/{doc_id} failed: {exc}") from exc

    def delete(self, collection: str, doc_id: str) -> None:
        try:
            self._client.collection(collection).document(doc_id).delete()
        except gexc.GoogleAPICallError as exc:
            raise StoreError(f"delete {collection}/{doc_id} failed: {exc}") from exc

    def batch(self) -> FirestoreWriteBatch:
        return FirestoreWriteBatch(self._client)
