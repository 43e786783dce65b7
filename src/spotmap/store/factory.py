from __future__ import annotations

from spotmap.config.settings import Settings
from spotmap.store.base import DocumentStore
from spotmap.store.memory import InMemoryDocumentStore


def build_store(settings: Settings) -> DocumentStore:
    """Build the configured document store backend."""
    if settings.store.backend == "firestore":
        # Imported here so the memory backend does not require firebase-admin.
        from spotmap.store.firestore import FirestoreDocumentStore

        return FirestoreDocumentStore(settings.store)
    return InMemoryDocumentStore()
