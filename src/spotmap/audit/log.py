"""
Append-only audit log.

Writers never raise: a failed audit write is logged and swallowed so the
moderated action that triggered it still succeeds. Readers return an empty
list on backend errors.
"""

from __future__ import annotations

import logging
from typing import Any

from spotmap.domain.models import Actor, AuditAction, AuditLogEntry, MergeOptions
from spotmap.store.base import SERVER_TIMESTAMP, DocumentStore, Filter, StoreError
from spotmap.store.codec import audit_entry_from_document, audit_entry_to_document

logger = logging.getLogger(__name__)


class AuditLog:
    def __init__(self, store: DocumentStore, *, collection: str = "auditLog", default_limit: int = 100):
        self._store = store
        self._collection = collection
        self._default_limit = default_limit

    def _append(self, entry: AuditLogEntry) -> str | None:
        payload = audit_entry_to_document(entry)
        payload["timestamp"] = SERVER_TIMESTAMP
        try:
            return self._store.add(self._collection, payload)
        except StoreError as exc:
            logger.warning("Audit write failed (%s on %s): %s", entry.action.value, entry.spot_id, exc)
            return None

    def log_spot_edit(self, spot_id: str, actor: Actor, changes: dict[str, Any]) -> str | None:
        return self._append(
            AuditLogEntry(
                action=AuditAction.EDIT,
                spot_id=spot_id,
                user_id=actor.user_id,
                user_name=actor.user_name,
                changes=changes,
            )
        )

    def log_marked_duplicate(
        self, spot_id: str, original_spot_id: str, actor: Actor, options: MergeOptions
    ) -> str | None:
        metadata = {
            "originalSpotId": original_spot_id,
            "transferPhotos": options.transfer_photos,
            "transferYoutubeLinks": options.transfer_youtube_links,
            "overwriteName": options.overwrite_name,
            "overwriteDescription": options.overwrite_description,
            "overwriteLocation": options.overwrite_location,
            "overwriteSpotAttributes": options.overwrite_spot_attributes,
        }
        return self._append(
            AuditLogEntry(
                action=AuditAction.MARKED_DUPLICATE,
                spot_id=spot_id,
                user_id=actor.user_id,
                user_name=actor.user_name,
                metadata=metadata,
            )
        )

    def log_spot_hidden(self, spot_id: str, hidden: bool, actor: Actor) -> str | None:
        return self._append(
            AuditLogEntry(
                action=AuditAction.HIDDEN if hidden else AuditAction.UNHIDDEN,
                spot_id=spot_id,
                user_id=actor.user_id,
                user_name=actor.user_name,
                metadata={"hidden": hidden},
            )
        )

    def log_report_status_change(
        self, report_id: str, spot_id: str, old_status: str, new_status: str, actor: Actor
    ) -> str | None:
        return self._append(
            AuditLogEntry(
                action=AuditAction.REPORT_STATUS_CHANGE,
                spot_id=spot_id,
                report_id=report_id,
                user_id=actor.user_id,
                user_name=actor.user_name,
                changes={"status": {"from": old_status, "to": new_status}},
            )
        )

    def log_spot_delete(self, spot_id: str, actor: Actor, metadata: dict[str, Any] | None = None) -> str | None:
        return self._append(
            AuditLogEntry(
                action=AuditAction.DELETE,
                spot_id=spot_id,
                user_id=actor.user_id,
                user_name=actor.user_name,
                metadata=metadata,
            )
        )

    def _read(self, field: str, value: str, limit: int | None) -> list[AuditLogEntry]:
        try:
            docs = self._store.query(
                self._collection,
                filters=[Filter(field, "==", value)],
                order_by="timestamp",
                descending=True,
                limit=limit or self._default_limit,
            )
        except StoreError as exc:
            logger.warning("Audit read failed (%s=%s): %s", field, value, exc)
            return []

        out: list[AuditLogEntry] = []
        for doc in docs:
            try:
                out.append(audit_entry_from_document(doc))
            except ValueError as exc:
                logger.warning("Skipping audit entry %s: %s", doc.id, exc)
        return out

    def get_for_spot(self, spot_id: str, *, limit: int | None = None) -> list[AuditLogEntry]:
        """Entries for one spot, newest first."""
        return self._read("spotId", spot_id, limit)

    def get_for_user(self, user_id: str, *, limit: int | None = None) -> list[AuditLogEntry]:
        """Entries by one actor, newest first."""
        return self._read("userId", user_id, limit)
