from datetime import datetime, timezone

from spotmap.audit.log import AuditLog
from spotmap.domain.models import Actor, AuditAction
from spotmap.store.base import StoreError
from spotmap.store.memory import InMemoryDocumentStore


def _at(day: int) -> datetime:
    return datetime(2025, 1, day, tzinfo=timezone.utc)


def test_reads_newest_first_and_skip_unknown_actions():
    store = InMemoryDocumentStore(
        seed={
            "auditLog": {
                "e1": {"action": "spotEdit", "spotId": "s", "userId": "u1", "timestamp": _at(1)},
                "e2": {"action": "spotHidden", "spotId": "s", "userId": "u2", "timestamp": _at(3)},
                "e3": {"action": "spotTeleported", "spotId": "s", "userId": "u1", "timestamp": _at(2)},
                "e4": {"action": "spotDelete", "spotId": "other", "userId": "u1", "timestamp": _at(4)},
            }
        }
    )
    audit = AuditLog(store)

    assert [e.id for e in audit.get_for_spot("s")] == ["e2", "e1"]
    assert [e.id for e in audit.get_for_user("u1")] == ["e4", "e1"]
    assert [e.id for e in audit.get_for_user("u1", limit=1)] == ["e4"]


def test_writers_store_raw_action_strings():
    store = InMemoryDocumentStore()
    audit = AuditLog(store)
    actor = Actor(user_id="mod", user_name="Moderator")

    report_entry = audit.log_report_status_change("r1", "s", "open", "resolved", actor)
    edit_entry = audit.log_spot_edit("s", actor, {"name": {"from": "a", "to": "b"}})

    report_raw = store.raw("auditLog", report_entry)
    assert report_raw["action"] == "spotReportStatusChange"
    assert report_raw["reportId"] == "r1"
    assert report_raw["changes"] == {"status": {"from": "open", "to": "resolved"}}
    assert report_raw["timestamp"] is not None
    assert store.raw("auditLog", edit_entry)["action"] == "spotEdit"

    actions = {e.action for e in audit.get_for_spot("s")}
    assert actions == {AuditAction.EDIT, AuditAction.REPORT_STATUS_CHANGE}


def test_write_failures_are_swallowed():
    store = InMemoryDocumentStore()

    def fault(op):
        raise StoreError(f"{op} denied")

    store.fault = fault
    audit = AuditLog(store)

    assert audit.log_spot_hidden("s", True, Actor()) is None
    assert audit.get_for_spot("s") == []
