import json

from conftest import spot_doc

import spotmap.cli as cli
from spotmap.config.settings import get_settings
from spotmap.services.spots import SpotService
from spotmap.store.memory import InMemoryDocumentStore


def _patch(monkeypatch, store):
    monkeypatch.setattr(cli, "build_service", lambda: SpotService(store, settings=get_settings()))


def test_nearby_json(monkeypatch, capsys):
    store = InMemoryDocumentStore(seed={"spots": {"a": spot_doc(name="Dam", latitude=52.3731, longitude=4.8926)}})
    _patch(monkeypatch, store)

    code = cli.main(["nearby", "--lat", "52.3676", "--lon", "4.9041", "--radius-km", "5", "--json"])

    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert [s["id"] for s in out] == ["a"]


def test_mark_duplicate_reports_validation_failure(monkeypatch, capsys):
    store = InMemoryDocumentStore(seed={"spots": {"a": spot_doc(name="A")}})
    _patch(monkeypatch, store)

    code = cli.main(["mark-duplicate", "a", "missing"])

    assert code == 2
    assert "Original spot not found" in capsys.readouterr().out


def test_mark_duplicate_with_options(monkeypatch, capsys):
    store = InMemoryDocumentStore(
        seed={"spots": {"o": spot_doc(name="Old name"), "d": spot_doc(name="Better name")}}
    )
    _patch(monkeypatch, store)

    code = cli.main(["mark-duplicate", "d", "o", "--overwrite-name"])

    assert code == 0
    assert store.raw("spots", "o")["name"] == "Better name"
    assert store.raw("spots", "d")["duplicateOf"] == "o"
    assert "name" in capsys.readouterr().out


def test_backfill_prints_counters(monkeypatch, capsys):
    store = InMemoryDocumentStore(seed={"spots": {"s": {"name": "s", "latitude": 1.0, "longitude": 2.0}}})
    _patch(monkeypatch, store)

    code = cli.main(["backfill", "geohash"])

    assert code == 0
    assert "updated=1" in capsys.readouterr().out
    assert store.raw("spots", "s")["geohash"]
