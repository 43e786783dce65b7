import pytest
from pydantic import ValidationError

from spotmap.config.settings import JobSettings, get_logging_config, get_settings


def test_packaged_defaults():
    settings = get_settings()
    assert settings.geo.earth_radius_km == 6371.0
    assert settings.jobs.page_size == 1000
    assert settings.jobs.batch_size == 400
    assert settings.store.collections.audit_log == "auditLog"
    assert settings.functions.bulk_recompute_timeout_seconds == 540
    assert settings.functions.bulk_import_timeout_seconds == 3600
    assert settings.ranking.confidence == 0.95


def test_batch_size_is_capped_below_firestore_limit():
    with pytest.raises(ValidationError):
        JobSettings(batch_size=600)


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("SPOTMAP_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("SPOTMAP_FIREBASE_PROJECT_ID", "spots-prod")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.app.log_level == "DEBUG"
        assert settings.store.project_id == "spots-prod"
        assert settings.functions.endpoint_base() == "https://europe-west1-spots-prod.cloudfunctions.net"
    finally:
        get_settings.cache_clear()


def test_external_config_file(monkeypatch, tmp_path):
    path = tmp_path / "spotmap.yaml"
    path.write_text("jobs:\n  page_size: 50\n  batch_size: 10\n", encoding="utf-8")
    monkeypatch.setenv("SPOTMAP_CONFIG_PATH", str(path))
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.jobs.page_size == 50
        assert settings.jobs.batch_size == 10
        # Sections missing from the file fall back to model defaults.
        assert settings.geo.geohash_precision == 12
    finally:
        get_settings.cache_clear()


def test_logging_config_is_a_dict_config():
    config = get_logging_config()
    assert config["version"] == 1
    assert "console" in config["handlers"]
