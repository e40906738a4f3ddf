"""
Tests for service wiring.
"""

from datetime import timedelta

from medialedger.config import Settings
from medialedger.db.session import create_session_factory
from medialedger.services.container import build_services
from medialedger.services.storage import FilesystemStorageDeleter


def test_build_services_shares_one_store(engine, storage):
    settings = Settings(
        extension_days=3,
        max_video_extensions=2,
        superadmin_email="boss@example.com",
        ledger_max_retries=2,
    )

    services = build_services(settings, create_session_factory(engine), storage=storage)

    assert services.ledger.store is services.store
    assert services.lifecycle.store is services.store
    assert services.retention.store is services.store
    assert services.store.max_retries == 2
    assert services.retention.storage is storage
    assert services.retention.policy.extension_period == timedelta(days=3)
    assert services.retention.policy.max_video_extensions == 2
    assert services.gateway.superadmin_email == "boss@example.com"
    assert services.scheduler.interval_seconds == settings.sweep_interval_seconds


def test_default_storage_from_settings(engine, tmp_path):
    services = build_services(
        Settings(storage_root=str(tmp_path)), create_session_factory(engine)
    )
    assert isinstance(services.retention.storage, FilesystemStorageDeleter)
