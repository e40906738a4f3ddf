"""
Tests for Settings validation.
"""

import pytest

from medialedger.config import ConfigurationError, Settings

VALID_DB = "postgresql+asyncpg://u:p@localhost:5432/ledger"


def test_defaults():
    settings = Settings(database_url=VALID_DB, auth_jwt_secret="x" * 32)

    assert settings.image_ttl_days == 14
    assert settings.extension_days == 7
    assert settings.max_image_extensions == 3
    assert settings.max_video_extensions == 1


def test_missing_database_url():
    with pytest.raises(ConfigurationError, match="DATABASE_URL"):
        Settings(database_url="", auth_jwt_secret="x" * 32)


def test_non_postgres_database_url():
    with pytest.raises(ConfigurationError, match="PostgreSQL"):
        Settings(database_url="mysql://u:p@localhost/db", auth_jwt_secret="x" * 32)


def test_missing_jwt_secret():
    with pytest.raises(ConfigurationError, match="AUTH_JWT_SECRET"):
        Settings(database_url=VALID_DB, auth_jwt_secret="")


def test_http_storage_requires_url():
    with pytest.raises(ConfigurationError, match="STORAGE_API_URL"):
        Settings(database_url=VALID_DB, auth_jwt_secret="x" * 32, storage_backend="http")


def test_all_errors_reported_together():
    with pytest.raises(ConfigurationError) as exc_info:
        Settings(database_url="", auth_jwt_secret="", sweep_interval_seconds=0)

    message = str(exc_info.value)
    assert "DATABASE_URL" in message
    assert "AUTH_JWT_SECRET" in message
    assert "SWEEP_INTERVAL_SECONDS" in message
