import pytest

from qbwc.config import settings_from_env
from qbwc.storage import StorageBackend
from qbwc.storage import settings_from_env as storage_settings_from_env
from qbwc.storage.factory import _async_url


def test_service_defaults(monkeypatch):
    for name in ("QBWC_ENDPOINT_PATH", "QBWC_USERNAME", "QBWC_PASSWORD", "QBWC_MIN_CLIENT_VERSION"):
        monkeypatch.delenv(name, raising=False)

    settings = settings_from_env()

    assert settings.endpoint_path == "/qbwc"
    assert settings.min_client_version == 2.0
    assert settings.session_ttl_seconds == 1800
    assert not settings.has_bootstrap_connection


def test_service_settings_from_env(monkeypatch):
    monkeypatch.setenv("QBWC_ENDPOINT_PATH", "soap/qbwc/")
    monkeypatch.setenv("QBWC_PUBLIC_URL", "https://sync.example.com/")
    monkeypatch.setenv("QBWC_MIN_CLIENT_VERSION", "2.1")
    monkeypatch.setenv("QBWC_SESSION_TTL", "600")
    monkeypatch.setenv("QBWC_USERNAME", "svc")
    monkeypatch.setenv("QBWC_PASSWORD", "p@ss")

    settings = settings_from_env()

    assert settings.endpoint_path == "/soap/qbwc"
    assert settings.public_url == "https://sync.example.com"
    assert settings.min_client_version == 2.1
    assert settings.session_ttl_seconds == 600
    assert settings.has_bootstrap_connection
    assert "p@ss" not in repr(settings)


def test_storage_backend_detected_from_url(monkeypatch):
    monkeypatch.delenv("QBWC_STORAGE_BACKEND", raising=False)
    monkeypatch.setenv("QBWC_DATABASE_URL", "postgresql://db/qbwc")

    settings = storage_settings_from_env()

    assert settings.backend == StorageBackend.POSTGRESQL


def test_storage_defaults_to_memory(monkeypatch):
    monkeypatch.delenv("QBWC_STORAGE_BACKEND", raising=False)
    monkeypatch.delenv("QBWC_DATABASE_URL", raising=False)
    monkeypatch.delenv("QBWC_REDIS_URL", raising=False)

    settings = storage_settings_from_env()

    assert settings.backend == StorageBackend.MEMORY
    assert settings.redis_url is None


@pytest.mark.parametrize("backend,url,expected", [
    (StorageBackend.SQLITE, "sqlite:///qbwc.db", "sqlite+aiosqlite:///qbwc.db"),
    (StorageBackend.POSTGRESQL, "postgres://db/qbwc", "postgresql+asyncpg://db/qbwc"),
    (StorageBackend.MYSQL, "mysql://db/qbwc", "mysql+aiomysql://db/qbwc"),
    (StorageBackend.SQLITE, "sqlite+aiosqlite:///x.db", "sqlite+aiosqlite:///x.db"),
])
def test_async_driver_urls(backend, url, expected):
    assert _async_url(backend, url) == expected
