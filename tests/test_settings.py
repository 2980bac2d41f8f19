"""test for settings"""

import pytest
from pydantic import ValidationError

from playstats.api.settings import ApiSettings, DatabaseSettings
from playstats.cache.settings import CacheSettings


@pytest.mark.parametrize(
    "value,hosts",
    [
        ("blog-vincent.chyu.org", ["blog-vincent.chyu.org"]),
        ("a.example, b.example", ["a.example", "b.example"]),
        ("a.example,,b.example,", ["a.example", "b.example"]),
        ("", []),
    ],
)
def test_allowed_referers(value, hosts):
    """Comma separated referer hosts."""
    settings = ApiSettings(allowed_referers=value)
    assert settings.allowed_referers == hosts


def test_api_settings_from_env(monkeypatch):
    """Environment variables are read with the PLAYSTATS_API_ prefix."""
    monkeypatch.setenv("PLAYSTATS_API_ALLOWED_REFERERS", "stats.example")
    monkeypatch.setenv("PLAYSTATS_API_DEBUG", "true")

    settings = ApiSettings()
    assert settings.allowed_referers == ["stats.example"]
    assert settings.debug


def test_default_referers():
    settings = ApiSettings()
    assert settings.allowed_referers == ["blog-vincent.chyu.org", "vincent.chyu.org"]


def test_database_settings():
    """SQLite is the default executor."""
    settings = DatabaseSettings()
    assert settings.backend == "sqlite"
    assert settings.sqlite_path == ":memory:"

    settings = DatabaseSettings(
        backend="d1",
        d1_account_id="account",
        d1_database_id="database",
        d1_api_token="token",
    )
    assert settings.d1_api_token.get_secret_value() == "token"


@pytest.mark.parametrize(
    "params",
    [
        {"backend": "d1"},
        {"backend": "d1", "d1_account_id": "account", "d1_database_id": "database"},
        {"backend": "postgres"},
        {"d1_timeout": 0},
    ],
)
def test_database_settings_error(params):
    """Missing D1 credentials or invalid values."""
    with pytest.raises(ValidationError):
        DatabaseSettings(**params)


def test_cache_settings(monkeypatch):
    """Redis backend needs a host."""
    settings = CacheSettings()
    assert settings.enable
    assert settings.backend == "memory"
    assert settings.status_header == "X-Cache"

    with pytest.raises(ValidationError):
        CacheSettings(backend="redis")

    # Disabled cache skips the check
    CacheSettings(enable=False, backend="redis")

    monkeypatch.setenv("PLAYSTATS_CACHE_REDIS_HOST", "redis.internal")
    monkeypatch.setenv("PLAYSTATS_CACHE_REDIS_PORT", "6380")
    settings = CacheSettings(backend="redis")
    assert settings.redis.host == "redis.internal"
    assert settings.redis.port == 6380
