import logging

from patternrank.config import Settings, configure_logging, get_settings


def test_settings_defaults():
    settings = Settings()
    assert settings.result_cache_ttl_seconds == 300
    assert settings.session_ttl_seconds == 1_800
    assert settings.trust_weight == 0.5
    assert settings.session_boost == 0.1
    assert settings.interval_cache_size == 1_000


def test_settings_read_environment_aliases(monkeypatch):
    monkeypatch.setenv("PATTERNRANK_DEFAULT_K", "7")
    monkeypatch.setenv("PATTERNRANK_TRUST_WEIGHT", "0.25")
    monkeypatch.setenv("LOG_LEVEL", "DEBUG")
    settings = Settings()
    assert settings.default_k == 7
    assert settings.trust_weight == 0.25
    assert settings.log_level == "DEBUG"


def test_get_settings_is_cached():
    get_settings.cache_clear()
    try:
        assert get_settings() is get_settings()
    finally:
        get_settings.cache_clear()


def test_configure_logging_applies_level(monkeypatch):
    calls = {}
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.update(kwargs))
    configure_logging(Settings(log_level="WARNING"))
    assert calls["level"] == logging.WARNING
