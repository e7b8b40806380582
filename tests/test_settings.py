"""Tests for settings module."""

import logging

import pytest

from messmass_admin.settings import (
    Settings,
    clamp_page_size,
    configure_logging,
    load_dotenv,
    required_env,
)

ENV_KEYS = (
    "DATABASE_URL",
    "API_BASE_URL",
    "API_TIMEOUT_SECONDS",
    "PAGE_SIZE",
    "SEARCH_DEBOUNCE_MS",
    "CORS_ALLOWED_ORIGINS",
    "LOG_LEVEL",
    "RUN_DB_INIT",
    "PORT",
    "FLASK_DEBUG",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    # setenv first so teardown also undoes values written by load_dotenv
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def test_defaults():
    settings = Settings.from_env()
    assert settings.database_url is None
    assert settings.api_base_url == "http://127.0.0.1:5000/api"
    assert settings.api_timeout_seconds == 10.0
    assert settings.page_size == 20
    assert settings.search_debounce_seconds == 0.3
    assert settings.cors_allowed_origins == {"http://localhost:5000", "http://127.0.0.1:5000"}
    assert settings.port == 5000
    assert not settings.run_db_init
    assert not settings.debug


def test_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://db/messmass")
    monkeypatch.setenv("API_BASE_URL", "https://admin.example/api/")
    monkeypatch.setenv("API_TIMEOUT_SECONDS", "2.5")
    monkeypatch.setenv("PAGE_SIZE", "500")
    monkeypatch.setenv("SEARCH_DEBOUNCE_MS", "0")
    monkeypatch.setenv("CORS_ALLOWED_ORIGINS", " https://a.example , ,https://b.example")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("RUN_DB_INIT", "1")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("FLASK_DEBUG", "1")

    settings = Settings.from_env()
    assert settings.database_url == "postgresql://db/messmass"
    assert settings.api_base_url == "https://admin.example/api"
    assert settings.api_timeout_seconds == 2.5
    assert settings.page_size == 100
    assert settings.search_debounce_ms == 0
    assert settings.cors_allowed_origins == {"https://a.example", "https://b.example"}
    assert settings.log_level == "DEBUG"
    assert settings.run_db_init
    assert settings.port == 8080
    assert settings.debug


@pytest.mark.parametrize(
    "key, value, message",
    [
        ("API_TIMEOUT_SECONDS", "0", "API_TIMEOUT_SECONDS must be > 0"),
        ("API_TIMEOUT_SECONDS", "soon", "Invalid API_TIMEOUT_SECONDS"),
        ("SEARCH_DEBOUNCE_MS", "-1", "SEARCH_DEBOUNCE_MS must be >= 0"),
        ("PAGE_SIZE", "many", "Invalid PAGE_SIZE"),
        ("PORT", "70000", "Port must be between 1 and 65535"),
    ],
)
def test_invalid_values(monkeypatch, key, value, message):
    monkeypatch.setenv(key, value)
    with pytest.raises(ValueError, match=message):
        Settings.from_env()


def test_clamp_page_size():
    assert clamp_page_size(0) == 1
    assert clamp_page_size(50) == 50
    assert clamp_page_size(101) == 100


def test_required_env(monkeypatch):
    with pytest.raises(RuntimeError, match="DATABASE_URL is not configured"):
        required_env("DATABASE_URL")
    monkeypatch.setenv("DATABASE_URL", "postgresql://db")
    assert required_env("DATABASE_URL") == "postgresql://db"


def test_load_dotenv_does_not_override(tmp_path, monkeypatch):
    """Values already in the environment win over the file."""
    env_file = tmp_path / ".env"
    env_file.write_text("# comment\nPAGE_SIZE='15'\nPORT=9000\nnot a pair\n", encoding="utf-8")
    monkeypatch.setenv("PORT", "7000")
    load_dotenv(str(env_file))
    assert Settings.from_env().page_size == 15
    assert Settings.from_env().port == 7000


def test_load_dotenv_missing_file(tmp_path):
    load_dotenv(str(tmp_path / "absent.env"))


def test_configure_logging_adds_one_handler():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        configure_logging("warning")
        configure_logging("debug")
        added = [handler for handler in root.handlers if handler not in before]
        assert len(added) <= 1
        assert root.level == logging.DEBUG
    finally:
        for handler in root.handlers[:]:
            if handler not in before:
                root.removeHandler(handler)
        root.setLevel(level)
