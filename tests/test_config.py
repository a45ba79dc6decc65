from __future__ import annotations

import pytest

from taskcycle.config import Settings, load_env, load_settings
from taskcycle.infra.logging import setup_logging
from taskcycle.scheduling.manager import EnvironmentSignals

ENV_VARS = (
    "DATABASE_URL",
    "APP_ENV",
    "APP_URL",
    "REDIS_URL",
    "SERVERLESS",
    "VERCEL",
    "AWS_LAMBDA_FUNCTION_NAME",
    "SCHEDULING_STRATEGY",
    "THROTTLE_BACKEND",
    "LOG_LEVEL",
    "LOG_DIR",
    "RECURRING_HORIZON_DAYS",
    "CLEANUP_DAYS_PAST_DUE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        # setenv first so values loaded from .env files are rolled back too.
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


def test_missing_database_url_is_fatal() -> None:
    with pytest.raises(RuntimeError):
        load_settings()


def test_settings_from_environment(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite:///tasks.db")
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("APP_URL", "https://tasks.example.com/")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
    monkeypatch.setenv("VERCEL", "1")

    settings = load_settings()

    assert settings.is_production
    assert settings.serverless
    assert settings.app_url == "https://tasks.example.com"
    assert settings.horizon_days == 30
    assert settings.cleanup_days_past_due == 7

    signals = EnvironmentSignals.from_settings(settings)
    assert signals.queue_configured
    assert signals.production


def test_development_defaults(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite:///tasks.db")

    settings = load_settings()

    assert settings == Settings(database_url="sqlite:///tasks.db")
    assert not settings.is_production


def test_environment_file_overrides_shared_file(tmp_path) -> None:
    (tmp_path / ".env").write_text("DATABASE_URL=sqlite:///shared.db\nAPP_ENV=production\nLOG_LEVEL=INFO\n")
    (tmp_path / ".env.production").write_text("LOG_LEVEL=WARNING\n")

    assert [path.name for path in load_env()] == [".env", ".env.production"]

    settings = load_settings()
    assert settings.database_url == "sqlite:///shared.db"
    assert settings.is_production
    assert settings.log_level == "WARNING"


def test_log_file_lands_in_configured_directory(tmp_path) -> None:
    settings = Settings(database_url="sqlite://", log_dir=str(tmp_path / "logs"))

    log_file = setup_logging(settings)

    assert log_file == tmp_path / "logs" / "taskcycle.log"
    assert log_file.parent.is_dir()
