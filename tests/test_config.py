try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover - fallback for direct execution
    import _bootstrap  # type: ignore # noqa: F401

import os
from pathlib import Path

import pytest

from app.core import config


def test_env_file_fills_missing_values_only(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# local overrides\n"
        "APP_LOG_LEVEL=DEBUG\n"
        "SESSION_SECRET=from-file\n"
        "OAUTH_STATE_TTL='300'\n"
        "not-an-assignment\n",
        encoding="utf-8",
    )
    fake_environ = {"SESSION_SECRET": "from-process"}
    monkeypatch.setattr(os, "environ", fake_environ)

    config._load_env_file(str(env_file))

    assert fake_environ == {
        "APP_LOG_LEVEL": "DEBUG",
        "SESSION_SECRET": "from-process",
        "OAUTH_STATE_TTL": "300",
    }


def test_missing_env_file_is_ignored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake_environ: dict[str, str] = {}
    monkeypatch.setattr(os, "environ", fake_environ)

    config._load_env_file(str(tmp_path / "absent.env"))

    assert fake_environ == {}


def test_settings_read_only_the_process_environment() -> None:
    # ``.env`` is merged into os.environ once at import; pydantic does not re-read it.
    assert "env_file" not in config.AppSettings.model_config


def test_nested_groups_read_their_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OAUTH_STATE_TTL", "120")
    monkeypatch.setenv("DATABASE_PATH", "/tmp/elsewhere.db")

    settings = config.AppSettings()  # type: ignore[call-arg]

    assert settings.oauth.state_ttl_seconds == 120
    assert settings.database.path == "/tmp/elsewhere.db"
    assert settings.meta.configured


def test_non_positive_ttl_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("OAUTH_STATE_TTL", "0")

    with pytest.raises(ValueError):
        config.AppSettings()  # type: ignore[call-arg]
