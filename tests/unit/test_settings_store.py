# pylint: disable=missing-module-docstring,missing-function-docstring
import json
from pathlib import Path
from typing import Any

import pytest

from observability import logger
from orchestrator.state_dataclass import SessionSettings
from session.settings_store import SettingsRepository


def test_defaults_without_file(tmp_path: Path) -> None:
    settings = SettingsRepository(tmp_path / "settings.json")

    assert settings.webhook_url == ""
    assert settings.auth_token == ""
    assert settings.tts_enabled is True
    assert settings.continuous_mode is False
    assert settings.hotword_enabled is False
    assert settings.is_configured() is False
    assert settings.snapshot() == SessionSettings(tts_enabled=True, continuous_mode=False)


def test_values_persist_across_instances(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "settings.json"
    settings = SettingsRepository(path)
    settings.webhook_url = "https://hook.example"
    settings.auth_token = "tok"
    settings.continuous_mode = True
    settings.tts_enabled = False

    reloaded = SettingsRepository(path)

    assert reloaded.webhook_url == "https://hook.example"
    assert reloaded.auth_token == "tok"
    assert reloaded.snapshot() == SessionSettings(tts_enabled=False, continuous_mode=True)
    assert json.loads(path.read_text(encoding="utf-8"))["continuous_mode"] is True


def test_session_id_is_generated_once(tmp_path: Path) -> None:
    path = tmp_path / "settings.json"
    first = SettingsRepository(path).session_id

    assert first
    assert SettingsRepository(path).session_id == first


def test_reset_session_issues_new_id(tmp_path: Path) -> None:
    settings = SettingsRepository(tmp_path / "settings.json")
    old = settings.session_id

    new = settings.reset_session()

    assert new != old
    assert settings.session_id == new


def test_changing_url_clears_verification(tmp_path: Path) -> None:
    settings = SettingsRepository(tmp_path / "settings.json")
    settings.remember_connection("https://a.example", "tok")
    assert settings.auth_token == "tok"
    assert settings.is_configured() is True

    # Same value keeps the flag
    settings.webhook_url = "https://a.example"
    assert settings.is_verified is True

    settings.webhook_url = "https://b.example"
    assert settings.is_verified is False
    assert settings.is_configured() is False


def test_seed_only_fills_missing_values(tmp_path: Path) -> None:
    settings = SettingsRepository(tmp_path / "settings.json")
    settings.seed(webhook_url="https://env.example", auth_token="env-token")
    assert settings.webhook_url == "https://env.example"

    settings.webhook_url = "https://user.example"
    settings.seed(webhook_url="https://env.example", auth_token="other")

    assert settings.webhook_url == "https://user.example"
    assert settings.auth_token == "env-token"


def test_corrupt_file_falls_back_to_defaults(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    path = tmp_path / "settings.json"
    path.write_text("{not json", encoding="utf-8")
    lines: list[str] = []
    monkeypatch.setattr(logger, "_print", lines.append)

    settings = SettingsRepository(path)

    assert settings.webhook_url == ""
    events: list[dict[str, Any]] = [json.loads(line) for line in lines]
    assert events[0]["event_type"] == "settings_load_failed"


def test_public_view_hides_token(tmp_path: Path) -> None:
    settings = SettingsRepository(tmp_path / "settings.json")
    settings.auth_token = "secret"

    view = settings.as_dict()

    assert "auth_token" not in view
    assert view["auth_token_set"] is True
