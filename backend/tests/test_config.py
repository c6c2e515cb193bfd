"""Tests for settings loading.

Covers:
* Defaults when neither YAML file exists
* Merging termchat.settings.yaml and termchat.secrets.yaml
* TERMCHAT_PORT / TERMCHAT_SECRET environment overrides
* Validation of chat limits
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from termchat.config import (
    AppSettings,
    ChatSettings,
    get_config,
    load_settings,
    reset_config,
    set_config,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv("TERMCHAT_PORT", raising=False)
    monkeypatch.delenv("TERMCHAT_SECRET", raising=False)


@pytest.fixture
def write_yaml(tmp_path):
    def _write(name: str, text: str):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write


class TestDefaults:

    def test_missing_files_give_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "none.yaml", tmp_path / "none-secrets.yaml")
        assert settings.server.port == 3000
        assert settings.server.host == "0.0.0.0"
        assert settings.chat.history_size == 200
        assert settings.chat.max_message_length == 500
        assert settings.chat.max_name_length == 20
        assert settings.gate.require_account is True
        assert settings.gate.max_pc_name_length == 64
        assert settings.secrets.jwt.algorithm == "HS256"

    def test_empty_file_gives_defaults(self, tmp_path, write_yaml):
        settings = load_settings(write_yaml("s.yaml", ""), tmp_path / "none.yaml")
        assert settings == load_settings(tmp_path / "a.yaml", tmp_path / "b.yaml")


class TestYamlFiles:

    def test_settings_and_secrets_are_merged(self, write_yaml):
        settings_file = write_yaml("termchat.settings.yaml", (
            "server:\n"
            "  port: 4000\n"
            "  log_level: debug\n"
            "chat:\n"
            "  history_size: 50\n"
            "gate:\n"
            "  require_account: false\n"
        ))
        secrets_file = write_yaml("termchat.secrets.yaml", (
            "jwt:\n"
            "  secret_key: from-file\n"
        ))

        settings = load_settings(settings_file, secrets_file)

        assert settings.server.port == 4000
        assert settings.server.log_level == "debug"
        assert settings.chat.history_size == 50
        assert settings.chat.max_message_length == 500
        assert settings.gate.require_account is False
        assert settings.secrets.jwt.secret_key == "from-file"

    def test_zero_history_size_is_rejected(self, tmp_path, write_yaml):
        settings_file = write_yaml("s.yaml", "chat:\n  history_size: 0\n")
        with pytest.raises(ValidationError):
            load_settings(settings_file, tmp_path / "none.yaml")

    def test_chat_limits_must_be_positive(self):
        with pytest.raises(ValidationError):
            ChatSettings(outbox_size=-1)


class TestEnvOverrides:

    def test_port_and_secret(self, tmp_path, write_yaml, monkeypatch):
        settings_file = write_yaml("s.yaml", "server:\n  port: 4000\n")
        monkeypatch.setenv("TERMCHAT_PORT", "5050")
        monkeypatch.setenv("TERMCHAT_SECRET", "from-env")

        settings = load_settings(settings_file, tmp_path / "none.yaml")

        assert settings.server.port == 5050
        assert settings.secrets.jwt.secret_key == "from-env"

    def test_non_numeric_port_is_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TERMCHAT_PORT", "eighty")
        settings = load_settings(tmp_path / "a.yaml", tmp_path / "b.yaml")
        assert settings.server.port == 3000


def test_set_and_reset_config():
    custom = AppSettings(chat=ChatSettings(history_size=7))
    set_config(custom)
    assert get_config() is custom
    reset_config()
    set_config(AppSettings())
    assert get_config().chat.history_size == 200
