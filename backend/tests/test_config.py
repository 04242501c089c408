"""Tests for settings loading.

Covers:
* Defaults when no YAML files are present
* Merging teamchat.settings.yaml with teamchat.secrets.yaml
* TEAMCHAT_CONFIG_DIR lookup
* Validation of chat limits
* get_config / set_config / reset_config caching
"""
import pytest
from pydantic import ValidationError

from teamchat import config as config_module
from teamchat.config import (
    AppSettings,
    ChatSettings,
    get_config,
    load_settings,
    reset_config,
    set_config,
)


@pytest.fixture(autouse=True)
def _clean_cache():
    reset_config()
    yield
    reset_config()


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_missing_files_fall_back_to_defaults(self, tmp_path):
        settings = load_settings(tmp_path)
        assert settings.server.port == 5000
        assert settings.server.ws_ping_interval == 25.0
        assert settings.server.ws_ping_timeout == 60.0
        assert settings.chat.max_message_length == 5000
        assert settings.chat.history_limit == 50
        assert settings.auth.jwt_algorithm == "HS256"
        assert settings.logging.level == "info"

    def test_secret_has_placeholder_default(self):
        assert AppSettings().secrets.jwt.secret_key


# ---------------------------------------------------------------------------
# YAML loading
# ---------------------------------------------------------------------------


class TestYamlLoading:
    def test_settings_and_secrets_are_merged(self, tmp_path):
        (tmp_path / "teamchat.settings.yaml").write_text(
            "server:\n"
            "  port: 8080\n"
            "  allowed_origins: ['http://localhost:3000']\n"
            "database:\n"
            "  path: /data/chat.duckdb\n"
            "chat:\n"
            "  history_limit: 20\n"
            "logging:\n"
            "  level: debug\n",
            encoding="utf-8",
        )
        (tmp_path / "teamchat.secrets.yaml").write_text(
            "jwt:\n  secret_key: from-file\n", encoding="utf-8"
        )

        settings = load_settings(tmp_path)

        assert settings.server.port == 8080
        assert settings.server.allowed_origins == ["http://localhost:3000"]
        assert settings.database.path == "/data/chat.duckdb"
        assert settings.chat.history_limit == 20
        assert settings.chat.max_history_limit == 100
        assert settings.logging.level == "debug"
        assert settings.secrets.jwt.secret_key == "from-file"

    def test_empty_files_are_tolerated(self, tmp_path):
        (tmp_path / "teamchat.settings.yaml").write_text("", encoding="utf-8")
        (tmp_path / "teamchat.secrets.yaml").write_text("", encoding="utf-8")
        assert load_settings(tmp_path).server.port == 5000

    def test_config_dir_from_environment(self, tmp_path, monkeypatch):
        (tmp_path / "teamchat.settings.yaml").write_text(
            "server:\n  port: 6001\n", encoding="utf-8"
        )
        monkeypatch.setenv("TEAMCHAT_CONFIG_DIR", str(tmp_path))
        assert load_settings().server.port == 6001

    def test_invalid_limit_rejected(self, tmp_path):
        (tmp_path / "teamchat.settings.yaml").write_text(
            "chat:\n  history_limit: 0\n", encoding="utf-8"
        )
        with pytest.raises(ValidationError):
            load_settings(tmp_path)


class TestChatSettings:
    @pytest.mark.parametrize("field", ["max_message_length", "history_limit", "max_history_limit"])
    def test_limits_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            ChatSettings(**{field: 0})

    def test_message_length_cannot_exceed_store_limit(self):
        with pytest.raises(ValidationError):
            ChatSettings(max_message_length=5001)
        assert ChatSettings(max_message_length=280).max_message_length == 280


# ---------------------------------------------------------------------------
# Process-wide cache
# ---------------------------------------------------------------------------


class TestConfigCache:
    def test_get_config_loads_once(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEAMCHAT_CONFIG_DIR", str(tmp_path))
        first = get_config()
        assert get_config() is first

    def test_set_and_reset(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEAMCHAT_CONFIG_DIR", str(tmp_path))
        custom = AppSettings(chat=ChatSettings(history_limit=7))
        set_config(custom)
        assert get_config() is custom

        reset_config()
        assert config_module._config is None
        assert get_config().chat.history_limit == 50
