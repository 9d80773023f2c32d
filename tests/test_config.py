import pytest

from taskbot.config import Settings, get_env_file, get_settings
from taskbot.database.models import TaskScope


class TestGetEnvFile:
    def test_default_production(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("TELEGRAM_BOT_TOKEN=x\n")
        monkeypatch.delenv("BOT_ENV", raising=False)
        assert get_env_file() == ".env"

    def test_staging_environment(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env.staging").write_text("TELEGRAM_BOT_TOKEN=x\n")
        monkeypatch.setenv("BOT_ENV", "staging")
        assert get_env_file() == ".env.staging"

    def test_unknown_environment_falls_back_to_default(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env").write_text("TELEGRAM_BOT_TOKEN=x\n")
        monkeypatch.setenv("BOT_ENV", "unknown")
        assert get_env_file() == ".env"

    def test_missing_file_returns_none(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("BOT_ENV", "staging")
        assert get_env_file() is None


class TestSettings:
    def test_settings_from_env(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "test_token_123")
        monkeypatch.setenv("ADMIN_IDS", "[111, 222]")
        monkeypatch.setenv("BOT_SCOPE", "AIRDROP")
        monkeypatch.setenv("ASSIGNMENT_EXPIRY_MINUTES", "90")

        settings = Settings(_env_file=None)

        assert settings.telegram_bot_token == "test_token_123"
        assert settings.admin_ids == [111, 222]
        assert settings.bot_scope == TaskScope.AIRDROP
        assert settings.assignment_expiry_minutes == 90

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "test_token_123")
        for name in ("ADMIN_IDS", "BOT_SCOPE", "ASSIGNMENT_EXPIRY_MINUTES", "TASK_LIST_LIMIT"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        assert settings.admin_ids == []
        assert settings.bot_scope == TaskScope.IN
        assert settings.task_list_limit == 10
        assert settings.high_value_reward_threshold == 100
        assert settings.assignment_expiry_minutes is None
        assert settings.seed_default_tasks is True

    def test_invalid_scope_rejected(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "test_token_123")
        monkeypatch.setenv("BOT_SCOPE", "SIDEWAYS")

        with pytest.raises(Exception):
            Settings(_env_file=None)

    def test_settings_missing_required_field(self, monkeypatch):
        monkeypatch.delenv("TELEGRAM_BOT_TOKEN", raising=False)

        with pytest.raises(Exception):
            Settings(_env_file=None)

    def test_is_admin(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "test_token_123")
        monkeypatch.setenv("ADMIN_IDS", "[111]")

        settings = Settings(_env_file=None)

        assert settings.is_admin(111)
        assert not settings.is_admin(222)

    def test_get_settings_cached(self, monkeypatch):
        monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "cached_token")

        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2
        get_settings.cache_clear()
