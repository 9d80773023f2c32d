"""
Configuration module for the task bot.

This module handles loading and validating configuration from environment
variables using Pydantic Settings. It supports multiple environments
(production, staging) via the BOT_ENV environment variable.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from taskbot.database.models import TaskScope

logger = logging.getLogger(__name__)


def get_env_file() -> str | None:
    """
    Determine which .env file to load based on BOT_ENV environment variable.

    Returns:
        str | None: Path to the environment file if it exists, None otherwise.
            - "production" or default -> ".env" (if exists)
            - "staging" -> ".env.staging" (if exists)
    """
    env = os.getenv("BOT_ENV", "production")
    env_files = {
        "production": ".env",
        "staging": ".env.staging",
    }
    env_file = env_files.get(env, ".env")

    if Path(env_file).exists():
        logger.debug(f"Loading configuration from: {env_file}")
        return env_file
    else:
        logger.debug(f"No .env file found at {env_file}, loading from environment variables")
        return None


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        telegram_bot_token: Bot token from @BotFather (required).
        admin_ids: Telegram user IDs allowed to run admin commands
            (JSON list, e.g. ADMIN_IDS='[123, 456]').
        bot_scope: Task catalog scope served by this bot instance.
        database_path: Path to SQLite database file.
        task_list_limit: Maximum number of tasks shown by /tasks.
        high_value_reward_threshold: Completions worth at least this many
            points are reported to the admins.
        leaderboard_size: Number of users shown by /leaderboard.
        assignment_expiry_minutes: Age after which in-progress assignments
            are marked expired. None disables the expiry sweep.
        expiry_sweep_interval_seconds: How often the expiry sweep runs.
        seed_default_tasks: Insert sample tasks when the catalog is empty.
        report_hour_utc: Hour (UTC) at which periodic snapshots are sent.
    """

    telegram_bot_token: str
    admin_ids: list[int] = []
    bot_scope: TaskScope = TaskScope.IN
    database_path: str = "data/taskbot.db"
    task_list_limit: int = 10
    high_value_reward_threshold: int = 100
    leaderboard_size: int = 10
    assignment_expiry_minutes: int | None = None
    expiry_sweep_interval_seconds: int = 300
    seed_default_tasks: bool = True
    report_hour_utc: int = 8

    model_config = SettingsConfigDict(
        env_file=get_env_file(),
        env_file_encoding="utf-8",
    )

    def model_post_init(self, __context):
        """Log non-sensitive configuration values after initialization."""
        logger.info("Configuration loaded successfully")
        logger.debug(f"admin_ids: {self.admin_ids}")
        logger.debug(f"bot_scope: {self.bot_scope}")
        logger.debug(f"database_path: {self.database_path}")
        logger.debug(f"task_list_limit: {self.task_list_limit}")
        logger.debug(f"high_value_reward_threshold: {self.high_value_reward_threshold}")
        logger.debug(f"assignment_expiry_minutes: {self.assignment_expiry_minutes}")
        logger.debug(f"report_hour_utc: {self.report_hour_utc}")
        logger.debug(f"telegram_bot_token: {'***' + self.telegram_bot_token[-4:]}")

    def is_admin(self, user_id: int) -> bool:
        """Return True if the Telegram user ID belongs to an admin."""
        return user_id in self.admin_ids


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.

    Returns:
        Settings: Application configuration instance.
    """
    return Settings()
