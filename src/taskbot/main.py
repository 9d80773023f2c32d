"""
Main entry point for the task bot.

This module initializes the bot application, registers all handlers,
schedules the periodic jobs and starts the polling loop. Handler
registration order matters:
1. Commands (plain and /task_<id> style regex commands) are matched first
2. The private DM handler catches remaining text, photo and document
   messages and routes them to the open prompt, if any
"""

import logging

from telegram.ext import Application, CommandHandler, MessageHandler, filters

from taskbot.config import get_settings
from taskbot.constants import (
    CANCEL_COMMAND_PATTERN,
    PROFILE_FIELD_COMMANDS,
    SUBMIT_COMMAND_PATTERN,
    TASK_COMMAND_PATTERN,
)
from taskbot.database.service import init_database
from taskbot.handlers.admin import (
    handle_addtask_command,
    handle_ban_command,
    handle_broadcast_command,
    handle_disabletask_command,
    handle_enabletask_command,
    handle_report_command,
    handle_unban_command,
)
from taskbot.handlers.dm import handle_dm
from taskbot.handlers.errors import handle_error
from taskbot.handlers.profile import (
    handle_edit_profile_command,
    handle_features_command,
    handle_profile_command,
    handle_toggle_feature_command,
)
from taskbot.handlers.progress import (
    handle_leaderboard_command,
    handle_my_tasks_command,
    handle_progress_command,
    handle_rank_command,
    handle_score_command,
)
from taskbot.handlers.start import handle_help_command, handle_start_command
from taskbot.handlers.tasks import (
    handle_cancel_command,
    handle_cancel_task_command,
    handle_submit_command,
    handle_task_command,
    handle_tasks_command,
)
from taskbot.services.scheduler import schedule_jobs
from taskbot.services.session_store import InMemorySessionStore
from taskbot.services.telegram_utils import SESSION_STORE_KEY

# Configure logging format for the application
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)
# Keep the bot token out of request logs
logging.getLogger("httpx").setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def main() -> None:
    """
    Initialize and run the bot.

    This function:
    1. Loads configuration from environment
    2. Initializes the SQLite database and seeds the sample tasks
    3. Registers command and message handlers
    4. Schedules the report and expiry jobs on the JobQueue
    5. Starts the bot polling loop
    """
    settings = get_settings()

    # Initialize database (creates tables if they don't exist)
    db = init_database(settings.database_path)
    if settings.seed_default_tasks:
        db.seed_default_tasks(settings.bot_scope)

    # Updates from different users are handled concurrently; per-user
    # consistency is enforced by the database
    application = (
        Application.builder()
        .token(settings.telegram_bot_token)
        .concurrent_updates(True)
        .build()
    )
    application.bot_data[SESSION_STORE_KEY] = InMemorySessionStore()  # type: ignore[index]

    # Registration and read-only commands
    application.add_handler(CommandHandler("start", handle_start_command))
    application.add_handler(CommandHandler("help", handle_help_command))
    application.add_handler(CommandHandler("tasks", handle_tasks_command))
    application.add_handler(CommandHandler("my_tasks", handle_my_tasks_command))
    application.add_handler(CommandHandler("progress", handle_progress_command))
    application.add_handler(CommandHandler("score", handle_score_command))
    application.add_handler(CommandHandler("leaderboard", handle_leaderboard_command))
    application.add_handler(CommandHandler("rank", handle_rank_command))
    application.add_handler(CommandHandler("cancel", handle_cancel_command))

    # Profile commands
    application.add_handler(CommandHandler("profile", handle_profile_command))
    application.add_handler(
        CommandHandler(list(PROFILE_FIELD_COMMANDS), handle_edit_profile_command)
    )
    application.add_handler(CommandHandler("features", handle_features_command))
    application.add_handler(CommandHandler("toggle_feature", handle_toggle_feature_command))

    # Task commands carrying the task ID in the command name
    application.add_handler(
        MessageHandler(filters.Regex(TASK_COMMAND_PATTERN), handle_task_command)
    )
    application.add_handler(
        MessageHandler(filters.Regex(SUBMIT_COMMAND_PATTERN), handle_submit_command)
    )
    application.add_handler(
        MessageHandler(filters.Regex(CANCEL_COMMAND_PATTERN), handle_cancel_task_command)
    )

    # Admin commands
    application.add_handler(CommandHandler("addtask", handle_addtask_command))
    application.add_handler(CommandHandler("disabletask", handle_disabletask_command))
    application.add_handler(CommandHandler("enabletask", handle_enabletask_command))
    application.add_handler(CommandHandler("ban", handle_ban_command))
    application.add_handler(CommandHandler("unban", handle_unban_command))
    application.add_handler(CommandHandler("report", handle_report_command))
    application.add_handler(CommandHandler("broadcast", handle_broadcast_command))

    # DM handler: free-form answers to an open submission or profile prompt
    application.add_handler(
        MessageHandler(
            filters.ChatType.PRIVATE
            & ((filters.TEXT & ~filters.COMMAND) | filters.PHOTO | filters.Document.ALL),
            handle_dm,
        )
    )

    application.add_error_handler(handle_error)

    if application.job_queue:
        schedule_jobs(application.job_queue, settings)

    logger.info(f"Bot started. Serving {settings.bot_scope} tasks")

    application.run_polling(allowed_updates=["message"])


if __name__ == "__main__":
    main()
