"""
Admin command handlers for the task bot.

This module handles the commands reserved for the configured admin IDs:
- /addtask, /disabletask and /enabletask manage the task catalog
- /ban and /unban manage user access
- /report sends an aggregate snapshot on demand
- /broadcast sends a message to every non-banned user

Every handler checks the sender against ADMIN_IDS first and refuses
everyone else.
"""

import logging
from datetime import UTC, datetime

from telegram import Update
from telegram.ext import ContextTypes

from taskbot.config import get_settings
from taskbot.constants import (
    ADMIN_ONLY_MESSAGE,
    ADMIN_USAGE_MESSAGES,
    BROADCAST_COMPLETE_MESSAGE,
    BROADCAST_MESSAGE,
    BROADCAST_STARTED_MESSAGE,
    TASK_CREATE_FAILED_MESSAGE,
    TASK_CREATED_MESSAGE,
    TASK_DISABLED_MESSAGE,
    TASK_ENABLED_MESSAGE,
    TASK_NOT_FOUND_MESSAGE,
    USER_BANNED_ADMIN_MESSAGE,
    USER_NOT_FOUND_MESSAGE,
    USER_UNBANNED_ADMIN_MESSAGE,
    format_cooldown,
)
from taskbot.database.service import get_database
from taskbot.errors import NotFoundError
from taskbot.services.notifications import send_to_chats
from taskbot.services.reports import ReportPeriod, build_snapshot, format_snapshot

logger = logging.getLogger(__name__)


async def _ensure_admin(update: Update, command: str) -> bool:
    """Reply with a refusal and return False unless the sender is an admin."""
    admin_user_id = update.message.from_user.id
    if get_settings().is_admin(admin_user_id):
        return True

    await update.message.reply_text(ADMIN_ONLY_MESSAGE)
    logger.warning(
        f"Non-admin user {admin_user_id} ({update.message.from_user.full_name}) "
        f"attempted to use /{command} command"
    )
    return False


def _parse_id_argument(context: ContextTypes.DEFAULT_TYPE) -> int | None:
    if not context.args:
        return None
    try:
        return int(context.args[0])
    except ValueError:
        return None


async def handle_addtask_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /addtask to add a task to this bot's catalog.

    Usage: /addtask CODE POINTS COOLDOWN_SECONDS TITLE...
    (e.g., /addtask share_post 40 86400 Share the launch post)

    Args:
        update: Telegram update containing the command.
        context: Bot context with helper methods.
    """
    if not update.message or not update.message.from_user:
        return

    if not await _ensure_admin(update, "addtask"):
        return

    args = context.args or []
    if len(args) < 4:
        await update.message.reply_text(ADMIN_USAGE_MESSAGES["addtask"])
        return

    code, raw_points, raw_cooldown = args[0], args[1], args[2]
    title = " ".join(args[3:])
    try:
        points = int(raw_points)
        cooldown = int(raw_cooldown)
    except ValueError:
        await update.message.reply_text(ADMIN_USAGE_MESSAGES["addtask"])
        return

    settings = get_settings()
    admin_user_id = update.message.from_user.id
    try:
        task = get_database().create_task(
            code=code,
            title=title,
            points_reward=points,
            cooldown_seconds=cooldown,
            scope=settings.bot_scope,
            created_by=admin_user_id,
        )
    except ValueError as e:
        await update.message.reply_text(TASK_CREATE_FAILED_MESSAGE.format(reason=e))
        return

    await update.message.reply_text(
        TASK_CREATED_MESSAGE.format(
            task_id=task.id,
            title=task.title,
            points=task.points_reward,
            cooldown=format_cooldown(task.cooldown_seconds),
        )
    )
    logger.info(f"Admin {admin_user_id} created task {task.id} ({code}) in scope {settings.bot_scope}")


async def _set_task_active(
    update: Update, context: ContextTypes.DEFAULT_TYPE, active: bool
) -> None:
    command = "enabletask" if active else "disabletask"
    if not await _ensure_admin(update, command):
        return

    task_id = _parse_id_argument(context)
    if task_id is None:
        await update.message.reply_text(ADMIN_USAGE_MESSAGES[command])
        return

    try:
        get_database().set_task_active(task_id, active)
    except NotFoundError:
        await update.message.reply_text(TASK_NOT_FOUND_MESSAGE.format(task_id=task_id))
        return

    template = TASK_ENABLED_MESSAGE if active else TASK_DISABLED_MESSAGE
    await update.message.reply_text(template.format(task_id=task_id))
    logger.info(f"Admin {update.message.from_user.id} ran /{command} on task {task_id}")


async def handle_disabletask_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /disabletask TASK_ID. Disabled tasks can't be started."""
    if not update.message or not update.message.from_user:
        return
    await _set_task_active(update, context, active=False)


async def handle_enabletask_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /enabletask TASK_ID."""
    if not update.message or not update.message.from_user:
        return
    await _set_task_active(update, context, active=True)


async def _set_user_banned(
    update: Update, context: ContextTypes.DEFAULT_TYPE, banned: bool
) -> None:
    command = "ban" if banned else "unban"
    if not await _ensure_admin(update, command):
        return

    target_user_id = _parse_id_argument(context)
    if target_user_id is None:
        await update.message.reply_text(ADMIN_USAGE_MESSAGES[command])
        return

    try:
        get_database().set_user_banned(target_user_id, banned)
    except NotFoundError:
        await update.message.reply_text(USER_NOT_FOUND_MESSAGE.format(telegram_id=target_user_id))
        return

    template = USER_BANNED_ADMIN_MESSAGE if banned else USER_UNBANNED_ADMIN_MESSAGE
    await update.message.reply_text(template.format(telegram_id=target_user_id))
    logger.info(f"Admin {update.message.from_user.id} ran /{command} on user {target_user_id}")


async def handle_ban_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /ban TELEGRAM_ID.

    Banned users keep their ledger and history but can't start tasks and
    drop off the leaderboard.
    """
    if not update.message or not update.message.from_user:
        return
    await _set_user_banned(update, context, banned=True)


async def handle_unban_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /unban TELEGRAM_ID."""
    if not update.message or not update.message.from_user:
        return
    await _set_user_banned(update, context, banned=False)


async def handle_report_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /report to send an aggregate snapshot on demand.

    Usage: /report [daily|weekly|monthly], daily when omitted.

    Args:
        update: Telegram update containing the command.
        context: Bot context with helper methods.
    """
    if not update.message or not update.message.from_user:
        return

    if not await _ensure_admin(update, "report"):
        return

    raw_period = context.args[0].lower() if context.args else ReportPeriod.DAILY.value
    try:
        period = ReportPeriod(raw_period)
    except ValueError:
        await update.message.reply_text(ADMIN_USAGE_MESSAGES["report"])
        return

    settings = get_settings()
    snapshot = build_snapshot(
        get_database(),
        period,
        datetime.now(UTC),
        top_limit=settings.leaderboard_size,
    )
    await update.message.reply_text(format_snapshot(snapshot))
    logger.info(f"Admin {update.message.from_user.id} requested a {period} report")


async def handle_broadcast_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /broadcast to message every non-banned user.

    Usage: /broadcast MESSAGE...

    Delivery failures (blocked bot, deleted account) are counted and
    reported back to the admin once the broadcast is done.

    Args:
        update: Telegram update containing the command.
        context: Bot context with helper methods.
    """
    if not update.message or not update.message.from_user:
        return

    if not await _ensure_admin(update, "broadcast"):
        return

    text = " ".join(context.args or []).strip()
    if not text:
        await update.message.reply_text(ADMIN_USAGE_MESSAGES["broadcast"])
        return

    recipients = [user.telegram_id for user in get_database().list_active_users()]
    admin_user_id = update.message.from_user.id
    await update.message.reply_text(BROADCAST_STARTED_MESSAGE.format(total=len(recipients)))
    logger.info(f"Admin {admin_user_id} started a broadcast to {len(recipients)} user(s)")

    sent, failed = await send_to_chats(
        context.bot, recipients, BROADCAST_MESSAGE.format(text=text)
    )

    await update.message.reply_text(BROADCAST_COMPLETE_MESSAGE.format(sent=sent, failed=failed))
    logger.info(f"Broadcast by admin {admin_user_id} finished: {sent} sent, {failed} failed")
