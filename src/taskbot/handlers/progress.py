"""
Read-only progress command handlers.

/my_tasks, /progress, /score, /leaderboard and /rank. None of them change
state.
"""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from taskbot.config import get_settings
from taskbot.constants import (
    EMPTY_LEADERBOARD_MESSAGE,
    LEADERBOARD_HEADER,
    LEADERBOARD_ITEM,
    MY_TASKS_FOOTER,
    MY_TASKS_HEADER,
    MY_TASKS_ITEM,
    NO_USER_TASKS_MESSAGE,
    NOT_REGISTERED_MESSAGE,
    PROGRESS_MESSAGE,
    RANK_MESSAGE,
    SCORE_MESSAGE,
    USER_BANNED_MESSAGE,
)
from taskbot.database.models import as_utc
from taskbot.database.service import get_database
from taskbot.services.reports import build_leaderboard

logger = logging.getLogger(__name__)

MY_TASKS_LIMIT = 10


async def handle_my_tasks_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /my_tasks by listing the user's most recent assignments."""
    if not update.message or not update.message.from_user:
        return

    user_id = update.message.from_user.id
    settings = get_settings()
    db = get_database()
    logger.info(f"User {user_id} requested /my_tasks")

    user = db.get_user(user_id)
    if user is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return

    rows = db.list_user_assignments(user.id, scope=settings.bot_scope, limit=MY_TASKS_LIMIT)
    if not rows:
        await update.message.reply_text(NO_USER_TASKS_MESSAGE)
        return

    message = MY_TASKS_HEADER.format(scope=settings.bot_scope)
    for index, (assignment, task) in enumerate(rows, start=1):
        message += MY_TASKS_ITEM.format(
            index=index,
            title=task.title,
            status=assignment.status,
            started=as_utc(assignment.started_at).strftime("%Y-%m-%d"),
            points_line=f"🏆 Points: {assignment.score_earned}\n" if assignment.score_earned > 0 else "",
            task_id=task.id,
        )
    message += MY_TASKS_FOOTER

    await update.message.reply_text(message)


async def handle_progress_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /progress with assignment counts in this bot's scope."""
    if not update.message or not update.message.from_user:
        return

    user_id = update.message.from_user.id
    settings = get_settings()
    db = get_database()
    logger.info(f"User {user_id} requested /progress")

    user = db.get_user(user_id)
    if user is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return

    stats = db.get_user_assignment_stats(user.id, settings.bot_scope)
    await update.message.reply_text(
        PROGRESS_MESSAGE.format(
            scope=settings.bot_scope,
            completed=stats.completed,
            in_progress=stats.in_progress,
            points_earned=stats.points_earned,
            score=user.score,
            level=user.level,
        )
    )


async def handle_score_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /score with the user's ledger totals."""
    if not update.message or not update.message.from_user:
        return

    user_id = update.message.from_user.id
    logger.info(f"User {user_id} requested /score")

    user = get_database().get_user(user_id)
    if user is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return

    await update.message.reply_text(
        SCORE_MESSAGE.format(
            score=user.score,
            level=user.level,
            tasks_completed=user.tasks_completed,
            reputation=user.reputation,
        )
    )


async def handle_leaderboard_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /leaderboard with the top non-banned users."""
    if not update.message:
        return

    settings = get_settings()
    entries = build_leaderboard(get_database(), settings.leaderboard_size)
    if not entries:
        await update.message.reply_text(EMPTY_LEADERBOARD_MESSAGE)
        return

    message = LEADERBOARD_HEADER
    for entry in entries:
        message += LEADERBOARD_ITEM.format(
            rank=entry.rank,
            name=entry.display_name,
            score=entry.score,
            level=entry.level,
        )
    await update.message.reply_text(message)


async def handle_rank_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /rank with the user's leaderboard position."""
    if not update.message or not update.message.from_user:
        return

    user_id = update.message.from_user.id
    db = get_database()

    user = db.get_user(user_id)
    if user is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return
    if user.is_banned:
        await update.message.reply_text(USER_BANNED_MESSAGE)
        return

    rank = db.get_user_rank(user_id)
    await update.message.reply_text(RANK_MESSAGE.format(rank=rank, score=user.score))
