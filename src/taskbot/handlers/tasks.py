"""
Task workflow command handlers.

This module handles the commands that drive the assignment lifecycle:
1. /tasks lists the active catalog of this bot's scope
2. /task_<id> starts an assignment (duplicate and cooldown guarded)
3. /submit_<id> opens a submission prompt in the session store
4. /cancel_<id> abandons an assignment, /cancel aborts the open prompt

The submission itself arrives as a free-form private message and is
handled in taskbot.handlers.dm.
"""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from taskbot.config import get_settings
from taskbot.constants import (
    NO_ACTIVE_TASK_MESSAGE,
    NO_TASKS_MESSAGE,
    NOT_REGISTERED_MESSAGE,
    NOTHING_TO_CANCEL_MESSAGE,
    PROMPT_CANCELLED_MESSAGE,
    SUBMIT_PROMPT_MESSAGE,
    TASK_ALREADY_IN_PROGRESS_MESSAGE,
    TASK_ASSIGNED_MESSAGE,
    TASK_CANCELLED_MESSAGE,
    TASK_LIST_FOOTER,
    TASK_LIST_HEADER,
    TASK_LIST_ITEM,
    TASK_NOT_FOUND_MESSAGE,
    TASK_ON_COOLDOWN_MESSAGE,
    USER_BANNED_MESSAGE,
    format_cooldown,
    format_duration,
)
from taskbot.database.service import get_database
from taskbot.errors import (
    AlreadyInProgressError,
    NotFoundError,
    OnCooldownError,
    UserBannedError,
)
from taskbot.services.assignments import AssignmentTracker
from taskbot.services.catalog import TaskCatalog
from taskbot.services.session_store import AwaitingKind, AwaitingMarker
from taskbot.services.telegram_utils import get_matched_task_id, get_session_store

logger = logging.getLogger(__name__)

DESCRIPTION_PREVIEW_LENGTH = 50


async def handle_tasks_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /tasks by listing active tasks, highest reward first.

    Args:
        update: Telegram update containing the command.
        context: Bot context with helper methods.
    """
    if not update.message or not update.message.from_user:
        return

    user_id = update.message.from_user.id
    settings = get_settings()
    db = get_database()
    logger.info(f"User {user_id} requested /tasks")

    if db.get_user(user_id) is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return

    tasks = TaskCatalog(db).list_active(settings.bot_scope, limit=settings.task_list_limit)
    if not tasks:
        await update.message.reply_text(NO_TASKS_MESSAGE)
        return

    message = TASK_LIST_HEADER.format(scope=settings.bot_scope)
    for index, task in enumerate(tasks, start=1):
        description = task.description or "No description"
        if len(description) > DESCRIPTION_PREVIEW_LENGTH:
            description = description[:DESCRIPTION_PREVIEW_LENGTH] + "..."
        message += TASK_LIST_ITEM.format(
            index=index,
            title=task.title,
            description=description,
            points=task.points_reward,
            cooldown=format_cooldown(task.cooldown_seconds),
            task_id=task.id,
        )
    message += TASK_LIST_FOOTER

    await update.message.reply_text(message)


async def handle_task_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /task_<id> by starting an assignment.

    Guard violations (unknown task, banned user, task already in progress,
    cooldown) are answered with a specific message.

    Args:
        update: Telegram update containing the command.
        context: Bot context; context.matches holds the task ID.
    """
    if not update.message or not update.message.from_user:
        return

    task_id = get_matched_task_id(context)
    if task_id is None:
        return

    user_id = update.message.from_user.id
    settings = get_settings()
    db = get_database()
    logger.info(f"User {user_id} requested /task_{task_id}")

    if db.get_user(user_id) is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return

    tracker = AssignmentTracker(db)
    try:
        assignment = tracker.start(user_id, task_id, scope=settings.bot_scope)
    except UserBannedError:
        await update.message.reply_text(USER_BANNED_MESSAGE)
        logger.info(f"Banned user {user_id} tried to start task {task_id}")
        return
    except NotFoundError:
        await update.message.reply_text(TASK_NOT_FOUND_MESSAGE.format(task_id=task_id))
        return
    except AlreadyInProgressError:
        await update.message.reply_text(TASK_ALREADY_IN_PROGRESS_MESSAGE.format(task_id=task_id))
        return
    except OnCooldownError as e:
        await update.message.reply_text(
            TASK_ON_COOLDOWN_MESSAGE.format(remaining=format_duration(e.remaining))
        )
        logger.info(f"User {user_id} hit cooldown on task {task_id} ({e.remaining} remaining)")
        return

    task = db.get_task(assignment.task_id)
    requirements = task.requirements_map
    await update.message.reply_text(
        TASK_ASSIGNED_MESSAGE.format(
            title=task.title,
            description=task.description or "No description provided",
            points=task.points_reward,
            requirements=(
                ", ".join(f"{key}: {value}" for key, value in requirements.items())
                if requirements
                else "None"
            ),
            task_id=task.id,
        )
    )


async def handle_submit_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /submit_<id> by asking for the submission content.

    Leaves a submission marker in the session store; the next text, photo
    or document message from the user completes the assignment.

    Args:
        update: Telegram update containing the command.
        context: Bot context; context.matches holds the task ID.
    """
    if not update.message or not update.message.from_user:
        return

    task_id = get_matched_task_id(context)
    if task_id is None:
        return

    user_id = update.message.from_user.id
    db = get_database()
    logger.info(f"User {user_id} requested /submit_{task_id}")

    if db.get_user(user_id) is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return

    assignment = AssignmentTracker(db).find_in_flight(user_id, task_id)
    if assignment is None:
        await update.message.reply_text(NO_ACTIVE_TASK_MESSAGE.format(task_id=task_id))
        return

    task = db.get_task(task_id)
    get_session_store(context).set_awaiting(
        user_id,
        AwaitingMarker(
            kind=AwaitingKind.SUBMISSION,
            assignment_id=assignment.id,
            task_id=task_id,
        ),
    )
    await update.message.reply_text(
        SUBMIT_PROMPT_MESSAGE.format(title=task.title if task else f"task {task_id}")
    )


async def handle_cancel_task_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /cancel_<id> by abandoning the user's open assignment of a task.

    Args:
        update: Telegram update containing the command.
        context: Bot context; context.matches holds the task ID.
    """
    if not update.message or not update.message.from_user:
        return

    task_id = get_matched_task_id(context)
    if task_id is None:
        return

    user_id = update.message.from_user.id
    db = get_database()
    logger.info(f"User {user_id} requested /cancel_{task_id}")

    tracker = AssignmentTracker(db)
    assignment = tracker.find_in_flight(user_id, task_id)
    if assignment is None:
        await update.message.reply_text(NO_ACTIVE_TASK_MESSAGE.format(task_id=task_id))
        return

    tracker.cancel(assignment.id)

    sessions = get_session_store(context)
    marker = sessions.get_awaiting(user_id)
    if marker is not None and marker.assignment_id == assignment.id:
        sessions.clear(user_id)

    await update.message.reply_text(TASK_CANCELLED_MESSAGE.format(task_id=task_id))


async def handle_cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /cancel by dropping the user's open input prompt, if any."""
    if not update.message or not update.message.from_user:
        return

    user_id = update.message.from_user.id
    sessions = get_session_store(context)

    if sessions.get_awaiting(user_id) is None:
        await update.message.reply_text(NOTHING_TO_CANCEL_MESSAGE)
        return

    sessions.clear(user_id)
    await update.message.reply_text(PROMPT_CANCELLED_MESSAGE)
    logger.info(f"User {user_id} cancelled their open prompt")
