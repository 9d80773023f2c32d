"""
DM (Direct Message) handler for the task bot.

This module handles free-form private messages (text, photo, document).
They only mean something while the user has an open prompt in the
session store:
1. Submission prompt (from /submit_<id>): the message completes the
   assignment and credits the points
2. Profile field prompt (from /edit_email, /edit_phone, /edit_name):
   the message is validated and stored on the user
Messages without an open prompt are ignored.
"""

import logging
import re

from telegram import Message, Update
from telegram.ext import ContextTypes

from taskbot.config import get_settings
from taskbot.constants import (
    EMAIL_PATTERN,
    HIGH_VALUE_COMPLETION_MESSAGE,
    LEVEL_UP_MESSAGE,
    PHONE_PATTERN,
    PROFILE_FIELD_INVALID,
    PROFILE_FIELD_UPDATED_MESSAGE,
    SUBMISSION_FAILED_MESSAGE,
    SUBMISSION_INVALID_MESSAGE,
    TASK_COMPLETED_FOOTER,
    TASK_COMPLETED_MESSAGE,
)
from taskbot.database.service import get_database
from taskbot.errors import NotFoundError, ValidationError
from taskbot.services.assignments import AssignmentTracker
from taskbot.services.notifications import TaskCompletedEvent, notify_admins
from taskbot.services.session_store import AwaitingKind, AwaitingMarker
from taskbot.services.telegram_utils import extract_submission_payload, get_session_store

logger = logging.getLogger(__name__)


def validate_profile_field(field: str, value: str) -> str:
    """
    Validate and normalize a profile field input.

    Args:
        field: "email", "phone" or "name".
        value: Raw user input.

    Returns:
        str: The normalized value.

    Raises:
        ValidationError: If the input does not fit the field.
    """
    value = value.strip()
    if field == "email" and re.match(EMAIL_PATTERN, value):
        return value.lower()
    if field == "phone" and re.match(PHONE_PATTERN, value):
        return value
    if field == "name" and value:
        return " ".join(value.split())
    raise ValidationError(f"Invalid {field}: {value!r}")


async def handle_dm(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Route a free-form private message to the workflow awaiting it.

    Args:
        update: Telegram update containing the message.
        context: Bot context with helper methods.
    """
    if not update.message or not update.message.from_user:
        return

    if update.effective_chat and update.effective_chat.type != "private":
        return

    user_id = update.message.from_user.id
    marker = get_session_store(context).get_awaiting(user_id)
    if marker is None:
        logger.debug(f"Ignoring DM from user {user_id} without an open prompt")
        return

    if marker.kind == AwaitingKind.SUBMISSION:
        await _handle_submission(update.message, context, marker)
    elif marker.kind == AwaitingKind.PROFILE_FIELD:
        await _handle_profile_field(update.message, context, marker)


async def _handle_submission(
    message: Message, context: ContextTypes.DEFAULT_TYPE, marker: AwaitingMarker
) -> None:
    user_id = message.from_user.id
    sessions = get_session_store(context)
    settings = get_settings()

    payload = extract_submission_payload(message)
    if payload is None:
        await message.reply_text(SUBMISSION_INVALID_MESSAGE)
        return

    tracker = AssignmentTracker(get_database())
    try:
        result = tracker.submit(marker.assignment_id, payload)
    except ValidationError as e:
        # Prompt stays open so the user can resend
        await message.reply_text(SUBMISSION_INVALID_MESSAGE)
        logger.info(f"Rejected submission from user {user_id}: {e}")
        return
    except NotFoundError as e:
        sessions.clear(user_id)
        await message.reply_text(SUBMISSION_FAILED_MESSAGE)
        logger.warning(f"Submission from user {user_id} failed: {e}")
        return

    sessions.clear(user_id)

    reply = TASK_COMPLETED_MESSAGE.format(
        title=result.task.title,
        points=result.points_awarded,
        score=result.new_score,
    )
    if result.leveled_up:
        reply += LEVEL_UP_MESSAGE.format(level=result.new_level)
    reply += TASK_COMPLETED_FOOTER
    await message.reply_text(reply)

    event = TaskCompletedEvent.from_result(result)
    logger.debug(f"Task completed event: {event.to_payload()}")
    if event.is_high_value(settings.high_value_reward_threshold):
        await notify_admins(
            context.bot,
            settings.admin_ids,
            HIGH_VALUE_COMPLETION_MESSAGE.format(
                telegram_id=event.telegram_id,
                title=event.task_title,
                task_id=event.task_id,
                points=event.points,
                score=event.new_score,
                level=event.new_level,
                completed_at=event.completed_at.isoformat(timespec="seconds"),
            ),
        )
        logger.info(f"Notified admins about high-value completion {event.assignment_id}")


async def _handle_profile_field(
    message: Message, context: ContextTypes.DEFAULT_TYPE, marker: AwaitingMarker
) -> None:
    user_id = message.from_user.id
    field = marker.field

    try:
        value = validate_profile_field(field, message.text or "")
    except ValidationError:
        await message.reply_text(PROFILE_FIELD_INVALID[field])
        return

    get_database().update_contact_field(user_id, field, value)
    get_session_store(context).clear(user_id)
    await message.reply_text(PROFILE_FIELD_UPDATED_MESSAGE.format(field=field))
    logger.info(f"User {user_id} updated their {field}")
