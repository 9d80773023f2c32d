"""
Profile command handlers.

/profile shows the stored contact fields and settings. /edit_email,
/edit_phone and /edit_name open a profile field prompt; the answer is
handled in taskbot.handlers.dm. /features and /toggle_feature read and
flip the on/off settings kept in the profile blob.
"""

import logging

from telegram import Update
from telegram.ext import ContextTypes

from taskbot.constants import (
    FEATURE_SETTINGS,
    FEATURE_TOGGLED_MESSAGE,
    FEATURES_FOOTER,
    FEATURES_HEADER,
    FEATURES_ITEM,
    NOT_REGISTERED_MESSAGE,
    PROFILE_FIELD_COMMANDS,
    PROFILE_FIELD_PROMPTS,
    PROFILE_MESSAGE,
    UNKNOWN_FEATURE_MESSAGE,
)
from taskbot.database.service import get_database
from taskbot.services.session_store import AwaitingKind, AwaitingMarker
from taskbot.services.telegram_utils import get_session_store

logger = logging.getLogger(__name__)


async def handle_profile_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /profile by showing the user's contact fields."""
    if not update.message or not update.message.from_user:
        return

    user = get_database().get_user(update.message.from_user.id)
    if user is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return

    await update.message.reply_text(
        PROFILE_MESSAGE.format(
            name=" ".join(part for part in (user.first_name, user.last_name) if part) or "-",
            email=user.email or "-",
            phone=user.phone or "-",
            referral_code=user.referral_code or "-",
            notifications="on" if user.wants("notifications") else "off",
        )
    )


async def handle_edit_profile_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /edit_email, /edit_phone and /edit_name.

    Opens a profile field prompt, replacing any prompt the user had open.
    """
    if not update.message or not update.message.from_user or not update.message.text:
        return

    command = update.message.text.split()[0].lstrip("/").split("@")[0]
    field = PROFILE_FIELD_COMMANDS.get(command)
    if field is None:
        return

    user_id = update.message.from_user.id
    if get_database().get_user(user_id) is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return

    get_session_store(context).set_awaiting(
        user_id,
        AwaitingMarker(kind=AwaitingKind.PROFILE_FIELD, field=field),
    )
    await update.message.reply_text(PROFILE_FIELD_PROMPTS[field])
    logger.info(f"User {user_id} started editing their {field}")


async def handle_features_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /features by listing the user's settings and their state."""
    if not update.message or not update.message.from_user:
        return

    user = get_database().get_user(update.message.from_user.id)
    if user is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return

    message = FEATURES_HEADER
    for label, key in FEATURE_SETTINGS.values():
        message += FEATURES_ITEM.format(label=label, state="on" if user.wants(key) else "off")
    message += FEATURES_FOOTER.format(names=", ".join(FEATURE_SETTINGS))
    await update.message.reply_text(message)


async def handle_toggle_feature_command(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """
    Handle /toggle_feature NAME.

    Flips one setting and writes the whole profile blob back. A profile
    blob that can't be parsed starts over from an empty one.

    Args:
        update: Telegram update containing the command.
        context: Bot context; context.args[0] is the feature name.
    """
    if not update.message or not update.message.from_user:
        return

    user_id = update.message.from_user.id
    db = get_database()
    user = db.get_user(user_id)
    if user is None:
        await update.message.reply_text(NOT_REGISTERED_MESSAGE)
        return

    name = context.args[0].lower() if context.args else ""
    if name not in FEATURE_SETTINGS:
        await update.message.reply_text(UNKNOWN_FEATURE_MESSAGE)
        return

    label, key = FEATURE_SETTINGS[name]
    enabled = not user.wants(key)

    profile = user.profile
    profile["settings"] = {**user.feature_settings, key: enabled}
    db.update_profile(user_id, profile)

    await update.message.reply_text(
        FEATURE_TOGGLED_MESSAGE.format(label=label, state="enabled" if enabled else "disabled")
    )
    logger.info(f"User {user_id} set {key} to {enabled}")
