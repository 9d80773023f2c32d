"""
Registration and help command handlers.

/start registers the user on first contact (or refreshes their names on
later visits) and /help lists the available commands. A first /start may
carry a referral code (/start REF123) that credits the referrer.
"""

import logging

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from taskbot.constants import (
    HELP_MESSAGE,
    REFERRAL_REWARD_MESSAGE,
    WELCOME_BACK_MESSAGE,
    WELCOME_MESSAGE,
)
from taskbot.database.models import User
from taskbot.database.service import REFERRAL_BONUS, get_database

logger = logging.getLogger(__name__)


async def _notify_referrer(
    context: ContextTypes.DEFAULT_TYPE, referrer: User, new_user_name: str
) -> None:
    if not referrer.wants("notifications"):
        return

    referrals = referrer.profile.get("referrals", [])
    try:
        await context.bot.send_message(
            chat_id=referrer.telegram_id,
            text=REFERRAL_REWARD_MESSAGE.format(
                name=new_user_name,
                bonus=REFERRAL_BONUS,
                total=len(referrals),
            ),
        )
    except TelegramError as e:
        logger.error(f"Failed to notify referrer {referrer.telegram_id}: {e}")


async def handle_start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Handle /start: register new users and greet returning ones.

    Args:
        update: Telegram update containing the command.
        context: Bot context with helper methods. context.args[0], when
            present on first contact, is treated as a referral code.
    """
    if not update.message or not update.message.from_user:
        return

    from_user = update.message.from_user
    db = get_database()

    user, created = db.get_or_create_user(
        telegram_id=from_user.id,
        first_name=from_user.first_name,
        username=from_user.username,
        last_name=from_user.last_name,
        language=from_user.language_code,
    )

    if created:
        await update.message.reply_text(
            WELCOME_MESSAGE.format(
                name=from_user.first_name,
                referral_code=user.referral_code,
            )
        )
        logger.info(f"User {from_user.id} ({from_user.full_name}) registered via /start")

        if context.args:
            referrer = db.apply_referral(from_user.id, context.args[0])
            if referrer is None:
                logger.info(f"Ignored referral code {context.args[0]!r} from user {from_user.id}")
            else:
                await _notify_referrer(context, referrer, from_user.first_name)
        return

    await update.message.reply_text(
        WELCOME_BACK_MESSAGE.format(
            name=from_user.first_name,
            score=user.score,
            level=user.level,
        )
    )
    logger.info(f"User {from_user.id} ({from_user.full_name}) returned via /start")


async def handle_help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help by listing the available commands."""
    if not update.message:
        return

    await update.message.reply_text(HELP_MESSAGE)
