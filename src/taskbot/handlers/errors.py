"""
Application-wide error handler.

Anything a command handler did not answer itself ends up here. The error
is logged with its traceback and the user gets a generic reply, so one
failing update never takes the bot down.
"""

import logging

from telegram import Update
from telegram.error import TelegramError
from telegram.ext import ContextTypes

from taskbot.constants import GENERIC_ERROR_MESSAGE, PERSISTENCE_ERROR_MESSAGE
from taskbot.errors import PersistenceError

logger = logging.getLogger(__name__)


async def handle_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Log an unhandled error and tell the user something went wrong.

    Args:
        update: The update being processed, if any.
        context: Bot context; context.error holds the exception.
    """
    error = context.error
    logger.error(f"Unhandled error while processing update: {error}", exc_info=error)

    if not isinstance(update, Update) or not update.effective_message:
        return

    reply = PERSISTENCE_ERROR_MESSAGE if isinstance(error, PersistenceError) else GENERIC_ERROR_MESSAGE
    try:
        await update.effective_message.reply_text(reply)
    except TelegramError as e:
        logger.warning(f"Could not send error reply: {e}")
