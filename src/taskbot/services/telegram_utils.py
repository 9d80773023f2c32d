"""
Shared Telegram utility functions.

This module provides common helper functions for working with
Telegram updates across different handlers and services.
"""

from telegram import Message
from telegram.ext import ContextTypes

from taskbot.services.assignments import PayloadKind, SubmissionPayload
from taskbot.services.session_store import InMemorySessionStore, SessionStore

SESSION_STORE_KEY = "sessions"


def get_session_store(context: ContextTypes.DEFAULT_TYPE) -> SessionStore:
    """
    Get the session store shared by all handlers.

    The store is injected into bot_data at startup; an in-memory store is
    created on first use if none was injected.

    Args:
        context: Bot context.

    Returns:
        SessionStore: The shared session store.
    """
    return context.bot_data.setdefault(SESSION_STORE_KEY, InMemorySessionStore())  # type: ignore[union-attr]


def get_matched_task_id(context: ContextTypes.DEFAULT_TYPE) -> int | None:
    """
    Extract the numeric task ID captured by a command regex like /task_(\\d+).

    Returns:
        int | None: The task ID, or None if the handler had no regex match.
    """
    if not context.matches:
        return None
    return int(context.matches[0].group(1))


def extract_submission_payload(message: Message) -> SubmissionPayload | None:
    """
    Build a submission payload from a text, photo or document message.

    For photos the largest size (last in the list) is used.

    Args:
        message: Incoming Telegram message.

    Returns:
        SubmissionPayload | None: Payload, or None for unsupported messages.
    """
    if message.photo:
        photo = message.photo[-1]
        return SubmissionPayload(
            kind=PayloadKind.PHOTO,
            file_id=photo.file_id,
            caption=message.caption,
        )
    if message.document:
        document = message.document
        return SubmissionPayload(
            kind=PayloadKind.DOCUMENT,
            file_id=document.file_id,
            file_name=document.file_name,
            mime_type=document.mime_type,
            caption=message.caption,
        )
    if message.text is not None:
        return SubmissionPayload(kind=PayloadKind.TEXT, text=message.text)
    return None
