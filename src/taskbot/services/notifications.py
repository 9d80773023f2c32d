"""
Outbound events emitted by the task workflow.

The workflow only builds well-formed payloads here. Delivery to admins
and users goes through the bot; retries and richer channels (email, spreadsheets)
are left to external consumers of to_payload().
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from telegram import Bot
from telegram.error import TelegramError

from taskbot.services.assignments import SubmissionResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskCompletedEvent:
    """Emitted once per completed assignment."""

    assignment_id: int
    task_id: int
    task_title: str
    telegram_id: int
    points: int
    new_score: int
    new_level: int
    leveled_up: bool
    completed_at: datetime

    @classmethod
    def from_result(cls, result: SubmissionResult) -> "TaskCompletedEvent":
        return cls(
            assignment_id=result.assignment_id,
            task_id=result.task.id,
            task_title=result.task.title,
            telegram_id=result.telegram_id,
            points=result.points_awarded,
            new_score=result.new_score,
            new_level=result.new_level,
            leveled_up=result.leveled_up,
            completed_at=result.completed_at,
        )

    def is_high_value(self, threshold: int) -> bool:
        return self.points >= threshold

    def to_payload(self) -> dict[str, Any]:
        return {
            "event": "task_completed",
            "assignment_id": self.assignment_id,
            "task_id": self.task_id,
            "telegram_id": self.telegram_id,
            "points": self.points,
            "new_score": self.new_score,
            "new_level": self.new_level,
            "leveled_up": self.leveled_up,
            "completed_at": self.completed_at.isoformat(),
        }


async def send_to_chats(bot: Bot, chat_ids: list[int], text: str) -> tuple[int, int]:
    """
    Send a plain text message to every chat in turn.

    Failures are logged per chat and never raised, so one blocked user
    does not stop the rest.

    Returns:
        tuple[int, int]: (delivered, failed) counts.
    """
    delivered = 0
    failed = 0
    for chat_id in chat_ids:
        try:
            await bot.send_message(chat_id=chat_id, text=text)
            delivered += 1
        except TelegramError as e:
            failed += 1
            logger.error(f"Failed to send message to {chat_id}: {e}")
    return delivered, failed


async def notify_admins(bot: Bot, admin_ids: list[int], text: str) -> int:
    """
    Send a plain text message to every admin.

    Returns:
        int: Number of admins reached.
    """
    delivered, _ = await send_to_chats(bot, admin_ids, text)
    return delivered
