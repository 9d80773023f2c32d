"""
Error taxonomy for the task workflow.

Every error here is caught at the command-handler boundary and turned into
a user-visible reply. None of them should crash the bot.
"""

from datetime import timedelta


class TaskBotError(Exception):
    """Base class for all workflow errors."""


class NotFoundError(TaskBotError):
    """A referenced user, task or assignment is missing or inactive."""


class UserBannedError(TaskBotError):
    """The user is banned and cannot take part in the workflow."""


class AlreadyInProgressError(TaskBotError):
    """The user already has an open assignment for this task."""

    def __init__(self, user_id: int, task_id: int):
        super().__init__(f"User {user_id} already has task {task_id} in progress")
        self.user_id = user_id
        self.task_id = task_id


class OnCooldownError(TaskBotError):
    """
    The task was completed too recently to be started again.

    Attributes:
        remaining: Wall-clock time until the cooldown expires.
    """

    def __init__(self, task_id: int, remaining: timedelta):
        super().__init__(f"Task {task_id} is on cooldown for another {remaining}")
        self.task_id = task_id
        self.remaining = remaining


class ValidationError(TaskBotError):
    """A submission payload or profile input is malformed."""


class PersistenceError(TaskBotError):
    """The datastore could not be reached. Not retried automatically."""
