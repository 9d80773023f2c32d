"""
Assignment tracker for the task workflow.

This module owns the assignment lifecycle:

    in_progress -> completed | failed | expired

start() opens an assignment after the duplicate and cooldown guards,
submit() completes it and credits the owner through the scoring engine,
cancel() abandons it. PENDING is reserved and never produced here.

Concurrent start() calls for the same (user, task) are resolved by the
partial unique index on assignments: the loser gets AlreadyInProgressError.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from taskbot.database.models import (
    IN_FLIGHT_STATUSES,
    Assignment,
    AssignmentStatus,
    Task,
    TaskScope,
    as_utc,
    utcnow,
)
from taskbot.database.service import DatabaseService
from taskbot.errors import (
    AlreadyInProgressError,
    NotFoundError,
    OnCooldownError,
    UserBannedError,
    ValidationError,
)
from taskbot.services.catalog import TaskCatalog
from taskbot.services.scoring import UserProgress, apply_completion

logger = logging.getLogger(__name__)


class PayloadKind(StrEnum):
    TEXT = "text"
    PHOTO = "photo"
    DOCUMENT = "document"


@dataclass(frozen=True)
class SubmissionPayload:
    """
    What a user sent to complete a task.

    Content is stored verbatim; only the type tag and presence of content
    are checked.

    Attributes:
        kind: Text, photo or document.
        text: Text response (text payloads).
        file_id: Telegram file ID (photo and document payloads).
        file_name: Original file name (documents).
        mime_type: MIME type (documents).
        caption: Optional caption of a photo or document.
    """

    kind: PayloadKind
    text: str | None = None
    file_id: str | None = None
    file_name: str | None = None
    mime_type: str | None = None
    caption: str | None = None

    def validate(self) -> None:
        """
        Raises:
            ValidationError: If the payload carries no usable content.
        """
        if self.kind == PayloadKind.TEXT:
            if not self.text or not self.text.strip():
                raise ValidationError("Text response is empty")
        elif self.kind in (PayloadKind.PHOTO, PayloadKind.DOCUMENT):
            if not self.file_id:
                raise ValidationError(f"{self.kind} submission has no file reference")
        else:
            raise ValidationError(f"Unsupported submission type: {self.kind}")

    def to_record(self, submitted_at: datetime) -> dict[str, Any]:
        record: dict[str, Any] = {"type": self.kind.value, "submitted_at": submitted_at.isoformat()}
        if self.kind == PayloadKind.TEXT:
            record["response"] = self.text
        else:
            record["file_id"] = self.file_id
            record["caption"] = self.caption or ""
            if self.kind == PayloadKind.DOCUMENT:
                record["file_name"] = self.file_name
                record["mime_type"] = self.mime_type
        return record


@dataclass(frozen=True)
class SubmissionResult:
    """Outcome of a successful submit()."""

    assignment_id: int
    task: Task
    telegram_id: int
    points_awarded: int
    new_score: int
    new_level: int
    leveled_up: bool
    completed_at: datetime


class AssignmentTracker:
    """
    Start, submit and cancel assignments.

    Args:
        db: Database service.
        catalog: Task catalog; built from db when omitted.
        clock: Returns the current UTC time. Injected for tests.
    """

    def __init__(
        self,
        db: DatabaseService,
        catalog: TaskCatalog | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._db = db
        self._catalog = catalog or TaskCatalog(db)
        self._clock = clock

    def start(self, telegram_id: int, task_id: int, scope: TaskScope | None = None) -> Assignment:
        """
        Open an assignment of a task for a user.

        Args:
            telegram_id: Telegram user ID.
            task_id: Task to start.
            scope: If given, the task must belong to this scope.

        Returns:
            Assignment: The new in-progress assignment.

        Raises:
            NotFoundError: If the user is unregistered or the task is
                missing, inactive or out of scope.
            UserBannedError: If the user is banned.
            AlreadyInProgressError: If the pair already has an open assignment.
            OnCooldownError: If the last completion is within the cooldown.
        """
        user = self._db.get_user(telegram_id)
        if user is None:
            raise NotFoundError(f"User {telegram_id} is not registered")
        if user.is_banned:
            raise UserBannedError(f"User {telegram_id} is banned")

        task = self._catalog.get(task_id, scope=scope)

        if self._db.get_in_flight_assignment(user.id, task.id):
            raise AlreadyInProgressError(telegram_id, task.id)

        now = self._clock()
        if task.cooldown_seconds > 0:
            last = self._db.get_last_completed_assignment(user.id, task.id)
            if last is not None and last.completed_at is not None:
                cooldown_end = as_utc(last.completed_at) + timedelta(seconds=task.cooldown_seconds)
                if now < cooldown_end:
                    raise OnCooldownError(task.id, cooldown_end - now)

        assignment = self._db.create_assignment(user.id, task.id, started_at=now)
        logger.info(
            f"Assigned task {task.id} to user {telegram_id} "
            f"(assignment_id={assignment.id}, points={task.points_reward})"
        )
        return assignment

    def submit(self, assignment_id: int, payload: SubmissionPayload) -> SubmissionResult:
        """
        Complete an in-progress assignment and credit its owner.

        Args:
            assignment_id: Assignment to complete.
            payload: Submitted content, stored verbatim.

        Returns:
            SubmissionResult: Points awarded and the owner's new score/level.

        Raises:
            ValidationError: If the payload has no usable content.
            NotFoundError: If the assignment, its task or its owner vanished,
                or the assignment is not in progress.
        """
        payload.validate()

        assignment = self._db.get_assignment(assignment_id)
        if assignment is None or assignment.status != AssignmentStatus.IN_PROGRESS:
            raise NotFoundError(f"Assignment {assignment_id} is not in progress")

        task = self._db.get_task(assignment.task_id)
        if task is None:
            raise NotFoundError(f"Task {assignment.task_id} of assignment {assignment_id} vanished")

        user = self._db.get_user_by_id(assignment.user_id)
        if user is None:
            raise NotFoundError(f"Owner of assignment {assignment_id} vanished")

        result = apply_completion(
            UserProgress(
                score=user.score,
                level=user.level,
                tasks_completed=user.tasks_completed,
            ),
            task.points_reward,
        )
        now = self._clock()
        self._db.complete_assignment(
            assignment_id,
            submitted_data=payload.to_record(now),
            points=task.points_reward,
            completed_at=now,
            progress=result.progress,
        )

        logger.info(
            f"User {user.telegram_id} completed task {task.id} "
            f"(assignment_id={assignment_id}, points={task.points_reward}, "
            f"score={result.progress.score}, level_up={result.leveled_up})"
        )
        return SubmissionResult(
            assignment_id=assignment_id,
            task=task,
            telegram_id=user.telegram_id,
            points_awarded=result.points_awarded,
            new_score=result.progress.score,
            new_level=result.progress.level,
            leveled_up=result.leveled_up,
            completed_at=now,
        )

    def cancel(self, assignment_id: int) -> bool:
        """
        Abandon an assignment without any score effect.

        Cancelling an already terminal assignment is a no-op.

        Returns:
            bool: True if the assignment moved to failed.

        Raises:
            NotFoundError: If the assignment does not exist.
        """
        cancelled = self._db.transition_assignment(
            assignment_id, IN_FLIGHT_STATUSES, AssignmentStatus.FAILED
        )
        if cancelled:
            logger.info(f"Cancelled assignment {assignment_id}")
        return cancelled

    def find_in_flight(self, telegram_id: int, task_id: int) -> Assignment | None:
        """Get the open assignment of a user for a task, if any."""
        user = self._db.get_user(telegram_id)
        if user is None:
            return None
        return self._db.get_in_flight_assignment(user.id, task_id)

    def expire_stale(self, max_age: timedelta) -> list[Assignment]:
        """Mark in-progress assignments older than max_age as expired."""
        cutoff = self._clock() - max_age
        expired = self._db.expire_assignments_started_before(cutoff)
        if expired:
            logger.info(f"Expired {len(expired)} assignment(s) started before {cutoff.isoformat()}")
        return expired
