"""
Database models for the task bot.

This module defines SQLModel schemas for persisting bot data to SQLite:
participants (users), the admin-curated task catalog, and assignments
linking a user to one attempt at a task.

Free-form fields (profile, requirements, metadata, submitted payload) are
stored as JSON text and parsed to dicts at read time.
"""

import json
import logging
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

logger = logging.getLogger(__name__)


class TaskScope(StrEnum):
    """Bot scope a task belongs to."""

    IN = "IN"
    OUT = "OUT"
    AIRDROP = "AIRDROP"
    MAIN = "MAIN"


class AssignmentStatus(StrEnum):
    """
    Lifecycle of an assignment.

    PENDING is reserved for a pre-assignment review step; start() goes
    straight to IN_PROGRESS. The value stays so stored rows keep parsing.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    EXPIRED = "expired"


IN_FLIGHT_STATUSES = (AssignmentStatus.PENDING, AssignmentStatus.IN_PROGRESS)
TERMINAL_STATUSES = (
    AssignmentStatus.COMPLETED,
    AssignmentStatus.FAILED,
    AssignmentStatus.EXPIRED,
)


def load_blob(raw: str | None) -> dict[str, Any]:
    """
    Parse a JSON text blob into a dict.

    Never raises: anything that is not a JSON object becomes an empty dict.
    """
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Discarding unparseable JSON blob")
        return {}
    return value if isinstance(value, dict) else {}


def dump_blob(value: dict[str, Any] | None) -> str:
    """Serialize a dict into a JSON text blob."""
    return json.dumps(value or {}, default=str)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def utcnow() -> datetime:
    return datetime.now(UTC)


class User(SQLModel, table=True):
    """
    A participant in the task ecosystem.

    Users are created on first contact and never hard-deleted; banning
    sets is_banned instead. Level is always derived from score.

    Attributes:
        id: Primary key (auto-generated).
        telegram_id: Telegram user ID (unique).
        score: Total points, never negative.
        level: score // 100 + 1, recomputed on every completion.
        reputation: Free reputation counter.
        tasks_completed: Number of completed assignments, only increases.
        profile_data: JSON blob with settings and join metadata.
    """

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    telegram_id: int = Field(index=True, unique=True)
    username: str | None = Field(default=None)
    first_name: str = Field(default="")
    last_name: str | None = Field(default=None)
    email: str | None = Field(default=None)
    phone: str | None = Field(default=None)
    referral_code: str | None = Field(default=None, unique=True)
    score: int = Field(default=0, ge=0, index=True)
    level: int = Field(default=1, ge=1)
    reputation: int = Field(default=0)
    tasks_completed: int = Field(default=0, ge=0)
    is_verified: bool = Field(default=False)
    is_banned: bool = Field(default=False, index=True)
    profile_data: str = Field(default="{}")
    created_at: datetime = Field(default_factory=utcnow, index=True)
    last_active: datetime = Field(default_factory=utcnow)

    @property
    def profile(self) -> dict[str, Any]:
        return load_blob(self.profile_data)

    @property
    def feature_settings(self) -> dict[str, Any]:
        """Per-user toggles stored under profile "settings". Missing keys mean on."""
        settings = self.profile.get("settings")
        return settings if isinstance(settings, dict) else {}

    def wants(self, feature: str) -> bool:
        return bool(self.feature_settings.get(feature, True))

    @property
    def display_name(self) -> str:
        if self.username:
            return f"@{self.username}"
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or f"User {self.telegram_id}"


class Task(SQLModel, table=True):
    """
    An assignable task in the catalog.

    Tasks are soft-disabled through is_active and never removed while
    assignments reference them.

    Attributes:
        code: Unique task code.
        scope: Bot scope (IN, OUT, AIRDROP, MAIN).
        points_reward: Points credited on completion.
        cooldown_seconds: Minimum time between completions by the same
            user; 0 means no cooldown.
    """

    __tablename__ = "tasks"

    id: int | None = Field(default=None, primary_key=True)
    code: str = Field(index=True, unique=True)
    scope: str = Field(default=TaskScope.IN.value, index=True)
    title: str
    description: str | None = Field(default=None)
    points_reward: int = Field(default=10, ge=0)
    cooldown_seconds: int = Field(default=3600, ge=0)
    is_active: bool = Field(default=True, index=True)
    requirements: str = Field(default="{}")
    meta_data: str = Field(default="{}", sa_column_kwargs={"name": "metadata"})
    created_by: int | None = Field(default=None)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def requirements_map(self) -> dict[str, Any]:
        return load_blob(self.requirements)


class Assignment(SQLModel, table=True):
    """
    One attempt by one user at one task.

    A partial unique index guarantees at most one pending/in-progress
    assignment per (user, task) pair.

    Attributes:
        user_id: users.id of the owner.
        task_id: tasks.id of the task.
        status: One of AssignmentStatus.
        submitted_data: JSON blob of the submission payload.
        score_earned: Points credited, 0 until completed.
        started_at: When the assignment was started.
        completed_at: When the assignment was completed, if ever.
    """

    __tablename__ = "assignments"
    __table_args__ = (
        Index(
            "uq_assignments_in_flight",
            "user_id",
            "task_id",
            unique=True,
            sqlite_where=text("status IN ('pending', 'in_progress')"),
        ),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="users.id", index=True)
    task_id: int = Field(foreign_key="tasks.id", index=True)
    status: str = Field(default=AssignmentStatus.IN_PROGRESS.value, index=True)
    submitted_data: str = Field(default="{}")
    score_earned: int = Field(default=0, ge=0)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = Field(default=None, index=True)
    meta_data: str = Field(default="{}", sa_column_kwargs={"name": "metadata"})

    @property
    def payload(self) -> dict[str, Any]:
        return load_blob(self.submitted_data)
