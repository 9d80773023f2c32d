"""
Database service for the task bot.

This module provides the DatabaseService class for all database operations,
plus module-level functions for initialization and access. Uses SQLModel
with SQLite backend for persistence.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlmodel import Session, SQLModel, col, create_engine, select

from taskbot.database.models import (
    IN_FLIGHT_STATUSES,
    Assignment,
    AssignmentStatus,
    Task,
    TaskScope,
    User,
    dump_blob,
)
from taskbot.errors import AlreadyInProgressError, NotFoundError, PersistenceError
from taskbot.services.scoring import UserProgress, compute_level

logger = logging.getLogger(__name__)

CONTACT_FIELDS = ("email", "phone", "name")

REFERRAL_BONUS = 100

DEFAULT_TASKS = (
    {
        "code": "join_telegram_group",
        "title": "Join Telegram Group",
        "description": "Join our official Telegram group",
        "points_reward": 50,
    },
    {
        "code": "follow_on_twitter",
        "title": "Follow on Twitter",
        "description": "Follow our Twitter account",
        "points_reward": 30,
    },
    {
        "code": "retweet_announcement",
        "title": "Retweet Announcement",
        "description": "Retweet our latest announcement",
        "points_reward": 25,
    },
)


def make_referral_code(telegram_id: int) -> str:
    """Referral code of a user. Built from the full Telegram ID so it is unique."""
    return f"REF{telegram_id}"


@dataclass(frozen=True)
class AssignmentStats:
    """Per-user assignment counters within one scope."""

    completed: int
    in_progress: int
    points_earned: int


class DatabaseService:
    """
    Service class for database operations.

    Handles CRUD operations for users, the task catalog and assignments.
    Connection failures surface as PersistenceError.
    """

    def __init__(self, database_path: str):
        """
        Initialize database connection and create tables.

        Args:
            database_path: Path to SQLite database file.
                Parent directories are created if they don't exist.
        """
        path = Path(database_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        self._engine = create_engine(f"sqlite:///{database_path}")
        SQLModel.metadata.create_all(self._engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with Session(self._engine) as session:
                yield session
        except OperationalError as e:
            logger.error(f"Database operation failed: {e}")
            raise PersistenceError(f"Database unavailable: {e}") from e

    # Users

    def get_or_create_user(
        self,
        telegram_id: int,
        first_name: str,
        username: str | None = None,
        last_name: str | None = None,
        language: str | None = None,
    ) -> tuple[User, bool]:
        """
        Get existing user or register a new one on first contact.

        Existing users get their names and last_active refreshed.

        Args:
            telegram_id: Telegram user ID.
            first_name: Telegram first name.
            username: Telegram username, if set.
            last_name: Telegram last name, if set.
            language: Telegram language code, stored in the profile blob.

        Returns:
            tuple[User, bool]: The user and True if it was just created.
        """
        with self._session() as session:
            statement = select(User).where(User.telegram_id == telegram_id)
            user = session.exec(statement).first()
            now = datetime.now(UTC)

            if user:
                user.username = username
                user.first_name = first_name
                user.last_name = last_name
                user.last_active = now
                session.add(user)
                session.commit()
                session.refresh(user)
                return user, False

            profile = {
                "join_date": now.isoformat(),
                "language": language or "en",
                "settings": {
                    "notifications": True,
                    "weekly_reports": True,
                },
            }
            user = User(
                telegram_id=telegram_id,
                username=username,
                first_name=first_name,
                last_name=last_name,
                referral_code=make_referral_code(telegram_id),
                profile_data=dump_blob(profile),
                created_at=now,
                last_active=now,
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            logger.info(f"Registered new user {telegram_id}")
            return user, True

    def get_user(self, telegram_id: int) -> User | None:
        """Get a user by Telegram ID."""
        with self._session() as session:
            statement = select(User).where(User.telegram_id == telegram_id)
            return session.exec(statement).first()

    def get_user_by_id(self, user_id: int) -> User | None:
        """Get a user by primary key."""
        with self._session() as session:
            return session.get(User, user_id)

    def set_user_banned(self, telegram_id: int, banned: bool) -> User:
        """
        Ban or unban a user. Users are never deleted.

        Raises:
            NotFoundError: If the user is not registered.
        """
        with self._session() as session:
            statement = select(User).where(User.telegram_id == telegram_id)
            user = session.exec(statement).first()
            if not user:
                raise NotFoundError(f"User {telegram_id} is not registered")

            user.is_banned = banned
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    def update_contact_field(self, telegram_id: int, field: str, value: str) -> User:
        """
        Update one contact field of a user.

        Args:
            telegram_id: Telegram user ID.
            field: "email", "phone" or "name". A name is split into
                first name and optional last name.
            value: Already validated input.

        Raises:
            ValueError: If the field is unknown.
            NotFoundError: If the user is not registered.
        """
        if field not in CONTACT_FIELDS:
            raise ValueError(f"Unknown contact field: {field}")

        with self._session() as session:
            statement = select(User).where(User.telegram_id == telegram_id)
            user = session.exec(statement).first()
            if not user:
                raise NotFoundError(f"User {telegram_id} is not registered")

            if field == "name":
                first_name, _, last_name = value.strip().partition(" ")
                user.first_name = first_name
                user.last_name = last_name.strip() or None
            elif field == "email":
                user.email = value
            else:
                user.phone = value
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    def update_profile(self, telegram_id: int, profile: dict[str, Any]) -> User:
        """
        Replace the profile blob of a user as a unit.

        Raises:
            NotFoundError: If the user is not registered.
        """
        with self._session() as session:
            statement = select(User).where(User.telegram_id == telegram_id)
            user = session.exec(statement).first()
            if not user:
                raise NotFoundError(f"User {telegram_id} is not registered")

            user.profile_data = dump_blob(profile)
            session.add(user)
            session.commit()
            session.refresh(user)
            return user

    def apply_referral(self, telegram_id: int, referral_code: str) -> User | None:
        """
        Credit the owner of a referral code for a newly registered user.

        The referrer gets REFERRAL_BONUS points (level recomputed) and the new
        user is appended to their profile "referrals" list; the new user's
        profile records "referred_by". Both rows are written in one
        transaction.

        Args:
            telegram_id: Telegram ID of the new user.
            referral_code: Code passed to /start.

        Returns:
            User | None: The credited referrer, or None if the code is
                unknown, belongs to the user itself, or the user was
                already referred.
        """
        with self._session() as session:
            user = session.exec(select(User).where(User.telegram_id == telegram_id)).first()
            referrer = session.exec(
                select(User).where(User.referral_code == referral_code)
            ).first()
            if not user or not referrer or referrer.id == user.id:
                return None

            user_profile = user.profile
            if "referred_by" in user_profile:
                return None

            now = datetime.now(UTC)
            referrer_profile = referrer.profile
            referrals = referrer_profile.get("referrals")
            if not isinstance(referrals, list):
                referrals = []
            referrals.append({"telegram_id": telegram_id, "joined_at": now.isoformat()})
            referrer_profile["referrals"] = referrals
            referrer.profile_data = dump_blob(referrer_profile)
            referrer.score += REFERRAL_BONUS
            referrer.level = compute_level(referrer.score)

            user_profile["referred_by"] = {
                "telegram_id": referrer.telegram_id,
                "referral_code": referral_code,
            }
            user.profile_data = dump_blob(user_profile)

            session.add(referrer)
            session.add(user)
            session.commit()
            session.refresh(referrer)
            logger.info(f"User {telegram_id} was referred by {referrer.telegram_id}")
            return referrer

    def get_top_users(self, limit: int) -> list[User]:
        """Get non-banned users ordered by score, oldest registration first on ties."""
        with self._session() as session:
            statement = (
                select(User)
                .where(~User.is_banned)
                .order_by(col(User.score).desc(), col(User.id))
                .limit(limit)
            )
            return list(session.exec(statement).all())

    def get_user_rank(self, telegram_id: int) -> int | None:
        """
        Get the leaderboard position of a user (1-based).

        Returns:
            int | None: Rank, or None for unknown or banned users.
        """
        with self._session() as session:
            statement = select(User).where(User.telegram_id == telegram_id)
            user = session.exec(statement).first()
            if not user or user.is_banned:
                return None

            # Same ordering as get_top_users: score desc, then id asc
            ahead = session.exec(
                select(func.count(User.id)).where(
                    ~User.is_banned,
                    or_(
                        User.score > user.score,
                        and_(User.score == user.score, col(User.id) < user.id),
                    ),
                )
            ).one()
            return ahead + 1

    def list_active_users(self) -> list[User]:
        """Get all non-banned users, oldest registration first."""
        with self._session() as session:
            statement = select(User).where(~User.is_banned).order_by(col(User.id))
            return list(session.exec(statement).all())

    def count_users(self, since: datetime | None = None, until: datetime | None = None) -> int:
        """Count registered users, optionally only those created in [since, until)."""
        with self._session() as session:
            statement = select(func.count(User.id))
            if since is not None:
                statement = statement.where(User.created_at >= since)
            if until is not None:
                statement = statement.where(User.created_at < until)
            return session.exec(statement).one()

    # Tasks

    def create_task(
        self,
        code: str,
        title: str,
        points_reward: int,
        cooldown_seconds: int,
        scope: TaskScope,
        description: str | None = None,
        requirements: dict[str, Any] | None = None,
        created_by: int | None = None,
    ) -> Task:
        """
        Add a task to the catalog.

        Raises:
            ValueError: If the values are negative or the code already exists.
        """
        if points_reward < 0 or cooldown_seconds < 0:
            raise ValueError("Reward and cooldown must be non-negative")

        with self._session() as session:
            task = Task(
                code=code,
                scope=scope.value,
                title=title,
                description=description,
                points_reward=points_reward,
                cooldown_seconds=cooldown_seconds,
                requirements=dump_blob(requirements),
                created_by=created_by,
            )
            session.add(task)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ValueError(f"Task code {code} already exists") from e
            session.refresh(task)
            return task

    def get_task(self, task_id: int) -> Task | None:
        """Get a task by ID regardless of its active flag."""
        with self._session() as session:
            return session.get(Task, task_id)

    def list_active_tasks(self, scope: TaskScope, limit: int | None = None) -> list[Task]:
        """
        List active tasks of a scope, highest reward first.

        Ties keep insertion order.
        """
        with self._session() as session:
            statement = (
                select(Task)
                .where(Task.scope == scope.value, Task.is_active)
                .order_by(col(Task.points_reward).desc(), col(Task.id))
            )
            if limit is not None:
                statement = statement.limit(limit)
            return list(session.exec(statement).all())

    def set_task_active(self, task_id: int, active: bool) -> Task:
        """
        Enable or soft-disable a task.

        Raises:
            NotFoundError: If the task does not exist.
        """
        with self._session() as session:
            task = session.get(Task, task_id)
            if not task:
                raise NotFoundError(f"Task {task_id} does not exist")

            task.is_active = active
            session.add(task)
            session.commit()
            session.refresh(task)
            return task

    def seed_default_tasks(self, scope: TaskScope) -> int:
        """
        Insert the sample tasks when the catalog is empty.

        Returns:
            int: Number of tasks inserted.
        """
        with self._session() as session:
            existing = session.exec(select(func.count(Task.id))).one()
            if existing:
                return 0

            for defaults in DEFAULT_TASKS:
                session.add(Task(scope=scope.value, cooldown_seconds=3600, **defaults))
            session.commit()
            logger.info(f"Seeded {len(DEFAULT_TASKS)} default tasks for scope {scope}")
            return len(DEFAULT_TASKS)

    # Assignments

    def get_assignment(self, assignment_id: int) -> Assignment | None:
        """Get an assignment by ID."""
        with self._session() as session:
            return session.get(Assignment, assignment_id)

    def get_in_flight_assignment(self, user_id: int, task_id: int) -> Assignment | None:
        """Get the pending or in-progress assignment of a (user, task) pair."""
        with self._session() as session:
            statement = select(Assignment).where(
                Assignment.user_id == user_id,
                Assignment.task_id == task_id,
                col(Assignment.status).in_([s.value for s in IN_FLIGHT_STATUSES]),
            )
            return session.exec(statement).first()

    def get_last_completed_assignment(self, user_id: int, task_id: int) -> Assignment | None:
        """Get the most recently completed assignment of a (user, task) pair."""
        with self._session() as session:
            statement = (
                select(Assignment)
                .where(
                    Assignment.user_id == user_id,
                    Assignment.task_id == task_id,
                    Assignment.status == AssignmentStatus.COMPLETED.value,
                )
                .order_by(col(Assignment.completed_at).desc())
            )
            return session.exec(statement).first()

    def create_assignment(self, user_id: int, task_id: int, started_at: datetime) -> Assignment:
        """
        Create an in-progress assignment.

        Raises:
            AlreadyInProgressError: If the in-flight uniqueness index rejects
                the insert (a concurrent start won the race).
        """
        with self._session() as session:
            assignment = Assignment(
                user_id=user_id,
                task_id=task_id,
                status=AssignmentStatus.IN_PROGRESS.value,
                started_at=started_at,
            )
            session.add(assignment)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise AlreadyInProgressError(user_id, task_id) from e
            session.refresh(assignment)
            return assignment

    def complete_assignment(
        self,
        assignment_id: int,
        submitted_data: dict[str, Any],
        points: int,
        completed_at: datetime,
        progress: UserProgress,
    ) -> Assignment:
        """
        Mark an assignment completed and store the user's new progress.

        Both rows are written in one transaction. The in-progress status is
        re-checked inside it so a double submit cannot credit twice.

        Raises:
            NotFoundError: If the assignment or its user vanished or the
                assignment is no longer in progress.
        """
        with self._session() as session:
            assignment = session.get(Assignment, assignment_id)
            if not assignment or assignment.status != AssignmentStatus.IN_PROGRESS:
                raise NotFoundError(f"Assignment {assignment_id} is not in progress")

            user = session.get(User, assignment.user_id)
            if not user:
                raise NotFoundError(f"Owner of assignment {assignment_id} does not exist")

            assignment.status = AssignmentStatus.COMPLETED.value
            assignment.submitted_data = dump_blob(submitted_data)
            assignment.score_earned = points
            assignment.completed_at = completed_at

            user.score = progress.score
            user.level = progress.level
            user.tasks_completed = progress.tasks_completed
            user.last_active = completed_at

            session.add(assignment)
            session.add(user)
            session.commit()
            session.refresh(assignment)
            return assignment

    def transition_assignment(
        self,
        assignment_id: int,
        from_statuses: tuple[AssignmentStatus, ...],
        to_status: AssignmentStatus,
    ) -> bool:
        """
        Move an assignment to a new status if it is in one of from_statuses.

        Returns:
            bool: True if the status changed, False if it was left alone.

        Raises:
            NotFoundError: If the assignment does not exist.
        """
        with self._session() as session:
            assignment = session.get(Assignment, assignment_id)
            if not assignment:
                raise NotFoundError(f"Assignment {assignment_id} does not exist")

            if assignment.status not in [s.value for s in from_statuses]:
                return False

            assignment.status = to_status.value
            session.add(assignment)
            session.commit()
            return True

    def list_user_assignments(
        self,
        user_id: int,
        scope: TaskScope | None = None,
        limit: int | None = None,
    ) -> list[tuple[Assignment, Task]]:
        """List assignments of a user with their tasks, newest first."""
        with self._session() as session:
            statement = (
                select(Assignment, Task)
                .join(Task, col(Assignment.task_id) == col(Task.id))
                .where(Assignment.user_id == user_id)
                .order_by(col(Assignment.started_at).desc(), col(Assignment.id).desc())
            )
            if scope is not None:
                statement = statement.where(Task.scope == scope.value)
            if limit is not None:
                statement = statement.limit(limit)
            return [(assignment, task) for assignment, task in session.exec(statement).all()]

    def get_user_assignment_stats(self, user_id: int, scope: TaskScope) -> AssignmentStats:
        """Count completed and in-progress assignments of a user in a scope."""
        with self._session() as session:
            base = (
                select(Assignment.status, func.count(Assignment.id), func.sum(Assignment.score_earned))
                .join(Task, col(Assignment.task_id) == col(Task.id))
                .where(Assignment.user_id == user_id, Task.scope == scope.value)
                .group_by(Assignment.status)
            )
            rows = session.exec(base).all()

        counts = {status: (count, points or 0) for status, count, points in rows}
        completed, points_earned = counts.get(AssignmentStatus.COMPLETED.value, (0, 0))
        in_progress, _ = counts.get(AssignmentStatus.IN_PROGRESS.value, (0, 0))
        return AssignmentStats(
            completed=completed,
            in_progress=in_progress,
            points_earned=points_earned,
        )

    def expire_assignments_started_before(self, cutoff: datetime) -> list[Assignment]:
        """
        Mark in-progress assignments started before the cutoff as expired.

        Returns:
            list[Assignment]: The assignments that were expired.
        """
        with self._session() as session:
            statement = select(Assignment).where(
                Assignment.status == AssignmentStatus.IN_PROGRESS.value,
                Assignment.started_at < cutoff,
            )
            records = list(session.exec(statement).all())
            for record in records:
                record.status = AssignmentStatus.EXPIRED.value
                session.add(record)
            session.commit()
            for record in records:
                session.refresh(record)
            return records

    def count_assignments(self, status: AssignmentStatus) -> int:
        """Count assignments currently in a status."""
        with self._session() as session:
            statement = select(func.count(Assignment.id)).where(Assignment.status == status.value)
            return session.exec(statement).one()

    def summarize_completions(self, start: datetime, end: datetime) -> tuple[int, int]:
        """
        Count completions and points awarded in [start, end).

        Returns:
            tuple[int, int]: (completions, points awarded).
        """
        with self._session() as session:
            statement = select(
                func.count(Assignment.id),
                func.coalesce(func.sum(Assignment.score_earned), 0),
            ).where(
                Assignment.status == AssignmentStatus.COMPLETED.value,
                Assignment.completed_at >= start,
                Assignment.completed_at < end,
            )
            completions, points = session.exec(statement).one()
            return completions, points


# Module-level singleton for database service
_db_service: DatabaseService | None = None


def init_database(database_path: str) -> DatabaseService:
    """
    Initialize the database service singleton.

    Must be called once at application startup before any database operations.

    Args:
        database_path: Path to SQLite database file.

    Returns:
        DatabaseService: Initialized database service instance.
    """
    global _db_service
    _db_service = DatabaseService(database_path)
    return _db_service


def get_database() -> DatabaseService:
    """
    Get the database service singleton.

    Returns:
        DatabaseService: Database service instance.

    Raises:
        RuntimeError: If init_database() hasn't been called.
    """
    if _db_service is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _db_service


def reset_database() -> None:
    """
    Reset database service singleton (for testing).

    Clears the singleton so a new database can be initialized.
    Properly disposes of the engine to close all connections.
    """
    global _db_service
    if _db_service is not None:
        _db_service._engine.dispose()
    _db_service = None
