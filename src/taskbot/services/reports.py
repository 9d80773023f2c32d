"""
Periodic aggregate snapshots.

Builds daily, weekly and monthly summaries of the ledger. Snapshots only
read from the database, so they can run alongside live request handling;
the numbers are eventually consistent.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any

from taskbot.constants import LEADERBOARD_HEADER, LEADERBOARD_ITEM, SNAPSHOT_MESSAGE
from taskbot.database.models import AssignmentStatus
from taskbot.database.service import DatabaseService


class ReportPeriod(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    def window(self, now: datetime) -> tuple[datetime, datetime]:
        """
        Return the [start, end) window covered by a snapshot taken at now.

        Daily and weekly windows are the trailing 1 and 7 days. The monthly
        window is the previous calendar month.
        """
        if self == ReportPeriod.DAILY:
            return now - timedelta(days=1), now
        if self == ReportPeriod.WEEKLY:
            return now - timedelta(days=7), now

        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        previous_month_start = (month_start - timedelta(days=1)).replace(day=1)
        return previous_month_start, month_start


@dataclass(frozen=True)
class LeaderboardEntry:
    rank: int
    telegram_id: int
    display_name: str
    score: int
    level: int


@dataclass(frozen=True)
class AggregateSnapshot:
    """
    Summary of activity over one reporting window.

    Attributes:
        period: daily, weekly or monthly.
        start: Window start (inclusive).
        end: Window end (exclusive).
        total_users: Registered users at snapshot time.
        new_users: Users registered inside the window.
        completions: Assignments completed inside the window.
        points_awarded: Points credited inside the window.
        in_progress: Assignments open at snapshot time.
        top_users: Leaderboard at snapshot time.
    """

    period: ReportPeriod
    start: datetime
    end: datetime
    total_users: int
    new_users: int
    completions: int
    points_awarded: int
    in_progress: int
    top_users: list[LeaderboardEntry] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "period": self.period.value,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "total_users": self.total_users,
            "new_users": self.new_users,
            "completions": self.completions,
            "points_awarded": self.points_awarded,
            "in_progress": self.in_progress,
            "top_users": [
                {
                    "rank": entry.rank,
                    "telegram_id": entry.telegram_id,
                    "score": entry.score,
                    "level": entry.level,
                }
                for entry in self.top_users
            ],
        }


def build_leaderboard(db: DatabaseService, limit: int) -> list[LeaderboardEntry]:
    """Build the top-N leaderboard of non-banned users."""
    return [
        LeaderboardEntry(
            rank=index,
            telegram_id=user.telegram_id,
            display_name=user.display_name,
            score=user.score,
            level=user.level,
        )
        for index, user in enumerate(db.get_top_users(limit), start=1)
    ]


def build_snapshot(
    db: DatabaseService,
    period: ReportPeriod,
    now: datetime,
    top_limit: int = 10,
) -> AggregateSnapshot:
    """Collect the aggregate snapshot of a period ending at now."""
    start, end = period.window(now)
    completions, points = db.summarize_completions(start, end)
    return AggregateSnapshot(
        period=period,
        start=start,
        end=end,
        total_users=db.count_users(),
        new_users=db.count_users(since=start, until=end),
        completions=completions,
        points_awarded=points,
        in_progress=db.count_assignments(AssignmentStatus.IN_PROGRESS),
        top_users=build_leaderboard(db, top_limit),
    )


def format_snapshot(snapshot: AggregateSnapshot) -> str:
    """Render a snapshot as a plain text chat message."""
    message = SNAPSHOT_MESSAGE.format(
        period=snapshot.period.value.capitalize(),
        start=snapshot.start.strftime("%Y-%m-%d %H:%M"),
        end=snapshot.end.strftime("%Y-%m-%d %H:%M"),
        total_users=snapshot.total_users,
        new_users=snapshot.new_users,
        completions=snapshot.completions,
        points_awarded=snapshot.points_awarded,
        in_progress=snapshot.in_progress,
    )
    if snapshot.top_users:
        message += "\n" + LEADERBOARD_HEADER
        for entry in snapshot.top_users:
            message += LEADERBOARD_ITEM.format(
                rank=entry.rank,
                name=entry.display_name,
                score=entry.score,
                level=entry.level,
            )
    return message
