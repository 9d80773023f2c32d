"""
Scoring engine for completed assignments.

Pure calculations only: nothing here touches the database or Telegram.
The caller persists the result and sends any level-up notification.
"""

from dataclasses import dataclass, replace

POINTS_PER_LEVEL = 100


def compute_level(score: int) -> int:
    """
    Derive the level for a score.

    Args:
        score: Non-negative total score.

    Returns:
        int: score // 100 + 1.
    """
    return score // POINTS_PER_LEVEL + 1


@dataclass(frozen=True)
class UserProgress:
    """Snapshot of the progress fields of a user."""

    score: int
    level: int
    tasks_completed: int


@dataclass(frozen=True)
class CompletionResult:
    """
    Outcome of applying one completion to a user.

    Attributes:
        progress: Updated progress to persist.
        points_awarded: Points credited by this completion.
        leveled_up: True if the new level is above the previous one.
    """

    progress: UserProgress
    points_awarded: int
    leveled_up: bool


def apply_completion(progress: UserProgress, points_earned: int) -> CompletionResult:
    """
    Credit a completed assignment to a user.

    Adds the points, recomputes the level from the new score and bumps the
    completed task counter. No other field changes.

    Args:
        progress: Current progress of the user.
        points_earned: Points credited by the completed task.

    Returns:
        CompletionResult: New progress plus the level-up flag.

    Raises:
        ValueError: If points_earned is negative.
    """
    if points_earned < 0:
        raise ValueError(f"points_earned must be non-negative, got {points_earned}")

    new_score = progress.score + points_earned
    new_level = compute_level(new_score)
    updated = replace(
        progress,
        score=new_score,
        level=new_level,
        tasks_completed=progress.tasks_completed + 1,
    )
    return CompletionResult(
        progress=updated,
        points_awarded=points_earned,
        leveled_up=new_level > progress.level,
    )
