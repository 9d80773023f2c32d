"""
Session store for free-form input prompts.

When a workflow asks the user for free text (a task submission or a
profile field), it leaves an "awaiting" marker here keyed by the user.
The next qualifying private message is routed by that marker.

Markers live in memory only. A restart silently drops in-flight prompts;
users simply repeat the command that opened the prompt.
"""

from abc import ABC, abstractmethod
from collections.abc import Hashable
from dataclasses import dataclass
from enum import StrEnum


class AwaitingKind(StrEnum):
    SUBMISSION = "submission"
    PROFILE_FIELD = "profile_field"


@dataclass(frozen=True)
class AwaitingMarker:
    """
    What input the bot expects next from a user.

    Attributes:
        kind: Which workflow opened the prompt.
        assignment_id: Assignment to complete (submission prompts).
        task_id: Task of that assignment (submission prompts).
        field: Profile field to update (profile prompts).
    """

    kind: AwaitingKind
    assignment_id: int | None = None
    task_id: int | None = None
    field: str | None = None


class SessionStore(ABC):
    """
    Per-key store of awaiting markers.

    Single writer per key: the most recent set_awaiting wins and any
    previous marker for the key is overwritten, never merged.
    """

    @abstractmethod
    def set_awaiting(self, key: Hashable, marker: AwaitingMarker) -> None: ...

    @abstractmethod
    def get_awaiting(self, key: Hashable) -> AwaitingMarker | None: ...

    @abstractmethod
    def clear(self, key: Hashable) -> None: ...


class InMemorySessionStore(SessionStore):
    """Dict-backed session store."""

    def __init__(self) -> None:
        self._markers: dict[Hashable, AwaitingMarker] = {}

    def set_awaiting(self, key: Hashable, marker: AwaitingMarker) -> None:
        self._markers[key] = marker

    def get_awaiting(self, key: Hashable) -> AwaitingMarker | None:
        return self._markers.get(key)

    def clear(self, key: Hashable) -> None:
        self._markers.pop(key, None)

    def __len__(self) -> int:
        return len(self._markers)
