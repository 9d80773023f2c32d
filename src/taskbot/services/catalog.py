"""
Task catalog service.

Read-only view over the tasks table used by the command handlers and the
assignment tracker. Missing or inactive tasks raise NotFoundError, which
callers treat as "task unavailable".
"""

from taskbot.database.models import Task, TaskScope
from taskbot.database.service import DatabaseService
from taskbot.errors import NotFoundError


class TaskCatalog:
    """Active tasks of the catalog, optionally restricted to one scope."""

    def __init__(self, db: DatabaseService):
        self._db = db

    def list_active(self, scope: TaskScope, limit: int | None = None) -> list[Task]:
        """
        List active tasks of a scope ordered by reward, highest first.

        Ties are broken by insertion order. Every call re-reads the catalog.
        """
        return self._db.list_active_tasks(scope, limit=limit)

    def get(self, task_id: int, scope: TaskScope | None = None) -> Task:
        """
        Get an active task.

        Args:
            task_id: Task ID.
            scope: If given, the task must belong to this scope.

        Raises:
            NotFoundError: If the task does not exist, is inactive or
                belongs to another scope.
        """
        task = self._db.get_task(task_id)
        if task is None or not task.is_active:
            raise NotFoundError(f"Task {task_id} doesn't exist or is inactive")
        if scope is not None and task.scope != scope:
            raise NotFoundError(f"Task {task_id} is not a {scope} task")
        return task
