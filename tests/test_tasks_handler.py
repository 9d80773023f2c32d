import re
import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from taskbot.constants import (
    CANCEL_COMMAND_PATTERN,
    SUBMIT_COMMAND_PATTERN,
    TASK_COMMAND_PATTERN,
)
from taskbot.database.models import AssignmentStatus, TaskScope
from taskbot.database.service import get_database, init_database, reset_database
from taskbot.handlers.tasks import (
    handle_cancel_command,
    handle_cancel_task_command,
    handle_submit_command,
    handle_task_command,
    handle_tasks_command,
)
from taskbot.services.assignments import AssignmentTracker, PayloadKind, SubmissionPayload
from taskbot.services.session_store import (
    AwaitingKind,
    AwaitingMarker,
    InMemorySessionStore,
)
from taskbot.services.telegram_utils import SESSION_STORE_KEY

USER_ID = 12345


@pytest.fixture
def mock_settings():
    settings = MagicMock()
    settings.bot_scope = TaskScope.IN
    settings.task_list_limit = 10
    return settings


@pytest.fixture
def mock_update():
    update = MagicMock()
    update.message = MagicMock()
    update.message.from_user = MagicMock()
    update.message.from_user.id = USER_ID
    update.message.from_user.full_name = "Test User"
    update.message.reply_text = AsyncMock()
    return update


@pytest.fixture
def session_store():
    return InMemorySessionStore()


@pytest.fixture
def mock_context(session_store):
    context = MagicMock()
    context.bot_data = {SESSION_STORE_KEY: session_store}
    context.matches = None
    return context


@pytest.fixture
def temp_db():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        db = init_database(str(db_path))
        yield db
        reset_database()


@pytest.fixture
def registered(temp_db):
    user, _ = temp_db.get_or_create_user(telegram_id=USER_ID, first_name="Test")
    return user


def match(pattern, text):
    return [re.match(pattern, text)]


def reply_of(update):
    return update.message.reply_text.call_args.args[0]


class TestHandleTasks:
    async def test_unregistered_user(self, mock_update, mock_context, mock_settings, temp_db):
        with patch("taskbot.handlers.tasks.get_settings", return_value=mock_settings):
            await handle_tasks_command(mock_update, mock_context)

        assert "Please register first" in reply_of(mock_update)

    async def test_empty_catalog(self, mock_update, mock_context, mock_settings, registered):
        with patch("taskbot.handlers.tasks.get_settings", return_value=mock_settings):
            await handle_tasks_command(mock_update, mock_context)

        assert "No tasks available" in reply_of(mock_update)

    async def test_lists_tasks_by_reward(
        self, mock_update, mock_context, mock_settings, temp_db, registered
    ):
        temp_db.create_task("small", "Small task", 5, 0, TaskScope.IN)
        temp_db.create_task("big", "Big task", 50, 3600, TaskScope.IN, description="x" * 80)
        temp_db.create_task("other", "Other scope", 99, 0, TaskScope.OUT)

        with patch("taskbot.handlers.tasks.get_settings", return_value=mock_settings):
            await handle_tasks_command(mock_update, mock_context)

        text = reply_of(mock_update)
        assert text.index("Big task") < text.index("Small task")
        assert "Other scope" not in text
        assert "x" * 50 + "..." in text
        assert "Cooldown: 1h" in text
        assert "Cooldown: None" in text

    async def test_respects_limit(
        self, mock_update, mock_context, mock_settings, temp_db, registered
    ):
        mock_settings.task_list_limit = 2
        for i in range(4):
            temp_db.create_task(f"t{i}", f"Task number {i}", i, 0, TaskScope.IN)

        with patch("taskbot.handlers.tasks.get_settings", return_value=mock_settings):
            await handle_tasks_command(mock_update, mock_context)

        assert reply_of(mock_update).count("Task number") == 2


class TestHandleTask:
    async def test_starts_assignment(
        self, mock_update, mock_context, mock_settings, temp_db, registered
    ):
        task = temp_db.create_task(
            "a", "Follow us", 30, 0, TaskScope.IN, requirements={"proof": "handle"}
        )
        mock_context.matches = match(TASK_COMMAND_PATTERN, f"/task_{task.id}")

        with patch("taskbot.handlers.tasks.get_settings", return_value=mock_settings):
            await handle_task_command(mock_update, mock_context)

        text = reply_of(mock_update)
        assert "Task assigned" in text
        assert "proof: handle" in text
        assert f"/submit_{task.id}" in text
        assert AssignmentTracker(temp_db).find_in_flight(USER_ID, task.id) is not None

    async def test_unknown_task(self, mock_update, mock_context, mock_settings, registered):
        mock_context.matches = match(TASK_COMMAND_PATTERN, "/task_404")

        with patch("taskbot.handlers.tasks.get_settings", return_value=mock_settings):
            await handle_task_command(mock_update, mock_context)

        assert "Task not found" in reply_of(mock_update)

    async def test_already_in_progress(
        self, mock_update, mock_context, mock_settings, temp_db, registered
    ):
        task = temp_db.create_task("a", "A", 30, 0, TaskScope.IN)
        mock_context.matches = match(TASK_COMMAND_PATTERN, f"/task_{task.id}")

        with patch("taskbot.handlers.tasks.get_settings", return_value=mock_settings):
            await handle_task_command(mock_update, mock_context)
            await handle_task_command(mock_update, mock_context)

        assert "already in progress" in reply_of(mock_update)

    async def test_on_cooldown(self, mock_update, mock_context, mock_settings, temp_db, registered):
        task = temp_db.create_task("a", "A", 30, 3600, TaskScope.IN)
        tracker = AssignmentTracker(temp_db)
        tracker.submit(
            tracker.start(USER_ID, task.id).id,
            SubmissionPayload(kind=PayloadKind.TEXT, text="done"),
        )
        mock_context.matches = match(TASK_COMMAND_PATTERN, f"/task_{task.id}")

        with patch("taskbot.handlers.tasks.get_settings", return_value=mock_settings):
            await handle_task_command(mock_update, mock_context)

        text = reply_of(mock_update)
        assert "on cooldown" in text
        assert "1h" in text

    async def test_banned_user(self, mock_update, mock_context, mock_settings, temp_db, registered):
        task = temp_db.create_task("a", "A", 30, 0, TaskScope.IN)
        temp_db.set_user_banned(USER_ID, True)
        mock_context.matches = match(TASK_COMMAND_PATTERN, f"/task_{task.id}")

        with patch("taskbot.handlers.tasks.get_settings", return_value=mock_settings):
            await handle_task_command(mock_update, mock_context)

        assert "suspended" in reply_of(mock_update)


class TestHandleSubmit:
    async def test_opens_submission_prompt(
        self, mock_update, mock_context, session_store, temp_db, registered
    ):
        task = temp_db.create_task("a", "Follow us", 30, 0, TaskScope.IN)
        assignment = AssignmentTracker(temp_db).start(USER_ID, task.id)
        mock_context.matches = match(SUBMIT_COMMAND_PATTERN, f"/submit_{task.id}")

        await handle_submit_command(mock_update, mock_context)

        marker = session_store.get_awaiting(USER_ID)
        assert marker.kind == AwaitingKind.SUBMISSION
        assert marker.assignment_id == assignment.id
        assert marker.task_id == task.id
        assert "Follow us" in reply_of(mock_update)

    async def test_no_open_assignment(
        self, mock_update, mock_context, session_store, temp_db, registered
    ):
        task = temp_db.create_task("a", "A", 30, 0, TaskScope.IN)
        mock_context.matches = match(SUBMIT_COMMAND_PATTERN, f"/submit_{task.id}")

        await handle_submit_command(mock_update, mock_context)

        assert "No active task found" in reply_of(mock_update)
        assert session_store.get_awaiting(USER_ID) is None


class TestHandleCancel:
    async def test_cancel_task_clears_matching_prompt(
        self, mock_update, mock_context, session_store, temp_db, registered
    ):
        task = temp_db.create_task("a", "A", 30, 0, TaskScope.IN)
        assignment = AssignmentTracker(temp_db).start(USER_ID, task.id)
        session_store.set_awaiting(
            USER_ID,
            AwaitingMarker(kind=AwaitingKind.SUBMISSION, assignment_id=assignment.id, task_id=task.id),
        )
        mock_context.matches = match(CANCEL_COMMAND_PATTERN, f"/cancel_{task.id}")

        await handle_cancel_task_command(mock_update, mock_context)

        assert "cancelled" in reply_of(mock_update)
        assert session_store.get_awaiting(USER_ID) is None
        assert get_database().get_assignment(assignment.id).status == AssignmentStatus.FAILED

    async def test_cancel_task_keeps_unrelated_prompt(
        self, mock_update, mock_context, session_store, temp_db, registered
    ):
        task = temp_db.create_task("a", "A", 30, 0, TaskScope.IN)
        AssignmentTracker(temp_db).start(USER_ID, task.id)
        session_store.set_awaiting(
            USER_ID, AwaitingMarker(kind=AwaitingKind.PROFILE_FIELD, field="email")
        )
        mock_context.matches = match(CANCEL_COMMAND_PATTERN, f"/cancel_{task.id}")

        await handle_cancel_task_command(mock_update, mock_context)

        assert session_store.get_awaiting(USER_ID).field == "email"

    async def test_cancel_task_without_assignment(
        self, mock_update, mock_context, temp_db, registered
    ):
        mock_context.matches = match(CANCEL_COMMAND_PATTERN, "/cancel_5")

        await handle_cancel_task_command(mock_update, mock_context)

        assert "No active task found" in reply_of(mock_update)

    async def test_cancel_prompt(self, mock_update, mock_context, session_store):
        session_store.set_awaiting(
            USER_ID, AwaitingMarker(kind=AwaitingKind.PROFILE_FIELD, field="email")
        )

        await handle_cancel_command(mock_update, mock_context)

        assert reply_of(mock_update) == "❌ Cancelled."
        assert session_store.get_awaiting(USER_ID) is None

    async def test_nothing_to_cancel(self, mock_update, mock_context):
        await handle_cancel_command(mock_update, mock_context)

        assert "Nothing to cancel" in reply_of(mock_update)
