import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from telegram.error import Forbidden

from taskbot.database.models import TaskScope
from taskbot.database.service import get_database, init_database, reset_database
from taskbot.handlers.admin import (
    handle_addtask_command,
    handle_ban_command,
    handle_broadcast_command,
    handle_disabletask_command,
    handle_enabletask_command,
    handle_report_command,
    handle_unban_command,
)

ADMIN_ID = 999
MEMBER_ID = 12345


@pytest.fixture
def mock_settings():
    settings = MagicMock()
    settings.bot_scope = TaskScope.AIRDROP
    settings.leaderboard_size = 10
    settings.is_admin.side_effect = lambda user_id: user_id == ADMIN_ID
    return settings


@pytest.fixture
def mock_update():
    update = MagicMock()
    update.message = MagicMock()
    update.message.from_user = MagicMock()
    update.message.from_user.id = ADMIN_ID
    update.message.from_user.full_name = "Admin User"
    update.message.reply_text = AsyncMock()
    return update


@pytest.fixture
def mock_context():
    context = MagicMock()
    context.args = []
    return context


@pytest.fixture
def temp_db():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        db = init_database(str(db_path))
        yield db
        reset_database()


@pytest.fixture(autouse=True)
def patched_settings(mock_settings):
    with patch("taskbot.handlers.admin.get_settings", return_value=mock_settings):
        yield


def reply_of(update):
    return update.message.reply_text.call_args.args[0]


class TestAdminGuard:
    @pytest.mark.parametrize(
        "handler",
        [
            handle_addtask_command,
            handle_disabletask_command,
            handle_enabletask_command,
            handle_ban_command,
            handle_unban_command,
            handle_report_command,
            handle_broadcast_command,
        ],
    )
    async def test_non_admin_rejected(self, handler, mock_update, mock_context, temp_db):
        mock_update.message.from_user.id = MEMBER_ID
        mock_context.args = ["1"]

        await handler(mock_update, mock_context)

        assert "restricted to administrators" in reply_of(mock_update)

    async def test_no_message(self, mock_context):
        update = MagicMock()
        update.message = None

        await handle_ban_command(update, mock_context)


class TestAddTask:
    async def test_creates_task_in_bot_scope(self, mock_update, mock_context, temp_db):
        mock_context.args = ["share_post", "40", "86400", "Share", "the", "launch", "post"]

        await handle_addtask_command(mock_update, mock_context)

        assert "created" in reply_of(mock_update)
        tasks = temp_db.list_active_tasks(TaskScope.AIRDROP)
        assert len(tasks) == 1
        assert tasks[0].title == "Share the launch post"
        assert tasks[0].points_reward == 40
        assert tasks[0].cooldown_seconds == 86400
        assert tasks[0].created_by == ADMIN_ID

    async def test_missing_arguments(self, mock_update, mock_context, temp_db):
        mock_context.args = ["share_post", "40"]

        await handle_addtask_command(mock_update, mock_context)

        assert "Usage" in reply_of(mock_update)

    async def test_non_numeric_points(self, mock_update, mock_context, temp_db):
        mock_context.args = ["share_post", "lots", "0", "Share"]

        await handle_addtask_command(mock_update, mock_context)

        assert "Usage" in reply_of(mock_update)

    async def test_negative_points(self, mock_update, mock_context, temp_db):
        mock_context.args = ["share_post", "-5", "0", "Share"]

        await handle_addtask_command(mock_update, mock_context)

        assert "Could not create task" in reply_of(mock_update)
        assert temp_db.list_active_tasks(TaskScope.AIRDROP) == []

    async def test_duplicate_code(self, mock_update, mock_context, temp_db):
        temp_db.create_task("share_post", "Share", 10, 0, TaskScope.AIRDROP)
        mock_context.args = ["share_post", "5", "0", "Share again"]

        await handle_addtask_command(mock_update, mock_context)

        assert "already exists" in reply_of(mock_update)


class TestTaskToggle:
    async def test_disable_and_enable(self, mock_update, mock_context, temp_db):
        task = temp_db.create_task("a", "A", 10, 0, TaskScope.AIRDROP)
        mock_context.args = [str(task.id)]

        await handle_disabletask_command(mock_update, mock_context)
        assert "disabled" in reply_of(mock_update)
        assert get_database().get_task(task.id).is_active is False

        await handle_enabletask_command(mock_update, mock_context)
        assert "active again" in reply_of(mock_update)
        assert get_database().get_task(task.id).is_active is True

    async def test_unknown_task(self, mock_update, mock_context, temp_db):
        mock_context.args = ["404"]

        await handle_disabletask_command(mock_update, mock_context)

        assert "Task not found" in reply_of(mock_update)

    async def test_invalid_id(self, mock_update, mock_context, temp_db):
        mock_context.args = ["abc"]

        await handle_enabletask_command(mock_update, mock_context)

        assert "Usage" in reply_of(mock_update)


class TestBan:
    async def test_ban_and_unban(self, mock_update, mock_context, temp_db):
        temp_db.get_or_create_user(telegram_id=MEMBER_ID, first_name="Member")
        mock_context.args = [str(MEMBER_ID)]

        await handle_ban_command(mock_update, mock_context)
        assert "banned" in reply_of(mock_update)
        assert get_database().get_user(MEMBER_ID).is_banned is True

        await handle_unban_command(mock_update, mock_context)
        assert "unbanned" in reply_of(mock_update)
        assert get_database().get_user(MEMBER_ID).is_banned is False

    async def test_unknown_user(self, mock_update, mock_context, temp_db):
        mock_context.args = ["555"]

        await handle_ban_command(mock_update, mock_context)

        assert "not registered" in reply_of(mock_update)

    async def test_missing_argument(self, mock_update, mock_context, temp_db):
        await handle_unban_command(mock_update, mock_context)

        assert "Usage" in reply_of(mock_update)


class TestReport:
    async def test_default_daily(self, mock_update, mock_context, temp_db):
        temp_db.get_or_create_user(telegram_id=MEMBER_ID, first_name="Member")

        await handle_report_command(mock_update, mock_context)

        text = reply_of(mock_update)
        assert "Daily report" in text
        assert "Total users: 1" in text

    async def test_explicit_period(self, mock_update, mock_context, temp_db):
        mock_context.args = ["Monthly"]

        await handle_report_command(mock_update, mock_context)

        assert "Monthly report" in reply_of(mock_update)

    async def test_unknown_period(self, mock_update, mock_context, temp_db):
        mock_context.args = ["hourly"]

        await handle_report_command(mock_update, mock_context)

        assert "Usage" in reply_of(mock_update)


class TestBroadcast:
    @pytest.fixture
    def users(self, temp_db):
        for telegram_id in (1, 2, 3):
            temp_db.get_or_create_user(telegram_id=telegram_id, first_name=f"U{telegram_id}")
        temp_db.set_user_banned(2, True)

    async def test_sends_to_non_banned_users(self, mock_update, mock_context, temp_db, users):
        mock_context.bot.send_message = AsyncMock()
        mock_context.args = ["Maintenance", "tonight"]

        await handle_broadcast_command(mock_update, mock_context)

        chat_ids = [c.kwargs["chat_id"] for c in mock_context.bot.send_message.call_args_list]
        assert chat_ids == [1, 3]
        assert "Maintenance tonight" in mock_context.bot.send_message.call_args.kwargs["text"]
        first_reply = mock_update.message.reply_text.call_args_list[0].args[0]
        assert "Recipients: 2" in first_reply
        assert "Delivered: 2\nFailed: 0" in reply_of(mock_update)

    async def test_failed_recipient_counted(self, mock_update, mock_context, temp_db, users):
        mock_context.bot.send_message = AsyncMock(side_effect=[Forbidden("blocked"), None])
        mock_context.args = ["hello"]

        await handle_broadcast_command(mock_update, mock_context)

        assert mock_context.bot.send_message.call_count == 2
        assert "Delivered: 1\nFailed: 1" in reply_of(mock_update)

    async def test_empty_message(self, mock_update, mock_context, temp_db, users):
        mock_context.bot.send_message = AsyncMock()

        await handle_broadcast_command(mock_update, mock_context)

        assert "Usage: /broadcast" in reply_of(mock_update)
        mock_context.bot.send_message.assert_not_called()
