import tempfile
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from telegram.error import Forbidden

from taskbot.database.service import get_database, init_database, reset_database
from taskbot.handlers.start import handle_help_command, handle_start_command


@pytest.fixture
def mock_update():
    update = MagicMock()
    update.message = MagicMock()
    update.message.from_user = MagicMock()
    update.message.from_user.id = 123456789
    update.message.from_user.first_name = "Ada"
    update.message.from_user.last_name = None
    update.message.from_user.username = "ada"
    update.message.from_user.full_name = "Ada"
    update.message.from_user.language_code = "en"
    update.message.reply_text = AsyncMock()
    return update


@pytest.fixture
def mock_context():
    context = MagicMock()
    context.args = []
    context.bot = MagicMock()
    context.bot.send_message = AsyncMock()
    context.bot_data = {}
    return context


@pytest.fixture
def temp_db():
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        db = init_database(str(db_path))
        yield db
        reset_database()


class TestHandleStart:
    async def test_no_message(self, mock_context):
        update = MagicMock()
        update.message = None

        await handle_start_command(update, mock_context)

    async def test_registers_new_user(self, mock_update, mock_context, temp_db):
        await handle_start_command(mock_update, mock_context)

        mock_update.message.reply_text.assert_called_once()
        text = mock_update.message.reply_text.call_args.args[0]
        assert "Welcome to the 8x8org task bot" in text
        assert "REF123456789" in text
        assert get_database().get_user(123456789) is not None

    async def test_returning_user(self, mock_update, mock_context, temp_db):
        await handle_start_command(mock_update, mock_context)
        mock_update.message.reply_text.reset_mock()

        await handle_start_command(mock_update, mock_context)

        text = mock_update.message.reply_text.call_args.args[0]
        assert "Welcome back" in text
        assert "0 points" in text


class TestReferral:
    @pytest.fixture
    def referrer(self, temp_db):
        user, _ = temp_db.get_or_create_user(telegram_id=555, first_name="Grace")
        return user

    async def test_referral_credits_referrer(self, mock_update, mock_context, temp_db, referrer):
        mock_context.args = [referrer.referral_code]

        await handle_start_command(mock_update, mock_context)

        credited = get_database().get_user(555)
        assert credited.score == 100
        assert credited.level == 2
        assert [r["telegram_id"] for r in credited.profile["referrals"]] == [123456789]

        new_user = get_database().get_user(123456789)
        assert new_user.profile["referred_by"]["telegram_id"] == 555

        mock_context.bot.send_message.assert_called_once()
        call_args = mock_context.bot.send_message.call_args
        assert call_args.kwargs["chat_id"] == 555
        assert "You earned 100 points" in call_args.kwargs["text"]
        assert "Your total referrals: 1" in call_args.kwargs["text"]

    async def test_unknown_code_ignored(self, mock_update, mock_context, temp_db, referrer):
        mock_context.args = ["REF000"]

        await handle_start_command(mock_update, mock_context)

        assert get_database().get_user(555).score == 0
        assert "referred_by" not in get_database().get_user(123456789).profile
        mock_context.bot.send_message.assert_not_called()

    async def test_code_on_returning_visit_ignored(
        self, mock_update, mock_context, temp_db, referrer
    ):
        await handle_start_command(mock_update, mock_context)
        mock_context.args = [referrer.referral_code]

        await handle_start_command(mock_update, mock_context)

        assert get_database().get_user(555).score == 0
        mock_context.bot.send_message.assert_not_called()

    async def test_referrer_with_notifications_off_not_messaged(
        self, mock_update, mock_context, temp_db, referrer
    ):
        temp_db.update_profile(555, {"settings": {"notifications": False}})
        mock_context.args = [referrer.referral_code]

        await handle_start_command(mock_update, mock_context)

        assert get_database().get_user(555).score == 100
        mock_context.bot.send_message.assert_not_called()

    async def test_blocked_referrer_still_credited(
        self, mock_update, mock_context, temp_db, referrer
    ):
        mock_context.bot.send_message = AsyncMock(side_effect=Forbidden("blocked"))
        mock_context.args = [referrer.referral_code]

        await handle_start_command(mock_update, mock_context)

        assert get_database().get_user(555).score == 100
        mock_update.message.reply_text.assert_called_once()


class TestHandleHelp:
    async def test_lists_commands(self, mock_update, mock_context):
        await handle_help_command(mock_update, mock_context)

        text = mock_update.message.reply_text.call_args.args[0]
        assert "/tasks" in text
        assert "/leaderboard" in text
