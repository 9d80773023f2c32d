"""
Application constants for the task bot.

This module contains shared constants used across multiple bot modules,
including command patterns, message templates, and formatting utilities.
Replies are plain text: task titles come from admins and are not escaped.
"""

import math
from datetime import timedelta

# Command patterns carrying a numeric task ID, e.g. /task_3 or /task_3@my_bot
TASK_COMMAND_PATTERN = r"^/task_(\d+)(?:@\w+)?$"
SUBMIT_COMMAND_PATTERN = r"^/submit_(\d+)(?:@\w+)?$"
CANCEL_COMMAND_PATTERN = r"^/cancel_(\d+)(?:@\w+)?$"

# Profile fields editable through a prompt, mapped to their commands
PROFILE_FIELD_COMMANDS = {
    "edit_email": "email",
    "edit_phone": "phone",
    "edit_name": "name",
}

PHONE_PATTERN = r"^\+[1-9]\d{1,14}$"
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


def format_duration(value: timedelta) -> str:
    """
    Format a duration as hours and minutes.

    Minutes are rounded up so a remaining cooldown never shows as 0m.

    Args:
        value: Duration to format.

    Returns:
        Formatted string like "1h 30m" or "45m".
    """
    total_minutes = max(math.ceil(value.total_seconds() / 60), 0)
    hours, minutes = divmod(total_minutes, 60)
    if hours > 0:
        return f"{hours}h {minutes}m" if minutes else f"{hours}h"
    return f"{minutes}m"


def format_cooldown(cooldown_seconds: int) -> str:
    """Format a task cooldown, "None" when the task has no cooldown."""
    if cooldown_seconds <= 0:
        return "None"
    return format_duration(timedelta(seconds=cooldown_seconds))


# /start and /help
WELCOME_MESSAGE = (
    "📥 Welcome to the 8x8org task bot, {name}!\n\n"
    "Complete tasks, earn points and level up.\n\n"
    "1. Browse available tasks with /tasks\n"
    "2. Start a task with /task_[id]\n"
    "3. Complete the task requirements\n"
    "4. Submit with /submit_[id]\n"
    "5. Earn points and level up!\n\n"
    "Your referral code: {referral_code}\n"
    "Use /help to see all commands."
)

WELCOME_BACK_MESSAGE = (
    "👋 Welcome back, {name}!\n\n"
    "🏆 Score: {score} points\n"
    "⭐ Level: {level}\n\n"
    "Use /tasks to see available tasks."
)

HELP_MESSAGE = (
    "🤖 Task bot commands\n\n"
    "📋 Tasks\n"
    "/tasks - View available tasks\n"
    "/task_[id] - Start a task\n"
    "/submit_[id] - Submit a task response\n"
    "/cancel_[id] - Cancel a task\n"
    "/my_tasks - Your recent tasks\n"
    "/cancel - Abort the current prompt\n\n"
    "📊 Information\n"
    "/progress - Your progress\n"
    "/score - Your current score\n"
    "/leaderboard - Top users\n"
    "/rank - Your leaderboard position\n\n"
    "👤 Profile\n"
    "/profile - View your profile\n"
    "/edit_email - Update email\n"
    "/edit_phone - Update phone number\n"
    "/edit_name - Update name\n"
    "/features - Your notification settings\n"
    "/toggle_feature [name] - Turn a setting on or off"
)

NOT_REGISTERED_MESSAGE = "❌ Please register first.\n\nUse /start to create your account."

USER_BANNED_MESSAGE = "⛔ Your account is suspended. Contact an admin if you think this is a mistake."

# Task catalog
NO_TASKS_MESSAGE = "📭 No tasks available.\n\nCheck back later for new tasks!"

TASK_LIST_HEADER = "📋 Available {scope} tasks\n\n"

TASK_LIST_ITEM = (
    "{index}. {title}\n"
    "📝 {description}\n"
    "🏆 Points: {points}\n"
    "⏱️ Cooldown: {cooldown}\n"
    "🔢 Command: /task_{task_id}\n\n"
)

TASK_LIST_FOOTER = "To start a task: /task_[id]"

TASK_NOT_FOUND_MESSAGE = "❌ Task not found.\n\nTask {task_id} doesn't exist or is inactive."

# Assignment workflow
TASK_ASSIGNED_MESSAGE = (
    "📥 Task assigned: {title}\n\n"
    "📝 {description}\n\n"
    "🏆 Points reward: {points}\n"
    "📋 Requirements: {requirements}\n\n"
    "When done, use /submit_{task_id}\n"
    "To give up, use /cancel_{task_id}"
)

TASK_ALREADY_IN_PROGRESS_MESSAGE = (
    "⏳ Task already in progress.\n\n"
    "Use /submit_{task_id} to complete it or /cancel_{task_id} to cancel it."
)

TASK_ON_COOLDOWN_MESSAGE = "⏰ Task on cooldown.\n\nYou can retry this task in {remaining}."

NO_ACTIVE_TASK_MESSAGE = "❌ No active task found.\n\nStart a task first with /task_{task_id}"

SUBMIT_PROMPT_MESSAGE = (
    "📤 Submit your response for: {title}\n\n"
    "You can send:\n"
    "• A text response\n"
    "• A photo with caption\n"
    "• A document\n\n"
    "Type /cancel to abort the submission."
)

SUBMISSION_INVALID_MESSAGE = (
    "❌ That submission is empty.\n\n"
    "Please send a text response, a photo or a document, or /cancel."
)

TASK_COMPLETED_MESSAGE = (
    "✅ Task completed: {title}\n\n"
    "🏆 Points earned: +{points}\n"
    "💰 New total: {score} points\n"
)

LEVEL_UP_MESSAGE = "🎉 Level up! You're now level {level}\n"

TASK_COMPLETED_FOOTER = "\nUse /tasks for more tasks."

SUBMISSION_FAILED_MESSAGE = "❌ This task is no longer open for submission.\n\nUse /my_tasks to check its status."

TASK_CANCELLED_MESSAGE = "🛑 Task {task_id} cancelled. No points were awarded."

PROMPT_CANCELLED_MESSAGE = "❌ Cancelled."

NOTHING_TO_CANCEL_MESSAGE = "ℹ️ Nothing to cancel."

# Progress and leaderboard
NO_USER_TASKS_MESSAGE = "📭 No tasks yet.\n\nUse /tasks to see available tasks."

MY_TASKS_HEADER = "📋 Your {scope} tasks\n\n"

MY_TASKS_ITEM = "{index}. {title}\n📊 Status: {status}\n⏱️ Started: {started}\n{points_line}🔢 ID: {task_id}\n\n"

MY_TASKS_FOOTER = "To submit: /submit_[id]\nTo cancel: /cancel_[id]"

PROGRESS_MESSAGE = (
    "📊 Your {scope} progress\n\n"
    "✅ Completed tasks: {completed}\n"
    "⏳ In progress: {in_progress}\n"
    "🏆 Points earned here: {points_earned}\n"
    "📈 Overall score: {score}\n"
    "🎯 Level: {level}"
)

SCORE_MESSAGE = (
    "🎯 Your score\n\n"
    "🏆 Total: {score} points\n"
    "⭐ Level: {level}\n"
    "✅ Tasks completed: {tasks_completed}\n"
    "📈 Reputation: {reputation}"
)

LEADERBOARD_HEADER = "🏆 Leaderboard\n\n"

LEADERBOARD_ITEM = "{rank}. {name} - {score} pts (level {level})\n"

EMPTY_LEADERBOARD_MESSAGE = "📭 The leaderboard is empty."

RANK_MESSAGE = "📈 You are #{rank} with {score} points."

# Profile
PROFILE_MESSAGE = (
    "👤 Your profile\n\n"
    "Name: {name}\n"
    "Email: {email}\n"
    "Phone: {phone}\n"
    "Referral code: {referral_code}\n"
    "Notifications: {notifications}\n\n"
    "/edit_email, /edit_phone or /edit_name to update."
)

PROFILE_FIELD_PROMPTS = {
    "email": "📧 Please enter your email address.\n\nType /cancel to abort.",
    "phone": "📱 Please enter your phone number with country code.\n\nExample: +12345678900\nType /cancel to abort.",
    "name": "👤 Please enter your new name.\n\nFormat: FirstName LastName\nType /cancel to abort.",
}

PROFILE_FIELD_INVALID = {
    "email": "❌ Invalid email format. Please enter a valid email address:",
    "phone": "❌ Invalid phone number. Please enter it with country code, e.g. +12345678900:",
    "name": "❌ Invalid name. Please enter at least a first name:",
}

PROFILE_FIELD_UPDATED_MESSAGE = "✅ Your {field} was updated."

# Profile settings toggled with /toggle_feature: name -> (label, settings key)
FEATURE_SETTINGS = {
    "notifications": ("Notifications", "notifications"),
    "reports": ("Weekly reports", "weekly_reports"),
}

FEATURES_HEADER = "⚙️ Your settings\n\n"

FEATURES_ITEM = "{label}: {state}\n"

FEATURES_FOOTER = "\nUse /toggle_feature [name] to change one. Names: {names}"

FEATURE_TOGGLED_MESSAGE = "✅ {label} {state}! Your preference has been saved."

UNKNOWN_FEATURE_MESSAGE = "❌ Unknown feature.\n\nUse /features to see the available settings."

# Referrals
REFERRAL_REWARD_MESSAGE = (
    "🎉 New referral!\n\n"
    "{name} joined with your referral code.\n"
    "You earned {bonus} points! Your total referrals: {total}"
)

WEEKLY_USER_REPORT_MESSAGE = (
    "📅 Your weekly summary\n\n"
    "🏆 Score: {score} points\n"
    "⭐ Level: {level}\n"
    "✅ Tasks completed: {tasks_completed}\n\n"
    "Use /tasks to keep going or /toggle_feature reports to stop these summaries."
)

# Errors
GENERIC_ERROR_MESSAGE = "❌ Something went wrong. Please try again later."

PERSISTENCE_ERROR_MESSAGE = "❌ The service is temporarily unavailable. Please try again later."

# Admin
ADMIN_ONLY_MESSAGE = "⛔ This command is restricted to administrators."

HIGH_VALUE_COMPLETION_MESSAGE = (
    "🔔 High-value task completed\n\n"
    "User: {telegram_id}\n"
    "Task: {title} (ID {task_id})\n"
    "Points: {points}\n"
    "New score: {score} (level {level})\n"
    "Completed at: {completed_at}"
)

SNAPSHOT_MESSAGE = (
    "📊 {period} report\n"
    "{start} → {end}\n\n"
    "👥 Total users: {total_users}\n"
    "🆕 New users: {new_users}\n"
    "✅ Completions: {completions}\n"
    "🏆 Points awarded: {points_awarded}\n"
    "⏳ In progress: {in_progress}\n"
)

ADMIN_USAGE_MESSAGES = {
    "addtask": "❌ Usage: /addtask <code> <points> <cooldown_seconds> <title>",
    "disabletask": "❌ Usage: /disabletask <task_id>",
    "enabletask": "❌ Usage: /enabletask <task_id>",
    "ban": "❌ Usage: /ban <telegram_id>",
    "unban": "❌ Usage: /unban <telegram_id>",
    "report": "❌ Usage: /report [daily|weekly|monthly]",
    "broadcast": "❌ Usage: /broadcast <message>",
}

TASK_CREATED_MESSAGE = "✅ Task {task_id} created: {title} ({points} pts, cooldown {cooldown})"

TASK_CREATE_FAILED_MESSAGE = "❌ Could not create task: {reason}"

TASK_ENABLED_MESSAGE = "✅ Task {task_id} is active again."

TASK_DISABLED_MESSAGE = "🚫 Task {task_id} disabled. Existing assignments are kept."

USER_NOT_FOUND_MESSAGE = "❌ User {telegram_id} is not registered."

USER_BANNED_ADMIN_MESSAGE = "⛔ User {telegram_id} banned."

USER_UNBANNED_ADMIN_MESSAGE = "✅ User {telegram_id} unbanned."

BROADCAST_MESSAGE = "📢 Broadcast from Admin\n\n{text}\n\n- 8x8org Team"

BROADCAST_STARTED_MESSAGE = "📤 Broadcast started. Recipients: {total}"

BROADCAST_COMPLETE_MESSAGE = "✅ Broadcast complete.\n\nDelivered: {sent}\nFailed: {failed}"
