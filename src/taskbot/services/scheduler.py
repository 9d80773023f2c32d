"""
Scheduler service for automated bot tasks.

This module manages periodic jobs run by the JobQueue:
- daily, weekly and monthly aggregate snapshots delivered to the admins
- a weekly progress summary for users who keep weekly reports on
- the optional sweep marking stale in-progress assignments as expired

Jobs run independently of live request handling. Snapshots only read and
the sweep only touches assignments nobody submitted in time.
"""

import logging
from datetime import UTC, datetime, time, timedelta

from telegram.ext import ContextTypes, JobQueue

from taskbot.config import Settings, get_settings
from taskbot.constants import WEEKLY_USER_REPORT_MESSAGE
from taskbot.database.service import get_database
from taskbot.services.assignments import AssignmentTracker
from taskbot.services.notifications import notify_admins, send_to_chats
from taskbot.services.reports import ReportPeriod, build_snapshot, format_snapshot

logger = logging.getLogger(__name__)

# JobQueue day numbering: 0 = Sunday ... 6 = Saturday
MONDAY = 1


async def send_periodic_report(context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Build the snapshot of the period in job data and send it to the admins.

    Args:
        context: Telegram job context; context.job.data["period"] holds
            the ReportPeriod value.
    """
    job = context.job
    if not job or not job.data:
        return

    settings = get_settings()
    period = ReportPeriod(job.data["period"])

    try:
        snapshot = build_snapshot(
            get_database(),
            period,
            datetime.now(UTC),
            top_limit=settings.leaderboard_size,
        )
    except Exception as e:
        logger.error(f"Failed to build {period} snapshot: {e}", exc_info=True)
        return

    logger.info(f"{period.capitalize()} snapshot: {snapshot.to_payload()}")

    if not settings.admin_ids:
        logger.debug(f"No admins configured, {period} snapshot not delivered")
        return

    delivered = await notify_admins(context.bot, settings.admin_ids, format_snapshot(snapshot))
    logger.info(f"Delivered {period} snapshot to {delivered}/{len(settings.admin_ids)} admin(s)")


async def send_weekly_user_reports(context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Send each non-banned user with weekly reports on a summary of their progress.

    Args:
        context: Telegram job context.
    """
    try:
        users = [
            user for user in get_database().list_active_users() if user.wants("weekly_reports")
        ]
    except Exception as e:
        logger.error(f"Failed to load weekly report recipients: {e}", exc_info=True)
        return

    sent = 0
    failed = 0
    for user in users:
        text = WEEKLY_USER_REPORT_MESSAGE.format(
            score=user.score,
            level=user.level,
            tasks_completed=user.tasks_completed,
        )
        delivered, undelivered = await send_to_chats(context.bot, [user.telegram_id], text)
        sent += delivered
        failed += undelivered

    logger.info(f"Weekly user reports: {sent} sent, {failed} failed")


async def expire_stale_assignments(context: ContextTypes.DEFAULT_TYPE) -> None:
    """
    Mark in-progress assignments older than the configured age as expired.

    Does nothing unless assignment_expiry_minutes is set.

    Args:
        context: Telegram job context.
    """
    settings = get_settings()
    if settings.assignment_expiry_minutes is None:
        return

    try:
        expired = AssignmentTracker(get_database()).expire_stale(
            timedelta(minutes=settings.assignment_expiry_minutes)
        )
    except Exception as e:
        logger.error(f"Error expiring stale assignments: {e}", exc_info=True)
        return

    if not expired:
        logger.debug("No stale assignments to expire")


def schedule_jobs(job_queue: JobQueue, settings: Settings) -> None:  # type: ignore[type-arg]
    """
    Register the periodic jobs on the application's JobQueue.

    Args:
        job_queue: The application's JobQueue.
        settings: Application settings.
    """
    report_time = time(hour=settings.report_hour_utc, tzinfo=UTC)

    job_queue.run_daily(
        send_periodic_report,
        time=report_time,
        name="daily_report_job",
        data={"period": ReportPeriod.DAILY.value},
    )
    job_queue.run_daily(
        send_periodic_report,
        time=report_time,
        days=(MONDAY,),
        name="weekly_report_job",
        data={"period": ReportPeriod.WEEKLY.value},
    )
    job_queue.run_monthly(
        send_periodic_report,
        when=report_time,
        day=1,
        name="monthly_report_job",
        data={"period": ReportPeriod.MONTHLY.value},
    )
    job_queue.run_daily(
        send_weekly_user_reports,
        time=report_time,
        days=(MONDAY,),
        name="weekly_user_reports_job",
    )
    logger.info(f"Scheduled daily, weekly and monthly reports at {report_time.isoformat()}")

    if settings.assignment_expiry_minutes is not None:
        job_queue.run_repeating(
            expire_stale_assignments,
            interval=settings.expiry_sweep_interval_seconds,
            first=settings.expiry_sweep_interval_seconds,
            name="expire_assignments_job",
        )
        logger.info(
            f"Scheduled assignment expiry sweep "
            f"(max age {settings.assignment_expiry_minutes} minutes)"
        )
