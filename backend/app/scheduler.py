"""APScheduler configuration for periodic target reminders."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from datetime import datetime, timedelta
from typing import Optional
import logging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models import Target, Notification, User
from app.services import analytics
from app.services.notification_service import create_notification

logger = logging.getLogger(__name__)

# Create scheduler instance
scheduler = AsyncIOScheduler()


def reminder_message(target: Target, percentage: float, remaining: int) -> str:
    return (
        f"Your {target.period} target #{target.id} ends on {target.end_date:%d %b %Y}. "
        f"You are at {percentage:.0f}% with ৳{remaining:,} to go."
    )


async def _already_reminded(db: AsyncSession, target: Target, since: datetime) -> bool:
    result = await db.execute(
        select(Notification.id).where(
            Notification.user_id == target.user_id,
            Notification.type == "target_reminder",
            Notification.created_at >= since,
            Notification.message.like(f"%target #{target.id} %"),
        )
    )
    return result.first() is not None


async def send_target_reminders(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Remind users whose unmet targets end within the reminder window.

    At most one reminder per target per day. Returns the number sent.
    """
    now = now or datetime.utcnow()
    window_end = now + timedelta(days=settings.TARGET_REMINDER_DAYS)
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

    result = await db.execute(
        select(Target)
        .join(User, User.id == Target.user_id)
        .where(
            User.is_active == True,  # noqa: E712
            Target.end_date != None,  # noqa: E711
            Target.end_date >= now,
            Target.end_date <= window_end,
        )
    )
    targets = result.scalars().all()

    sent = 0
    for target in targets:
        progress = await analytics.target_progress(db, target)
        if progress["percentage"] >= 100:
            continue
        if await _already_reminded(db, target, day_start):
            continue

        await create_notification(
            db,
            user_id=target.user_id,
            type="target_reminder",
            title="Target Deadline Approaching",
            message=reminder_message(target, progress["percentage"], progress["remaining"]),
        )
        sent += 1

    logger.info(f"Target reminders: {sent} sent for {len(targets)} targets ending by {window_end:%Y-%m-%d}")
    return sent


async def run_target_reminders():
    """
    Scheduled entry point. Called by APScheduler.
    """
    from app.database import AsyncSessionLocal

    logger.info("Running scheduled target reminders...")
    try:
        async with AsyncSessionLocal() as db:
            await send_target_reminders(db)
    except Exception as e:
        logger.error(f"Error in target reminder job: {e}", exc_info=True)


def start_scheduler():
    """
    Initialize and start the APScheduler.

    Jobs:
    - Target reminders: TARGET_REMINDER_SCHEDULE (cron, default daily at 09:00 UTC)
    """
    if scheduler.running:
        logger.info("Scheduler already running")
        return

    try:
        scheduler.add_job(
            run_target_reminders,
            trigger=CronTrigger.from_crontab(settings.TARGET_REMINDER_SCHEDULE),
            id='target_reminders',
            name='Target Reminders',
            replace_existing=True,
            max_instances=1
        )
        logger.info(f"✅ Scheduled: Target Reminders ({settings.TARGET_REMINDER_SCHEDULE})")

        scheduler.start()
        logger.info("✅ APScheduler started successfully!")

        for job in scheduler.get_jobs():
            logger.info(f"   • {job.name}: Next run at {job.next_run_time}")

    except Exception as e:
        logger.error(f"❌ Error starting scheduler: {e}")


def stop_scheduler():
    """Stop the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown()
