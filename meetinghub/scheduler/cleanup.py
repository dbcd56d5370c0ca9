import datetime
import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from meetinghub.core.config import CLEANUP_INTERVAL_MINUTES, CLEANUP_THRESHOLD_DAYS
from meetinghub.core.db import SessionLocal
from meetinghub.core.timeutils import utcnow
from meetinghub.models.meeting import Meeting
from meetinghub.scheduler.reminder import ReminderScheduler, reminders, scheduler
from meetinghub.services.meeting_service import purge_meeting
from meetinghub.storage.object_store import ObjectStore, get_object_store

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "meeting-cleanup"


def delete_expired_meetings(
    db: Session,
    store: ObjectStore,
    reminder_scheduler: ReminderScheduler,
    now: Optional[datetime.datetime] = None,
    threshold_days: float = CLEANUP_THRESHOLD_DAYS,
) -> int:
    """Permanently delete meetings canceled longer ago than the threshold."""
    now = now or utcnow()
    cutoff = now - datetime.timedelta(days=threshold_days)
    logger.info("Starting meeting cleanup. Threshold: %s days.", threshold_days)

    expired = (
        db.query(Meeting)
        .filter(
            Meeting.is_canceled.is_(True),
            Meeting.canceled_at.isnot(None),
            Meeting.canceled_at < cutoff,
        )
        .all()
    )
    if not expired:
        logger.info("No meetings found for cleanup.")
        return 0

    # Ids are read up front; a failed purge expires every loaded instance
    meeting_ids = [m.id for m in expired]
    deleted = 0
    for meeting_id in meeting_ids:
        try:
            meeting = db.get(Meeting, meeting_id)
            if meeting is None:
                continue
            purge_meeting(db, store, reminder_scheduler, meeting)
            deleted += 1
        except Exception:
            # One bad meeting must not block the rest of the sweep
            db.rollback()
            logger.exception("Cleanup failed for meeting %s", meeting_id)

    logger.info("Deleted %d of %d expired meetings", deleted, len(expired))
    return deleted


def cleanup_job():
    """Called by APScheduler in background."""
    db = SessionLocal()
    try:
        delete_expired_meetings(db, get_object_store(), reminders)
    finally:
        db.close()


def start_cleanup_job():
    scheduler.add_job(
        cleanup_job,
        "interval",
        minutes=CLEANUP_INTERVAL_MINUTES,
        id=CLEANUP_JOB_ID,
        replace_existing=True,
    )
    logger.info("Auto-clean meeting job scheduled every %d minutes", CLEANUP_INTERVAL_MINUTES)


def trigger_cleanup() -> str:
    """Run the cleanup once, as soon as a scheduler worker is free."""
    job = scheduler.add_job(cleanup_job, id=f"{CLEANUP_JOB_ID}-manual-{uuid.uuid4().hex}")
    logger.info("Manually triggered meeting cleanup job %s", job.id)
    return job.id
