"""
Meeting reminders on APScheduler.

A reminder job carries only the meeting id and its own job id. At fire time it
re-reads the meeting and decides from current state alone: deleted, canceled
or rescheduled meetings (whose stored job id no longer matches) get no mail.
"""
import datetime
import logging
import uuid
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from meetinghub.core.config import (
    REMINDER_OFFSET_MINUTES,
    REMINDER_MISFIRE_GRACE_SECONDS,
    REMINDER_RETRY_ATTEMPTS,
)
from meetinghub.core.db import SessionLocal
from meetinghub.core.timeutils import utcnow
from meetinghub.email.utils import notify_meeting_reminder
from meetinghub.models.meeting import Meeting

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(timezone=datetime.timezone.utc)

Notifier = Callable[[str, str, datetime.datetime], None]


@dataclass
class ReminderOutcome:
    meeting_id: str
    sent: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    skipped_reason: Optional[str] = None


def send_meeting_reminders(db: Session, meeting_id: str, notify: Notifier,
                           job_id: Optional[str] = None) -> ReminderOutcome:
    """
    Notify every current participant of a meeting, organizer included.
    One failed recipient never stops the others.
    """
    outcome = ReminderOutcome(meeting_id=meeting_id)
    logger.info("Executing reminder job for meeting %s", meeting_id)

    meeting = db.get(Meeting, meeting_id)
    if meeting is None:
        logger.warning("Meeting %s not found while sending reminder. It may have been deleted.", meeting_id)
        outcome.skipped_reason = "deleted"
        return outcome
    if meeting.is_canceled:
        logger.info("Meeting %s is canceled, no reminder sent.", meeting_id)
        outcome.skipped_reason = "canceled"
        return outcome
    if job_id is not None and meeting.reminder_job_id != job_id:
        logger.info("Reminder %s for meeting %s is stale (current %s), skipping.",
                    job_id, meeting_id, meeting.reminder_job_id)
        outcome.skipped_reason = "stale"
        return outcome

    recipients = [meeting.organizer.email]
    for participant in meeting.participants:
        if participant.user.email not in recipients:
            recipients.append(participant.user.email)

    logger.info("Found %d recipients for meeting %s", len(recipients), meeting_id)
    for email in recipients:
        try:
            notify(email, meeting.name, meeting.start_at)
            outcome.sent.append(email)
        except Exception:
            logger.exception("Failed to send reminder for meeting %s to %s", meeting_id, email)
            outcome.failed.append(email)

    if outcome.failed:
        logger.warning("Reminder for meeting %s: %d sent, %d failed (%s)",
                       meeting_id, len(outcome.sent), len(outcome.failed), ", ".join(outcome.failed))
    else:
        logger.info("Successfully sent reminders for meeting %s", meeting_id)
    return outcome


@retry(
    stop=stop_after_attempt(REMINDER_RETRY_ATTEMPTS),
    wait=wait_exponential(multiplier=1, min=1, max=30),
    retry=retry_if_exception_type(OperationalError),
    reraise=True,
)
def _run_reminder(meeting_id: str, job_id: Optional[str]) -> ReminderOutcome:
    db = SessionLocal()
    try:
        return send_meeting_reminders(db, meeting_id, notify_meeting_reminder, job_id)
    finally:
        db.close()


def send_reminder_job(meeting_id: str, job_id: Optional[str] = None):
    """
    Called by APScheduler in background to send reminders.
    Database outages are retried with backoff; giving up only ends this job.
    """
    try:
        _run_reminder(meeting_id, job_id)
    except OperationalError:
        logger.exception("Reminder job %s for meeting %s failed after %d attempts",
                         job_id, meeting_id, REMINDER_RETRY_ATTEMPTS)


class ReminderScheduler:
    """Schedules and cancels reminder jobs by their individual handle."""

    def __init__(self, scheduler: BackgroundScheduler, offset_minutes: int = REMINDER_OFFSET_MINUTES):
        self.scheduler = scheduler
        self.offset = datetime.timedelta(minutes=offset_minutes)

    def reminder_time(self, start_at: datetime.datetime) -> datetime.datetime:
        return start_at - self.offset

    def next_job_id(self, meeting_id: str, start_at: datetime.datetime,
                    now: Optional[datetime.datetime] = None) -> Optional[str]:
        """A fresh handle for a reminder at start_at, or None if that reminder time has passed."""
        now = now or utcnow()
        if self.reminder_time(start_at) <= now:
            logger.info("Reminder time for meeting %s already passed, none scheduled.", meeting_id)
            return None
        return f"meeting-reminder:{meeting_id}:{uuid.uuid4().hex}"

    def schedule(self, meeting_id: str, start_at: datetime.datetime, job_id: str) -> None:
        run_at = self.reminder_time(start_at).replace(tzinfo=datetime.timezone.utc)
        self.scheduler.add_job(
            send_reminder_job,
            "date",
            run_date=run_at,
            args=[meeting_id, job_id],
            id=job_id,
            misfire_grace_time=REMINDER_MISFIRE_GRACE_SECONDS,
        )
        logger.info("Scheduled reminder %s for meeting %s at %s", job_id, meeting_id, run_at)

    def cancel(self, job_id: Optional[str]) -> None:
        if not job_id:
            return
        try:
            self.scheduler.remove_job(job_id)
            logger.info("Cancelled reminder %s", job_id)
        except JobLookupError:
            # Already fired or never registered; the fire-time state check covers the rest
            logger.debug("Reminder %s not pending, nothing to cancel", job_id)


def restore_pending_reminders(db: Session, reminder_scheduler: ReminderScheduler,
                              now: Optional[datetime.datetime] = None) -> int:
    """
    Re-register reminder jobs after a restart, under their stored handles.
    Handles whose reminder time passed meanwhile are cleared.
    """
    now = now or utcnow()
    pending = (
        db.query(Meeting)
        .filter(Meeting.is_canceled.is_(False), Meeting.reminder_job_id.isnot(None))
        .all()
    )
    restored = 0
    for meeting in pending:
        if reminder_scheduler.reminder_time(meeting.start_at) <= now:
            meeting.reminder_job_id = None
            continue
        if reminder_scheduler.scheduler.get_job(meeting.reminder_job_id) is None:
            reminder_scheduler.schedule(meeting.id, meeting.start_at, meeting.reminder_job_id)
            restored += 1
    db.commit()
    logger.info("Restored %d pending reminders", restored)
    return restored


reminders = ReminderScheduler(scheduler)


def get_reminder_scheduler() -> ReminderScheduler:
    return reminders


def start_scheduler():
    """
    Starts background APScheduler when app starts.
    """
    if not scheduler.running:
        scheduler.start()


def shutdown_scheduler():
    if scheduler.running:
        scheduler.shutdown(wait=False)
