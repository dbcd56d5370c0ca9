import json
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Set, Tuple

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from meetinghub.auth.rules import Actor, can_manage_meeting, can_remove_participant, can_view_meeting
from meetinghub.core.config import MINIO_MEETING_BUCKET
from meetinghub.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationFailedError
from meetinghub.core.timeutils import to_utc, utcnow
from meetinghub.models.meeting import Meeting, MeetingParticipant, MeetingLog
from meetinghub.models.user import User, new_id
from meetinghub.scheduler.reminder import ReminderScheduler
from meetinghub.services.identity_service import normalize_email
from meetinghub.services.meeting_file_service import remove_objects
from meetinghub.storage.object_store import ObjectStore

logger = logging.getLogger(__name__)

ORGANIZER_LABEL = "Organizer"
PARTICIPANT_LABEL = "Participant"

STATUS_CANCELED = "Canceled"
STATUS_UPCOMING = "Upcoming"
STATUS_IN_PROGRESS = "InProgress"
STATUS_FINISHED = "Finished"


# -------------------------
# Helpers
# -------------------------
def participant_ids(meeting: Meeting) -> Set[str]:
    return {p.user_id for p in meeting.participants}


def meeting_status(meeting: Meeting, now: Optional[datetime] = None) -> str:
    """Presentation state derived from the clock; never stored."""
    now = now or utcnow()
    if meeting.is_canceled:
        return STATUS_CANCELED
    if now < meeting.start_at:
        return STATUS_UPCOMING
    if now < meeting.end_at:
        return STATUS_IN_PROGRESS
    return STATUS_FINISHED


def _load_meeting(db: Session, meeting_id: str, action: str) -> Meeting:
    meeting = db.get(Meeting, meeting_id)
    if meeting is None:
        logger.warning("%s failed: Meeting %s not found.", action, meeting_id)
        raise NotFoundError("Meeting not found.")
    return meeting


def _require_manager(actor: Actor, meeting: Meeting, action: str) -> None:
    if not can_manage_meeting(actor, meeting):
        logger.warning("%s failed: User %s may not manage meeting %s.", action, actor.id, meeting.id)
        raise ForbiddenError(f"User is not authorized to {action.lower()} this meeting.")


def _validate_details(name: str, description: str, start_at: datetime, end_at: datetime) -> None:
    if not name or not name.strip():
        raise ValidationFailedError("Meeting name is required.")
    if not description or not description.strip():
        raise ValidationFailedError("Meeting description is required.")
    if end_at <= start_at:
        raise ValidationFailedError("Meeting end time must be after its start time.")


def _resolve_emails(db: Session, emails: Optional[Iterable[str]]) -> Tuple[List[User], List[str]]:
    """Look up users by e-mail, returning the matches and the addresses nobody owns."""
    wanted = []
    for email in emails or []:
        normalized = normalize_email(email)
        if normalized and normalized not in wanted:
            wanted.append(normalized)
    if not wanted:
        return [], []

    users = db.query(User).filter(User.email.in_(wanted)).all()
    found = {u.email for u in users}
    unresolved = [email for email in wanted if email not in found]
    return users, unresolved


def _commit(db: Session, meeting_id: str) -> None:
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning("Meeting %s was modified concurrently, rejecting.", meeting_id)
        raise ConflictError("The meeting was modified by another request. Reload and retry.")
    except IntegrityError:
        db.rollback()
        logger.warning("Constraint violation while saving meeting %s.", meeting_id)
        raise ConflictError("The change conflicts with the current meeting state.")


def _touch(meeting: Meeting) -> None:
    # Forces an UPDATE on the meeting row so its version check guards collection edits
    meeting.updated_at = utcnow()


# -------------------------
# Queries
# -------------------------
def get_meeting(db: Session, actor: Actor, meeting_id: str) -> Meeting:
    meeting = db.get(Meeting, meeting_id)
    if meeting is None or not can_view_meeting(actor, meeting, participant_ids(meeting)):
        raise NotFoundError("Meeting not found.")
    return meeting


def list_user_meetings(db: Session, actor: Actor) -> List[Meeting]:
    member_of = select(MeetingParticipant.meeting_id).where(MeetingParticipant.user_id == actor.id)
    return (
        db.query(Meeting)
        .filter(
            Meeting.is_canceled.is_(False),
            or_(Meeting.organizer_id == actor.id, Meeting.id.in_(member_of)),
        )
        .order_by(Meeting.start_at)
        .all()
    )


# -------------------------
# Lifecycle
# -------------------------
def create_meeting(
    db: Session,
    reminders: ReminderScheduler,
    actor: Actor,
    name: str,
    description: str,
    start_at: datetime,
    end_at: datetime,
    participant_emails: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Tuple[Meeting, List[str]]:
    """
    Create a meeting organized by the actor and schedule its reminder.
    Returns the meeting and the invited addresses that match no user.
    """
    now = now or utcnow()
    start_at, end_at = to_utc(start_at), to_utc(end_at)
    _validate_details(name, description, start_at, end_at)
    if start_at < now:
        raise ValidationFailedError("Meeting cannot start in the past.")

    organizer = db.get(User, actor.id)
    if organizer is None:
        raise NotFoundError("Organizer not found.")

    users, unresolved = _resolve_emails(db, participant_emails)
    if unresolved:
        logger.info("Create meeting: skipping unknown participant emails %s", unresolved)

    meeting = Meeting(
        id=new_id(),
        name=name.strip(),
        description=description.strip(),
        start_at=start_at,
        end_at=end_at,
        organizer_id=organizer.id,
        created_at=now,
        updated_at=now,
    )
    meeting.participants.append(MeetingParticipant(user_id=organizer.id, role=ORGANIZER_LABEL, joined_at=now))
    for user in users:
        if user.id != organizer.id:
            meeting.participants.append(MeetingParticipant(user_id=user.id, role=PARTICIPANT_LABEL, joined_at=now))
    db.add(meeting)

    meeting.reminder_job_id = reminders.next_job_id(meeting.id, start_at, now)
    _commit(db, meeting.id)
    if meeting.reminder_job_id:
        reminders.schedule(meeting.id, meeting.start_at, meeting.reminder_job_id)

    logger.info("User %s created meeting %s with %d participants", actor.id, meeting.id, len(meeting.participants))
    return meeting, unresolved


def update_meeting(
    db: Session,
    reminders: ReminderScheduler,
    actor: Actor,
    meeting_id: str,
    name: str,
    description: str,
    start_at: datetime,
    end_at: datetime,
    participant_emails: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Tuple[Meeting, List[str]]:
    """
    Replace details, time window and participant set. A changed start time
    cancels the pending reminder by its handle and schedules a new one.

    A start in the past is rejected only when the start itself changes, so a
    meeting already under way can still be renamed or have its end moved.
    """
    now = now or utcnow()
    meeting = _load_meeting(db, meeting_id, "Update")
    _require_manager(actor, meeting, "Update")
    if meeting.is_canceled:
        raise ConflictError("A canceled meeting cannot be updated.")

    start_at, end_at = to_utc(start_at), to_utc(end_at)
    _validate_details(name, description, start_at, end_at)
    start_changed = start_at != meeting.start_at
    if start_changed and start_at < now:
        raise ValidationFailedError("Meeting cannot be moved into the past.")

    users, unresolved = _resolve_emails(db, participant_emails)
    wanted = {u.id for u in users} | {meeting.organizer_id}
    current = participant_ids(meeting)

    for participant in list(meeting.participants):
        if participant.user_id not in wanted:
            meeting.participants.remove(participant)
    for user in users:
        if user.id not in current and user.id != meeting.organizer_id:
            meeting.participants.append(MeetingParticipant(user_id=user.id, role=PARTICIPANT_LABEL, joined_at=now))
    if meeting.organizer_id not in current:
        meeting.participants.append(MeetingParticipant(user_id=meeting.organizer_id, role=ORGANIZER_LABEL, joined_at=now))

    meeting.name = name.strip()
    meeting.description = description.strip()
    meeting.start_at = start_at
    meeting.end_at = end_at
    _touch(meeting)

    previous_job_id = meeting.reminder_job_id
    if start_changed:
        meeting.reminder_job_id = reminders.next_job_id(meeting.id, start_at, now)
    _commit(db, meeting.id)

    if start_changed:
        # Old handle first, then the new one
        reminders.cancel(previous_job_id)
        if meeting.reminder_job_id:
            reminders.schedule(meeting.id, meeting.start_at, meeting.reminder_job_id)
        logger.info("Meeting %s rescheduled to %s", meeting.id, meeting.start_at)

    return meeting, unresolved


def cancel_meeting(db: Session, reminders: ReminderScheduler, actor: Actor, meeting_id: str,
                   now: Optional[datetime] = None) -> Meeting:
    meeting = _load_meeting(db, meeting_id, "Cancel")
    _require_manager(actor, meeting, "Cancel")
    if meeting.is_canceled:
        raise ConflictError("Meeting is already canceled.")

    meeting.is_canceled = True
    meeting.canceled_at = now or utcnow()
    job_id = meeting.reminder_job_id
    meeting.reminder_job_id = None
    _touch(meeting)
    _commit(db, meeting.id)

    reminders.cancel(job_id)
    logger.info("User %s canceled meeting %s", actor.id, meeting.id)
    return meeting


def purge_meeting(db: Session, store: ObjectStore, reminders: ReminderScheduler, meeting: Meeting) -> None:
    """
    Permanently remove a meeting with its participants and files.
    Rows go first; object-store failures afterwards leave orphans that are logged.
    """
    meeting_id = meeting.id
    job_id = meeting.reminder_job_id
    object_keys = [f.object_key for f in meeting.files]

    db.add(MeetingLog(original_id=meeting_id, row_json=_snapshot(meeting)))
    db.delete(meeting)
    _commit(db, meeting_id)

    reminders.cancel(job_id)
    remove_objects(store, MINIO_MEETING_BUCKET, object_keys)


def delete_meeting(db: Session, store: ObjectStore, reminders: ReminderScheduler, actor: Actor,
                   meeting_id: str) -> None:
    meeting = _load_meeting(db, meeting_id, "Delete")
    _require_manager(actor, meeting, "Delete")
    purge_meeting(db, store, reminders, meeting)
    logger.info("User %s deleted meeting %s", actor.id, meeting_id)


def _snapshot(meeting: Meeting) -> str:
    row = {column.name: getattr(meeting, column.name) for column in Meeting.__table__.columns}
    row["participants"] = sorted(participant_ids(meeting))
    row["files"] = [f.object_key for f in meeting.files]
    return json.dumps(row, default=str)


# -------------------------
# Participants
# -------------------------
def add_participant(db: Session, actor: Actor, meeting_id: str, email: str) -> MeetingParticipant:
    meeting = _load_meeting(db, meeting_id, "Add participant")
    _require_manager(actor, meeting, "Add participant")

    users, _ = _resolve_emails(db, [email])
    if not users:
        logger.warning("Add participant failed: Participant user %s not found.", email)
        raise NotFoundError("Participant user not found.")
    user = users[0]

    if user.id == meeting.organizer_id or user.id in participant_ids(meeting):
        raise ConflictError("User is already a participant of this meeting.")

    participant = MeetingParticipant(user_id=user.id, role=PARTICIPANT_LABEL, joined_at=utcnow())
    meeting.participants.append(participant)
    _touch(meeting)
    _commit(db, meeting.id)
    logger.info("Added user %s to meeting %s", user.id, meeting.id)
    return participant


def remove_participant(db: Session, actor: Actor, meeting_id: str, user_id: str) -> None:
    meeting = _load_meeting(db, meeting_id, "Remove participant")
    if not can_remove_participant(actor, meeting, user_id):
        logger.warning("Remove participant failed: User %s may not remove %s from meeting %s.",
                       actor.id, user_id, meeting_id)
        raise ForbiddenError("User is not authorized to remove participants from this meeting.")
    if user_id == meeting.organizer_id:
        raise ConflictError("The organizer cannot be removed from their own meeting.")

    participant = db.get(MeetingParticipant, (meeting_id, user_id))
    if participant is None:
        raise NotFoundError("Participant not found in this meeting.")

    meeting.participants.remove(participant)
    _touch(meeting)
    _commit(db, meeting.id)
    logger.info("Removed user %s from meeting %s", user_id, meeting_id)
