import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from meetinghub.auth.rules import Actor
from meetinghub.auth.utils import get_current_actor
from meetinghub.core.db import get_db
from meetinghub.scheduler.reminder import ReminderScheduler, get_reminder_scheduler
from meetinghub.schemas.meeting import (
    AddParticipantRequest,
    MeetingCreate,
    MeetingResponse,
    MeetingUpdate,
    ParticipantResponse,
)
from meetinghub.services import meeting_service
from meetinghub.storage.object_store import ObjectStore, get_object_store

logger = logging.getLogger(__name__)

router = APIRouter()


def _response(meeting, unresolved=None) -> MeetingResponse:
    return MeetingResponse.from_meeting(meeting, meeting_service.meeting_status(meeting), unresolved)


# ---------------------------------------------------------
#                 MEETINGS
# ---------------------------------------------------------
@router.post("/meetings", response_model=MeetingResponse, status_code=status.HTTP_201_CREATED)
def create_meeting(
    body: MeetingCreate,
    db: Session = Depends(get_db),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
    actor: Actor = Depends(get_current_actor),
):
    meeting, unresolved = meeting_service.create_meeting(
        db, reminders, actor,
        name=body.name,
        description=body.description,
        start_at=body.start_at,
        end_at=body.end_at,
        participant_emails=body.participant_emails,
    )
    return _response(meeting, unresolved)


@router.get("/meetings", response_model=List[MeetingResponse])
def list_my_meetings(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return [_response(m) for m in meeting_service.list_user_meetings(db, actor)]


@router.get("/meetings/{meeting_id}", response_model=MeetingResponse)
def get_meeting(meeting_id: str, db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return _response(meeting_service.get_meeting(db, actor, meeting_id))


@router.put("/meetings/{meeting_id}", response_model=MeetingResponse)
def update_meeting(
    meeting_id: str,
    body: MeetingUpdate,
    db: Session = Depends(get_db),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
    actor: Actor = Depends(get_current_actor),
):
    meeting, unresolved = meeting_service.update_meeting(
        db, reminders, actor, meeting_id,
        name=body.name,
        description=body.description,
        start_at=body.start_at,
        end_at=body.end_at,
        participant_emails=body.participant_emails,
    )
    return _response(meeting, unresolved)


@router.post("/meetings/{meeting_id}/cancel", response_model=MeetingResponse)
def cancel_meeting(
    meeting_id: str,
    db: Session = Depends(get_db),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
    actor: Actor = Depends(get_current_actor),
):
    return _response(meeting_service.cancel_meeting(db, reminders, actor, meeting_id))


@router.delete("/meetings/{meeting_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_meeting(
    meeting_id: str,
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_object_store),
    reminders: ReminderScheduler = Depends(get_reminder_scheduler),
    actor: Actor = Depends(get_current_actor),
):
    meeting_service.delete_meeting(db, store, reminders, actor, meeting_id)


# ---------------------------------------------------------
#                 PARTICIPANTS
# ---------------------------------------------------------
@router.post(
    "/meetings/{meeting_id}/participants",
    response_model=ParticipantResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_participant(
    meeting_id: str,
    body: AddParticipantRequest,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    participant = meeting_service.add_participant(db, actor, meeting_id, body.email)
    return ParticipantResponse(
        user_id=participant.user_id,
        name=participant.user.name,
        email=participant.user.email,
        role=participant.role,
        joined_at=participant.joined_at,
    )


@router.delete("/meetings/{meeting_id}/participants/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_participant(
    meeting_id: str,
    user_id: str,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    meeting_service.remove_participant(db, actor, meeting_id, user_id)
