from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from meetinghub.models.meeting import Meeting


class MeetingCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1)
    start_at: datetime
    end_at: datetime
    participant_emails: List[str] = []


class MeetingUpdate(MeetingCreate):
    pass


class ParticipantResponse(BaseModel):
    user_id: str
    name: str
    email: str
    role: str
    joined_at: datetime


class MeetingResponse(BaseModel):
    id: str
    name: str
    description: str
    start_at: datetime
    end_at: datetime
    organizer_id: str
    is_canceled: bool
    canceled_at: Optional[datetime]
    status: str
    participants: List[ParticipantResponse] = []
    unresolved_emails: List[str] = []

    @classmethod
    def from_meeting(cls, meeting: Meeting, status: str, unresolved_emails: Optional[List[str]] = None):
        # Organizer first, everyone else in the order they joined
        ordered = sorted(
            meeting.participants,
            key=lambda p: (p.user_id != meeting.organizer_id, p.joined_at),
        )
        return cls(
            id=meeting.id,
            name=meeting.name,
            description=meeting.description,
            start_at=meeting.start_at,
            end_at=meeting.end_at,
            organizer_id=meeting.organizer_id,
            is_canceled=meeting.is_canceled,
            canceled_at=meeting.canceled_at,
            status=status,
            participants=[
                ParticipantResponse(
                    user_id=p.user_id,
                    name=p.user.name,
                    email=p.user.email,
                    role=p.role,
                    joined_at=p.joined_at,
                )
                for p in ordered
            ],
            unresolved_emails=unresolved_emails or [],
        )


class AddParticipantRequest(BaseModel):
    email: EmailStr


class MeetingFileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    meeting_id: str
    file_name: str
    content_type: str
    size_bytes: int
    uploaded_by_user_id: str
    uploaded_at: datetime


class DownloadUrlResponse(BaseModel):
    url: str
    expires_in: int


class RoleAssignment(BaseModel):
    role: str = Field(..., min_length=1)


class JobTriggered(BaseModel):
    job_id: str
