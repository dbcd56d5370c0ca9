from sqlalchemy import Column, Integer, BigInteger, String, DateTime, ForeignKey, Boolean, Text
from sqlalchemy.orm import relationship

from meetinghub.core.timeutils import utcnow
from meetinghub.models.user import Base, new_id


class Meeting(Base):
    __tablename__ = "meetings"
    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    start_at = Column(DateTime, nullable=False, index=True)
    end_at = Column(DateTime, nullable=False)
    organizer_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    is_canceled = Column(Boolean, default=False, nullable=False)
    canceled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)
    # Handle of the pending reminder job, cancelled by handle on reschedule
    reminder_job_id = Column(String(128), nullable=True)
    version = Column(Integer, nullable=False)

    organizer = relationship("User")
    participants = relationship(
        "MeetingParticipant",
        back_populates="meeting",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MeetingParticipant.joined_at",
    )
    files = relationship(
        "MeetingFile",
        back_populates="meeting",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MeetingFile.uploaded_at",
    )

    __mapper_args__ = {"version_id_col": version}


class MeetingParticipant(Base):
    __tablename__ = "meeting_participants"
    meeting_id = Column(String(36), ForeignKey("meetings.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    # Advisory label only ("Organizer" / "Participant")
    role = Column(String(50), nullable=True)
    joined_at = Column(DateTime, default=utcnow, nullable=False)

    meeting = relationship("Meeting", back_populates="participants")
    user = relationship("User")


class MeetingFile(Base):
    __tablename__ = "meeting_files"
    id = Column(String(36), primary_key=True, default=new_id)
    meeting_id = Column(String(36), ForeignKey("meetings.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    content_type = Column(String(255), nullable=False)
    size_bytes = Column(BigInteger, nullable=False)
    object_key = Column(String(1024), nullable=False, unique=True)
    uploaded_by_user_id = Column(String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    uploaded_at = Column(DateTime, default=utcnow, nullable=False)

    meeting = relationship("Meeting", back_populates="files")


class MeetingLog(Base):
    __tablename__ = "meeting_logs"
    id = Column(String(36), primary_key=True, default=new_id)
    original_id = Column(String(36), nullable=False, index=True)
    deleted_at = Column(DateTime, default=utcnow, nullable=False)
    row_json = Column(Text, nullable=False)
