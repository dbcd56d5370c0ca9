"""
Authorization decisions for meetings and their files.

Pure functions over plain snapshots: they never touch the database, so every
role and ownership rule lives here and is tested once instead of being
re-derived at each call site. The organizer always counts as a participant,
whether or not a participant row exists for them.
"""
from dataclasses import dataclass, field
from typing import Collection, FrozenSet

ADMIN_ROLE = "Admin"
USER_ROLE = "User"
DEFAULT_ROLES = (ADMIN_ROLE, USER_ROLE)


@dataclass(frozen=True)
class Actor:
    """The authenticated caller of a service operation."""

    id: str
    roles: FrozenSet[str] = field(default_factory=frozenset)

    def has_role(self, role: str) -> bool:
        return role in self.roles


def is_participant(actor: Actor, meeting, participant_ids: Collection[str]) -> bool:
    return actor.id == meeting.organizer_id or actor.id in participant_ids


def can_manage_meeting(actor: Actor, meeting) -> bool:
    """Update, cancel, delete and participant management."""
    return actor.id == meeting.organizer_id or actor.has_role(ADMIN_ROLE)


def can_view_meeting(actor: Actor, meeting, participant_ids: Collection[str]) -> bool:
    return is_participant(actor, meeting, participant_ids) or actor.has_role(ADMIN_ROLE)


def can_upload_file(actor: Actor, meeting, participant_ids: Collection[str]) -> bool:
    return is_participant(actor, meeting, participant_ids)


def can_delete_file(actor: Actor, meeting, file) -> bool:
    return (
        actor.id == meeting.organizer_id
        or actor.id == file.uploaded_by_user_id
        or actor.has_role(ADMIN_ROLE)
    )


def can_remove_participant(actor: Actor, meeting, user_id: str) -> bool:
    # Anyone may leave a meeting; removing others needs management rights
    return actor.id == user_id or can_manage_meeting(actor, meeting)
