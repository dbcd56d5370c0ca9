"""
Unit tests for auth.rules.
Plain objects stand in for meetings and files; the rules never touch the database.
"""
from types import SimpleNamespace

from meetinghub.auth.rules import (
    ADMIN_ROLE,
    USER_ROLE,
    Actor,
    can_delete_file,
    can_manage_meeting,
    can_remove_participant,
    can_upload_file,
    can_view_meeting,
    is_participant,
)

MEETING = SimpleNamespace(id="m1", organizer_id="org")
ORGANIZER = Actor(id="org", roles=frozenset({USER_ROLE}))
MEMBER = Actor(id="member", roles=frozenset({USER_ROLE}))
STRANGER = Actor(id="stranger", roles=frozenset({USER_ROLE}))
ADMIN = Actor(id="admin", roles=frozenset({USER_ROLE, ADMIN_ROLE}))
PARTICIPANTS = {"member"}


class TestMeetingRules:
    def test_organizer_counts_as_participant_without_row(self):
        assert is_participant(ORGANIZER, MEETING, set()) is True

    def test_only_organizer_and_admin_manage(self):
        assert can_manage_meeting(ORGANIZER, MEETING)
        assert can_manage_meeting(ADMIN, MEETING)
        assert not can_manage_meeting(MEMBER, MEETING)
        assert not can_manage_meeting(STRANGER, MEETING)

    def test_view_requires_membership_or_admin(self):
        assert can_view_meeting(MEMBER, MEETING, PARTICIPANTS)
        assert can_view_meeting(ADMIN, MEETING, PARTICIPANTS)
        assert not can_view_meeting(STRANGER, MEETING, PARTICIPANTS)

    def test_participant_may_leave_but_not_remove_others(self):
        assert can_remove_participant(MEMBER, MEETING, "member")
        assert not can_remove_participant(MEMBER, MEETING, "someone-else")
        assert can_remove_participant(ORGANIZER, MEETING, "member")
        assert can_remove_participant(ADMIN, MEETING, "member")


class TestFileRules:
    def test_upload_limited_to_participants(self):
        assert can_upload_file(MEMBER, MEETING, PARTICIPANTS)
        assert can_upload_file(ORGANIZER, MEETING, PARTICIPANTS)
        assert not can_upload_file(STRANGER, MEETING, PARTICIPANTS)

    def test_delete_by_uploader_organizer_or_admin(self):
        meeting_file = SimpleNamespace(uploaded_by_user_id="member")
        assert can_delete_file(MEMBER, MEETING, meeting_file)
        assert can_delete_file(ORGANIZER, MEETING, meeting_file)
        assert can_delete_file(ADMIN, MEETING, meeting_file)

        other = Actor(id="other-member", roles=frozenset({USER_ROLE}))
        assert not can_delete_file(other, MEETING, meeting_file)
