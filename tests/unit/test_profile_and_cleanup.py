import datetime
import sqlite3

import pytest
from sqlalchemy import event

from meetinghub.core.config import MINIO_MEETING_BUCKET, MINIO_PROFILE_BUCKET
from meetinghub.core.errors import FileTooLargeError, NotFoundError
from meetinghub.models.meeting import Meeting, MeetingLog
from meetinghub.scheduler.cleanup import delete_expired_meetings
from meetinghub.services import meeting_file_service, meeting_service, profile_picture_service


class TestProfilePicture:
    def test_replacing_removes_previous_object(self, db, store, make_user, make_upload):
        user, _ = make_user("ann")
        first = profile_picture_service.set_profile_picture(db, store, user, make_upload("a.png", b"1"))
        second = profile_picture_service.set_profile_picture(db, store, user, make_upload("b.png", b"2"))

        assert first != second
        assert store.keys(MINIO_PROFILE_BUCKET) == [second]
        assert user.profile_picture_key == second

    def test_remove_and_url(self, db, store, make_user, make_upload):
        user, _ = make_user("ann")
        assert profile_picture_service.profile_picture_url(store, user) is None
        with pytest.raises(NotFoundError):
            profile_picture_service.remove_profile_picture(db, store, user)

        key = profile_picture_service.set_profile_picture(db, store, user, make_upload("a.png"))
        assert key in profile_picture_service.profile_picture_url(store, user)

        profile_picture_service.remove_profile_picture(db, store, user)
        assert user.profile_picture_key is None
        assert store.keys(MINIO_PROFILE_BUCKET) == []

    def test_oversized_picture_is_rejected_before_storing(self, db, store, make_user, make_upload):
        user, _ = make_user("ann")
        kept = profile_picture_service.set_profile_picture(db, store, user, make_upload("a.png", b"1"))

        with pytest.raises(FileTooLargeError):
            profile_picture_service.set_profile_picture(
                db, store, user, make_upload("big.png", b"x" * 11), max_file_size=10,
            )

        assert store.put_calls == 1
        assert store.keys(MINIO_PROFILE_BUCKET) == [kept]
        assert user.profile_picture_key == kept



class TestCleanup:
    def test_only_meetings_canceled_past_threshold_are_purged(self, db, store, reminders, make_user, now,
                                                              make_upload):
        _, alice = make_user("alice")
        start = now + datetime.timedelta(days=1)

        def new_meeting():
            meeting, _ = meeting_service.create_meeting(
                db, reminders, alice, "Sync", "Sync", start, start + datetime.timedelta(hours=1), now=now,
            )
            return meeting

        old, recent, active = new_meeting(), new_meeting(), new_meeting()
        meeting_file_service.upload_files(db, store, alice, old.id, [make_upload()])
        meeting_service.cancel_meeting(db, reminders, alice, old.id, now=now - datetime.timedelta(days=40))
        meeting_service.cancel_meeting(db, reminders, alice, recent.id, now=now - datetime.timedelta(days=2))
        old_id = old.id

        deleted = delete_expired_meetings(db, store, reminders, now=now, threshold_days=30)

        assert deleted == 1
        assert db.get(Meeting, old_id) is None
        assert {m.id for m in db.query(Meeting).all()} == {recent.id, active.id}
        assert store.keys(MINIO_MEETING_BUCKET) == []
        assert db.query(MeetingLog).filter_by(original_id=old_id).count() == 1

    def test_nothing_to_clean(self, db, store, reminders, now):
        assert delete_expired_meetings(db, store, reminders, now=now) == 0

    def test_failed_purge_does_not_stop_the_sweep(self, engine, db, store, reminders, make_user, now):
        _, alice = make_user("alice")
        start = now + datetime.timedelta(days=1)
        for _ in range(2):
            meeting, _ = meeting_service.create_meeting(
                db, reminders, alice, "Sync", "Sync", start, start + datetime.timedelta(hours=1), now=now,
            )
            meeting_service.cancel_meeting(db, reminders, alice, meeting.id, now=now - datetime.timedelta(days=40))

        failed = []

        def fail_first_delete(conn, cursor, statement, parameters, context, executemany):
            if statement.startswith("DELETE FROM meetings ") and not failed:
                failed.append(statement)
                raise sqlite3.OperationalError("database is locked")

        event.listen(engine, "before_cursor_execute", fail_first_delete)
        try:
            deleted = delete_expired_meetings(db, store, reminders, now=now, threshold_days=30)
        finally:
            event.remove(engine, "before_cursor_execute", fail_first_delete)

        assert failed
        assert deleted == 1
        assert db.query(Meeting).count() == 1
        assert db.query(MeetingLog).count() == 1
