"""Tests for the collaboration service."""

import json
import uuid

import pytest

from coreader.domain.entities import Anchor, Connection, ProgressOutcome, ProgressPosition
from coreader.domain.entities.limits import HighlightLimits, Limits
from coreader.domain.errors import NotFound, PersistenceFailure, ProfileConflict, ValidationFailed

from support import drain, of_type

ANCHOR = {"location": "epubcfi(/6/4!/4/2,/1:0,/1:16)", "chapter": 1}


def frame(message_type: str, **fields) -> str:
    return json.dumps({"type": message_type, **fields}, default=str)


async def highlight(service, connection, text="Call me Ishmael."):
    await service.handle_message(connection, frame("create-highlight", anchor=ANCHOR, text=text))
    return of_type(drain(connection), "highlight-confirmed")[0].highlight


async def comment(service, connection, highlight_id, text="Great line", parent_id=None):
    await service.handle_message(
        connection, frame("create-comment", highlight_id=highlight_id, text=text, parent_id=parent_id)
    )
    return drain(connection)


class TestJoin:
    @pytest.mark.asyncio
    async def test_join_sends_roster_then_state(self, service, document):
        connection = Connection()

        await service.handle_message(connection, frame("join-session", session_id=document.session_id))

        messages = drain(connection)
        assert [m.type for m in messages] == ["session-roster", "session-state"]
        roster = messages[0]
        assert roster.document_id == document.id
        assert roster.participants == [roster.participant]
        assert roster.limits.user.max_concurrent_per_session == 5

    @pytest.mark.asyncio
    async def test_join_announced_to_others(self, service, joined):
        first = await joined()
        drain(first)

        second = await joined()

        announced = of_type(drain(first), "user-joined")
        assert [m.participant.id for m in announced] == [second.participant_id]

    @pytest.mark.asyncio
    async def test_state_replays_existing_annotations(self, service, joined):
        author = await joined()
        drain(author)
        created = await highlight(service, author)
        await comment(service, author, created.id)
        await service.handle_message(author, frame("update-progress", position={"percentage": 12.5}))

        late = await joined()

        state = of_type(drain(late), "session-state")[0]
        assert [h.id for h in state.highlights] == [created.id]
        assert len(state.comments) == 1
        assert [p.percentage for p in state.progress] == [12.5]

    @pytest.mark.asyncio
    async def test_full_session_rejected(self, service, document, joined):
        for _ in range(5):
            await joined()
        connection = Connection()

        await service.handle_message(connection, frame("join-session", session_id=document.session_id))

        errors = of_type(drain(connection), "error")
        assert [(e.code, e.reason) for e in errors] == [("QUOTA_EXCEEDED", "session_full")]

    @pytest.mark.asyncio
    async def test_unknown_session(self, service):
        connection = Connection()

        await service.handle_message(connection, frame("join-session", session_id=uuid.uuid4()))

        assert drain(connection)[0].code == "NOT_FOUND"


class TestHighlights:
    @pytest.mark.asyncio
    async def test_originator_confirmed_peers_added(self, service, joined):
        """Test the originator gets one confirmation and each peer one added event."""
        author, *peers = [await joined() for _ in range(3)]
        for connection in (author, *peers):
            drain(connection)

        await service.handle_message(author, frame("create-highlight", anchor=ANCHOR, text="  Call me Ishmael.  "))

        own = drain(author)
        assert [m.type for m in own] == ["highlight-confirmed"]
        created = own[0].highlight
        assert created.text == "Call me Ishmael."
        assert created.color == author.participant.color
        for peer in peers:
            added = drain(peer)
            assert [m.type for m in added] == ["highlight-added"]
            assert added[0].highlight.id == created.id

    @pytest.mark.asyncio
    async def test_blank_text_rejected(self, service, joined):
        connection = await joined()
        drain(connection)

        await service.handle_message(connection, frame("create-highlight", anchor=ANCHOR, text="   "))

        error = drain(connection)[0]
        assert (error.code, error.reason) == ("VALIDATION_FAILED", "text")

    @pytest.mark.asyncio
    async def test_highlight_limit(self, service, joined):
        service.quota.replace(Limits(highlights=HighlightLimits(max_per_user_per_book=2)))
        connection = await joined()
        drain(connection)

        await highlight(service, connection)
        await highlight(service, connection)
        await service.handle_message(connection, frame("create-highlight", anchor=ANCHOR, text="third"))

        error = drain(connection)[0]
        assert (error.code, error.reason) == ("QUOTA_EXCEEDED", "highlight_limit")
        assert await service.annotations.count_highlights(connection.document_id, connection.participant_id) == 2

    @pytest.mark.asyncio
    async def test_foreign_document_rejected(self, service, joined):
        connection = await joined()
        drain(connection)

        await service.handle_message(
            connection, frame("create-highlight", document_id=uuid.uuid4(), anchor=ANCHOR, text="x")
        )

        error = drain(connection)[0]
        assert (error.code, error.reason) == ("VALIDATION_FAILED", "document_id")

    @pytest.mark.asyncio
    async def test_unsaved_highlight_still_shared(self, service, joined, monkeypatch):
        """Test a storage failure still confirms and broadcasts, flagged non-durable."""
        author, peer = await joined(), await joined()
        drain(author)
        drain(peer)

        async def failing_save(entity):
            raise PersistenceFailure("save_highlight")

        monkeypatch.setattr(service.annotations, "save_highlight", failing_save)

        await service.handle_message(author, frame("create-highlight", anchor=ANCHOR, text="Call me Ishmael."))

        own = drain(author)
        assert [m.type for m in own] == ["highlight-confirmed", "warning"]
        assert not own[0].highlight.durable
        assert own[1].code == "PERSISTENCE_FAILURE"
        assert [m.type for m in drain(peer)] == ["highlight-added"]


class TestComments:
    @pytest.mark.asyncio
    async def test_sixth_root_comment_rejected(self, service, joined):
        connection = await joined()
        drain(connection)
        target = await highlight(service, connection)

        for i in range(5):
            assert of_type(await comment(service, connection, target.id, f"comment {i}"), "comment-confirmed")
        messages = await comment(service, connection, target.id, "one too many")

        assert [(m.code, m.reason) for m in messages] == [("QUOTA_EXCEEDED", "comment_limit")]
        assert len(await service.annotations.list_comments(target.id)) == 5

    @pytest.mark.asyncio
    async def test_reply_on_full_highlight_rejected(self, service, joined):
        """Test replies count towards the per-highlight comment ceiling."""
        connection = await joined()
        drain(connection)
        target = await highlight(service, connection)
        roots = [
            of_type(await comment(service, connection, target.id, f"comment {i}"), "comment-confirmed")[0].comment
            for i in range(5)
        ]

        messages = await comment(service, connection, target.id, "a reply", roots[0].id)

        assert [(m.code, m.reason) for m in messages] == [("QUOTA_EXCEEDED", "comment_limit")]
        assert len(await service.annotations.list_comments(target.id)) == 5

    @pytest.mark.asyncio
    async def test_replies_leave_no_room_for_roots(self, service, joined):
        connection = await joined()
        drain(connection)
        target = await highlight(service, connection)
        root = of_type(await comment(service, connection, target.id), "comment-confirmed")[0].comment
        for i in range(4):
            assert of_type(await comment(service, connection, target.id, f"reply {i}", root.id), "comment-confirmed")

        messages = await comment(service, connection, target.id, "new thread")

        assert [(m.code, m.reason) for m in messages] == [("QUOTA_EXCEEDED", "comment_limit")]

    @pytest.mark.asyncio
    async def test_reply_depth(self, service, joined):
        """Test replies nest to the configured depth and no further."""
        connection = await joined()
        drain(connection)
        target = await highlight(service, connection)

        root = of_type(await comment(service, connection, target.id), "comment-confirmed")[0].comment
        first = of_type(await comment(service, connection, target.id, "reply", root.id), "comment-confirmed")[0].comment
        second = of_type(await comment(service, connection, target.id, "reply", first.id), "comment-confirmed")[0].comment
        rejected = await comment(service, connection, target.id, "reply", second.id)

        assert [root.depth, first.depth, second.depth] == [0, 1, 2]
        assert second.parent_id == first.id
        assert [(m.code, m.reason) for m in rejected] == [("QUOTA_EXCEEDED", "reply_depth")]

    @pytest.mark.asyncio
    async def test_replies_use_reply_length_limit(self, service, joined):
        connection = await joined()
        drain(connection)
        target = await highlight(service, connection)
        root = of_type(await comment(service, connection, target.id), "comment-confirmed")[0].comment

        messages = await comment(service, connection, target.id, "x" * 301, root.id)

        assert [(m.code, m.reason) for m in messages] == [("VALIDATION_FAILED", "text")]

    @pytest.mark.asyncio
    async def test_parent_on_other_highlight(self, service, joined):
        connection = await joined()
        drain(connection)
        first = await highlight(service, connection, "first")
        second = await highlight(service, connection, "second")
        root = of_type(await comment(service, connection, first.id), "comment-confirmed")[0].comment

        messages = await comment(service, connection, second.id, "reply", root.id)

        assert [(m.code, m.reason) for m in messages] == [("NOT_FOUND", "comment")]

    @pytest.mark.asyncio
    async def test_unknown_highlight(self, service, joined):
        connection = await joined()
        drain(connection)

        messages = await comment(service, connection, uuid.uuid4())

        assert [(m.code, m.reason) for m in messages] == [("NOT_FOUND", "highlight")]

    @pytest.mark.asyncio
    async def test_comment_fan_out(self, service, joined):
        author, peer = await joined(), await joined()
        drain(author)
        target = await highlight(service, author)
        drain(peer)

        own = await comment(service, author, target.id)

        assert [m.type for m in own] == ["comment-confirmed"]
        added = drain(peer)
        assert [m.type for m in added] == ["comment-added"]
        assert added[0].comment.id == own[0].comment.id


class TestProgress:
    @pytest.mark.asyncio
    async def test_forward_progress_reaches_peers(self, service, joined):
        reader, peer = await joined(), await joined()
        drain(reader)
        drain(peer)

        await service.handle_message(reader, frame("update-progress", position={"percentage": 40, "chapter": 3}))
        await service.handle_message(reader, frame("update-progress", position={"percentage": 30}))

        assert drain(reader) == []
        updates = of_type(drain(peer), "user-progress-updated")
        assert [u.position.percentage for u in updates] == [40]
        assert updates[0].participant_id == reader.participant_id
        assert updates[0].username == reader.participant.username

    @pytest.mark.asyncio
    async def test_out_of_range_percentage(self, service, joined):
        reader = await joined()
        drain(reader)

        await service.handle_message(reader, frame("update-progress", position={"percentage": 120}))

        error = drain(reader)[0]
        assert (error.code, error.reason) == ("VALIDATION_FAILED", "position.percentage")


class TestMessageHandling:
    @pytest.mark.asyncio
    async def test_invalid_json(self, service):
        connection = Connection()

        await service.handle_message(connection, "{not json")

        assert drain(connection)[0].code == "INVALID_MESSAGE"

    @pytest.mark.asyncio
    async def test_unknown_type(self, service):
        connection = Connection()

        await service.handle_message(connection, frame("delete-everything"))

        assert drain(connection)[0].code == "INVALID_MESSAGE"

    @pytest.mark.asyncio
    async def test_not_joined(self, service):
        connection = Connection()

        await service.handle_message(connection, frame("create-highlight", anchor=ANCHOR, text="x"))

        error = drain(connection)[0]
        assert (error.code, error.reason) == ("NOT_JOINED", "not_joined")

    @pytest.mark.asyncio
    async def test_ping(self, service):
        connection = Connection()

        await service.handle_message(connection, frame("ping"))

        assert [m.type for m in drain(connection)] == ["pong"]

    @pytest.mark.asyncio
    async def test_message_rate(self, service, monkeypatch):
        monkeypatch.setattr(service, "_clock", lambda: 100.0)
        connection = Connection()

        for _ in range(11):
            await service.handle_message(connection, frame("ping"))

        messages = drain(connection)
        assert len(of_type(messages, "pong")) == 10
        assert [e.reason for e in of_type(messages, "error")] == ["message_rate"]

    @pytest.mark.asyncio
    async def test_message_size(self, service):
        connection = Connection()

        await service.handle_message(connection, frame("ping", padding="x" * (1024 * 1024)))

        error = drain(connection)[0]
        assert (error.code, error.reason) == ("VALIDATION_FAILED", "message")

    @pytest.mark.asyncio
    async def test_unexpected_error_reported(self, service, joined, monkeypatch):
        connection = await joined()
        drain(connection)

        async def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(service.annotations, "count_highlights", broken)

        await service.handle_message(connection, frame("create-highlight", anchor=ANCHOR, text="x"))

        error = drain(connection)[0]
        assert error.code == "INTERNAL_ERROR"


class TestLimits:
    @pytest.mark.asyncio
    async def test_upgrade_phase_broadcasts(self, service, joined):
        connection = await joined()
        drain(connection)

        limits = await service.upgrade_phase("PHASE_3")

        assert limits.user.max_concurrent_per_session == 25
        assert service.quota.limits is limits
        updates = of_type(drain(connection), "limits-updated")
        assert [u.phase for u in updates] == ["PHASE_3"]

    @pytest.mark.asyncio
    async def test_unknown_phase(self, service):
        with pytest.raises(ValidationFailed) as exc_info:
            await service.upgrade_phase("PHASE_9")

        assert exc_info.value.field == "phase"


class TestHttpOperations:
    @pytest.mark.asyncio
    async def test_document_lookup_by_slug(self, service, document):
        assert (await service.get_document_by_slug(document.slug)).id == document.id

        with pytest.raises(NotFound):
            await service.get_document(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_add_highlight_reaches_live_readers(self, service, document, joined):
        reader = await joined()
        drain(reader)

        created = await service.add_highlight(
            document.id, reader.participant_id, Anchor(location="epubcfi(/6/8)", chapter=2), "It was the best"
        )

        added = drain(reader)
        assert [m.type for m in added] == ["highlight-added"]
        assert added[0].highlight.id == created.id
        assert [h.id for h in await service.list_highlights(document.id, chapter=2)] == [created.id]
        assert await service.list_highlights(document.id, chapter=5) == []

    @pytest.mark.asyncio
    async def test_add_comment_requires_known_profile(self, service, document, joined):
        reader = await joined()
        created = await service.add_highlight(document.id, reader.participant_id, Anchor(location="a"), "text")

        with pytest.raises(NotFound) as exc_info:
            await service.add_comment(created.id, uuid.uuid4(), "hello")

        assert exc_info.value.entity == "profile"

        root = await service.add_comment(created.id, reader.participant_id, "hello")
        assert [c.id for c in await service.list_comments(created.id)] == [root.id]

    @pytest.mark.asyncio
    async def test_create_profile_conflict(self, service, document):
        profile = await service.create_profile(document.id, "  Ahab ")

        assert profile.username == "Ahab"
        with pytest.raises(ProfileConflict):
            await service.create_profile(document.id, "Ahab")
        with pytest.raises(ValidationFailed):
            await service.create_profile(document.id, "   ")

    @pytest.mark.asyncio
    async def test_use_profile(self, service, document):
        profile = await service.create_profile(document.id, "Ahab")

        used = await service.use_profile(document.id, profile.id)

        assert used.last_used_at >= profile.created_at
        other = await service.create_document("Dracula")
        with pytest.raises(NotFound):
            await service.use_profile(other.id, profile.id)

    @pytest.mark.asyncio
    async def test_report_and_read_progress(self, service, document):
        profile = await service.create_profile(document.id, "Ahab")

        assert await service.report_progress(
            document.id, profile.id, ProgressPosition(percentage=25)
        ) == ProgressOutcome.ACCEPTED
        assert await service.report_progress(
            document.id, profile.id, ProgressPosition(percentage=20)
        ) == ProgressOutcome.IGNORED

        assert (await service.get_progress(document.id, profile.id)).percentage == 25
        assert [r.participant_id for r in await service.list_progress(document.id)] == [profile.id]
        with pytest.raises(NotFound):
            await service.get_progress(document.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_get_session_includes_roster(self, service, document, joined):
        reader = await joined()

        session, participants = await service.get_session(document.session_id)

        assert session.participant_count == 1
        assert [p.id for p in participants] == [reader.participant_id]
