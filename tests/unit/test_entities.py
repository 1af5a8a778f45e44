"""Tests for domain entities and WebSocket message models."""

import asyncio
import json
import uuid

import pytest
from pydantic import ValidationError

from coreader.domain.entities import (
    Anchor,
    Comment,
    Connection,
    ConnectionState,
    CreateComment,
    CreateHighlight,
    Document,
    ErrorCode,
    JoinSession,
    Ping,
    Profile,
    ProgressRecord,
    UpdateProgress,
    UserLeft,
)
from coreader.domain.entities.websocket_messages import client_message_adapter
from coreader.domain.errors import NotFound, QuotaExceeded, TransportLost


class TestDocument:
    def test_defaults(self):
        document = Document(title="Dracula")

        assert document.author == "Unknown Author"
        assert len(document.slug) == 8
        assert document.slug.isalnum()
        assert document.session_id != document.id

    def test_title_required(self):
        with pytest.raises(ValidationError):
            Document(title="")


class TestProfile:
    def test_color_must_be_hex(self):
        with pytest.raises(ValidationError):
            Profile(document_id=uuid.uuid4(), username="Kind Owl", color="red")

    def test_username_length(self):
        with pytest.raises(ValidationError):
            Profile(document_id=uuid.uuid4(), username="x" * 51, color="#FF6B6B")


class TestComment:
    def test_root_and_reply(self):
        root = Comment(
            highlight_id=uuid.uuid4(),
            document_id=uuid.uuid4(),
            participant_id=uuid.uuid4(),
            username="Kind Owl",
            text="Nice",
        )
        reply = root.model_copy(update={"id": uuid.uuid4(), "parent_id": root.id, "depth": 1})

        assert not root.is_reply
        assert reply.is_reply


class TestProgressRecord:
    def test_percentage_bounds(self):
        with pytest.raises(ValidationError):
            ProgressRecord(document_id=uuid.uuid4(), participant_id=uuid.uuid4(), percentage=101)

    def test_position(self):
        record = ProgressRecord(
            document_id=uuid.uuid4(),
            participant_id=uuid.uuid4(),
            percentage=42.5,
            location="epubcfi(/6/4)",
            chapter=3,
        )

        assert record.position.percentage == 42.5
        assert record.position.chapter == 3


class TestClientMessages:
    def test_parse_each_type(self):
        session_id = uuid.uuid4()
        highlight_id = uuid.uuid4()

        join = client_message_adapter.validate_json(
            json.dumps({"type": "join-session", "session_id": str(session_id)})
        )
        highlight = client_message_adapter.validate_json(
            json.dumps({"type": "create-highlight", "anchor": {"location": "epubcfi(/6/2)"}, "text": "Call me"})
        )
        comment = client_message_adapter.validate_json(
            json.dumps({"type": "create-comment", "highlight_id": str(highlight_id), "text": "Ishmael"})
        )
        progress = client_message_adapter.validate_json(
            json.dumps({"type": "update-progress", "position": {"percentage": 12}})
        )
        ping = client_message_adapter.validate_json('{"type": "ping"}')

        assert isinstance(join, JoinSession) and join.session_id == session_id
        assert join.participant_id is None
        assert isinstance(highlight, CreateHighlight) and highlight.anchor == Anchor(location="epubcfi(/6/2)")
        assert isinstance(comment, CreateComment) and comment.parent_id is None
        assert isinstance(progress, UpdateProgress) and progress.position.percentage == 12
        assert isinstance(ping, Ping)

    def test_unknown_type_rejected(self):
        with pytest.raises(ValidationError):
            client_message_adapter.validate_json('{"type": "delete-everything"}')

    def test_server_message_serialization(self):
        participant_id = uuid.uuid4()

        data = json.loads(UserLeft(participant_id=participant_id).model_dump_json())

        assert data == {"type": "user-left", "participant_id": str(participant_id)}


class TestConnection:
    def test_initial_state(self):
        connection = Connection(queue_size=4)

        assert connection.state == ConnectionState.CONNECTING
        assert not connection.is_joined
        assert connection.participant_id is None
        assert connection.outbound.maxsize == 4

    def test_count_message_window(self):
        connection = Connection()

        assert connection.count_message(100.0) == 1
        assert connection.count_message(100.5) == 2
        assert connection.count_message(101.0) == 1

    def test_close_puts_stop_marker_even_when_full(self):
        connection = Connection(queue_size=1)
        connection.outbound.put_nowait(Ping())

        connection.close()
        connection.close()

        assert connection.closed
        assert connection.outbound.get_nowait() is None
        with pytest.raises(asyncio.QueueEmpty):
            connection.outbound.get_nowait()


class TestErrors:
    def test_to_message(self):
        error = QuotaExceeded(QuotaExceeded.HIGHLIGHT_LIMIT, "Too many highlights")

        message = error.to_message()

        assert message.code == ErrorCode.QUOTA_EXCEEDED
        assert message.reason == "highlight_limit"
        assert message.message == "Too many highlights"

    def test_not_found_message(self):
        error = NotFound("session", "abc")

        assert error.message == "Session abc not found"
        assert error.to_message().code == ErrorCode.NOT_FOUND

    def test_transport_lost(self):
        error = TransportLost(5)

        assert error.code == ErrorCode.CONNECTION_LOST
        assert "5 reconnection attempts" in error.message
