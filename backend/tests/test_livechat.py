"""Tests for livechat visitors, rooms, message delivery and the room stream."""
import json
from unittest.mock import AsyncMock

import pytest
from starlette.websockets import WebSocketDisconnect

from app.files.schemas import StoredFile
from app.livechat import responses
from app.livechat.manager import ConnectionManager, manager
from app.livechat.messages import (
    MessageDataError,
    MessageService,
    build_file_attachment,
    parse_message_data,
)
from app.livechat.rooms import RoomRepository
from app.livechat.schemas import Message, SourceType, VisitorSource
from app.livechat.visitors import VisitorRepository
from app.livechat.widget import get_source_type, is_widget

from conftest import WIDGET_COOKIES


def _stored_file(mime_type="image/png", name="photo.png", description=None) -> StoredFile:
    return StoredFile(
        id="file-1",
        store="Uploads",
        name=name,
        size=64,
        type=mime_type,
        rid="room-1",
        visitor_token="visitor-token-1",
        description=description,
        complete=True,
    )


class TestWidgetDetection:
    """Tests for source channel inference from cookies."""

    def test_widget_cookies(self):
        assert is_widget({"cookie": WIDGET_COOKIES}) is True
        assert get_source_type({"cookie": WIDGET_COOKIES}) == SourceType.WIDGET

    def test_no_cookies_is_api(self):
        assert is_widget({}) is False
        assert get_source_type({}) == SourceType.API

    def test_widget_flag_without_livechat_room_type(self):
        assert is_widget({"cookie": "rc_room_type=c; rc_is_widget=t"}) is False

    def test_livechat_room_type_without_widget_flag(self):
        assert is_widget({"cookie": "rc_room_type=l; rc_is_widget=f"}) is False

    def test_other_cookies_ignored(self):
        assert is_widget({"cookie": "session=abc; rc_is_widget=t; rc_room_type=l"}) is True

    @pytest.mark.parametrize("other_cookie", ["theme=dark mode", 'prefs={"a":1}', "broken"])
    def test_malformed_neighbour_cookie_ignored(self, other_cookie):
        headers = {"cookie": f"{other_cookie}; {WIDGET_COOKIES}"}
        assert is_widget(headers) is True
        assert get_source_type(headers) == SourceType.WIDGET


class TestResponses:
    """Tests for the REST envelope helpers."""

    def test_success_merges_result(self):
        response = responses.success({"rid": "r1"})
        assert response.status_code == 200
        assert json.loads(response.body) == {"success": True, "rid": "r1"}

    def test_failure_with_dict(self):
        response = responses.failure({"reason": "error-type-not-allowed"})
        assert response.status_code == 400
        assert json.loads(response.body) == {"reason": "error-type-not-allowed", "success": False}

    def test_failure_with_string(self):
        response = responses.failure("Invalid file")
        assert response.status_code == 400
        assert json.loads(response.body) == {"success": False, "error": "Invalid file"}

    def test_unauthorized(self):
        response = responses.unauthorized()
        assert response.status_code == 401
        assert json.loads(response.body) == {"success": False, "error": "unauthorized"}


class TestVisitorRepository:
    """Tests for visitor registration and lookup."""

    def test_register_assigns_guest_username(self):
        repo = VisitorRepository()
        first = repo.register(token="t1")
        second = repo.register(token="t2")

        assert first.username.startswith("guest-")
        assert first.username != second.username
        assert first.source is None

    def test_register_is_idempotent(self):
        repo = VisitorRepository()
        created = repo.register(token="t1", name="Alice")
        again = repo.register(token="t1")

        assert again.id == created.id
        assert again.name == "Alice"

    def test_register_updates_contact_details(self):
        repo = VisitorRepository()
        repo.register(token="t1", name="Alice")
        updated = repo.register(token="t1", email="alice@example.com")

        assert updated.name == "Alice"
        assert updated.email == "alice@example.com"

    def test_visitor_without_source_matches_any_channel(self):
        repo = VisitorRepository()
        repo.register(token="t1")

        assert repo.get_by_token_and_source("t1", SourceType.WIDGET) is not None
        assert repo.get_by_token_and_source("t1", SourceType.API) is not None

    def test_visitor_with_source_matches_only_that_channel(self):
        repo = VisitorRepository()
        visitor = repo.register(token="t1")
        repo.set_source_by_id(visitor.id, VisitorSource(type=SourceType.WIDGET))

        assert repo.get_by_token_and_source("t1", SourceType.WIDGET).source.type == SourceType.WIDGET
        assert repo.get_by_token_and_source("t1", SourceType.API) is None

    def test_unknown_token(self):
        assert VisitorRepository().get_by_token("missing") is None


class TestRoomRepository:
    """Tests for room lookup and closing."""

    def test_find_open_room_by_id_and_token(self, visitor, room):
        repo = RoomRepository()
        found = repo.find_one_open_by_room_id_and_visitor_token(room.id, visitor.token)

        assert found.id == room.id
        assert found.v.username == visitor.username
        assert repo.find_one_open_by_room_id_and_visitor_token(room.id, "other") is None

    def test_close_room(self, visitor, room):
        repo = RoomRepository()

        assert repo.close(room.id, visitor.token) is True
        assert repo.find_one_open_by_room_id_and_visitor_token(room.id, visitor.token) is None
        assert repo.find_one_by_id(room.id).open is False
        assert repo.close(room.id, visitor.token) is False

    def test_record_message_updates_counters(self, room):
        repo = RoomRepository()
        repo.record_message(room.id, room.ts)

        updated = repo.find_one_by_id(room.id)
        assert updated.msgs == 1
        assert updated.lm == room.ts


class TestFileMessage:
    """Tests for file message construction."""

    def test_image_attachment(self):
        attachment = build_file_attachment(_stored_file(description="A photo"))

        assert attachment.title == "photo.png"
        assert attachment.description == "A photo"
        assert attachment.title_link == "/file-upload/file-1/photo.png"
        assert attachment.image_url == attachment.title_link
        assert attachment.image_type == "image/png"
        assert attachment.image_size == 64
        assert attachment.audio_url is None

    def test_audio_attachment(self):
        attachment = build_file_attachment(_stored_file("audio/mpeg", "voice.mp3"))
        assert attachment.audio_url == "/file-upload/file-1/voice.mp3"
        assert attachment.audio_type == "audio/mpeg"
        assert attachment.image_url is None

    def test_video_attachment(self):
        attachment = build_file_attachment(_stored_file("video/mp4", "clip.mp4"))
        assert attachment.video_size == 64

    def test_plain_file_attachment(self):
        attachment = build_file_attachment(_stored_file("application/pdf", "doc.pdf"))
        assert attachment.image_url is None
        assert attachment.audio_url is None
        assert attachment.video_url is None
        assert attachment.title_link_download is True

    def test_message_data_accepts_known_fields(self):
        data = parse_message_data({"msg": "hi", "groupable": "true"})
        assert data.msg == "hi"
        assert data.groupable is True

    def test_message_data_rejects_unknown_fields(self):
        with pytest.raises(MessageDataError):
            parse_message_data({"token": "someone-else"})

    def test_message_data_rejects_non_boolean_groupable(self):
        with pytest.raises(MessageDataError):
            parse_message_data({"groupable": "sometimes"})


class TestMessageService:
    """Tests for message persistence and delivery."""

    @pytest.mark.asyncio
    async def test_send_file_message_persists_and_broadcasts(self, visitor, room):
        connections = ConnectionManager()
        subscriber = AsyncMock()
        connections.active_connections[room.id] = [subscriber]
        service = MessageService(connections=connections)

        message = await service.send_file_message(
            room_id=room.id,
            visitor_token=visitor.token,
            file=_stored_file(),
            msg_data={"msg": "see attached"},
        )

        assert message.msg == "see attached"
        assert message.u.username == visitor.username
        assert message.token == visitor.token
        assert message.file.id == "file-1"

        payload = subscriber.send_json.call_args.args[0]
        assert payload["type"] == "message"
        assert payload["message"]["_id"] == message.id

        history = service.history(room.id)
        assert [m.id for m in history] == [message.id]
        assert history[0].attachments[0].image_url == "/file-upload/file-1/photo.png"
        assert RoomRepository().find_one_by_id(room.id).msgs == 1

    @pytest.mark.asyncio
    async def test_send_file_message_closed_room(self, visitor, room):
        RoomRepository().close(room.id, visitor.token)

        message = await MessageService().send_file_message(
            room_id=room.id, visitor_token=visitor.token, file=_stored_file()
        )

        assert message is None

    @pytest.mark.asyncio
    async def test_send_file_message_unknown_visitor(self, room):
        message = await MessageService().send_file_message(
            room_id=room.id, visitor_token="nobody", file=_stored_file()
        )
        assert message is None

    @pytest.mark.asyncio
    async def test_dead_subscriber_dropped(self, visitor, room):
        connections = ConnectionManager()
        dead = AsyncMock()
        dead.send_json.side_effect = RuntimeError("connection closed")
        connections.active_connections[room.id] = [dead]

        await MessageService(connections=connections).send_message(
            visitor, Message(rid=room.id, msg="hello")
        )

        assert connections.get_room_size(room.id) == 0

    @pytest.mark.asyncio
    async def test_history_limit_keeps_latest(self, visitor, room):
        service = MessageService(connections=ConnectionManager())
        for text in ("one", "two", "three"):
            await service.send_message(visitor, Message(rid=room.id, msg=text))

        assert [m.msg for m in service.history(room.id, limit=2)] == ["two", "three"]


class TestLivechatEndpoints:
    """Tests for the visitor, room and history REST endpoints."""

    def test_register_visitor(self, api_client):
        response = api_client.post(
            "/api/v1/livechat/visitor",
            json={"visitor": {"token": "abc", "name": "Bob"}},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["visitor"]["token"] == "abc"
        assert body["visitor"]["name"] == "Bob"
        assert "_id" in body["visitor"]

    def test_register_visitor_requires_token(self, api_client):
        response = api_client.post("/api/v1/livechat/visitor", json={"visitor": {"token": ""}})
        assert response.status_code == 422

    def test_get_room_opens_new_room(self, api_client, visitor):
        response = api_client.get("/api/v1/livechat/room", params={"token": visitor.token},
                                  headers={"cookie": WIDGET_COOKIES})

        body = response.json()
        assert body["newRoom"] is True
        assert body["room"]["open"] is True
        assert body["room"]["v"]["token"] == visitor.token
        assert body["room"]["source"]["type"] == "widget"

    def test_get_room_returns_existing_open_room(self, api_client, visitor, room):
        response = api_client.get("/api/v1/livechat/room", params={"token": visitor.token})

        body = response.json()
        assert body["newRoom"] is False
        assert body["room"]["_id"] == room.id

    def test_get_room_by_id_must_be_open(self, api_client, visitor, room):
        RoomRepository().close(room.id, visitor.token)

        response = api_client.get("/api/v1/livechat/room",
                                  params={"token": visitor.token, "rid": room.id})

        assert response.status_code == 400
        assert response.json()["error"] == "invalid-room"

    def test_get_room_unknown_token(self, api_client):
        response = api_client.get("/api/v1/livechat/room", params={"token": "nobody"})
        assert response.json() == {"success": False, "error": "invalid-token"}

    def test_close_room(self, api_client, visitor, room):
        response = api_client.post("/api/v1/livechat/room.close",
                                   json={"rid": room.id, "token": visitor.token})

        assert response.json() == {"success": True, "rid": room.id, "comment": None}
        again = api_client.post("/api/v1/livechat/room.close",
                                json={"rid": room.id, "token": visitor.token})
        assert again.json()["error"] == "room-closed"

    def test_history_after_upload(self, api_client, visitor, room):
        api_client.post(
            f"/api/v1/livechat/upload/{room.id}",
            headers={"x-visitor-token": visitor.token},
            files={"file": ("notes.pdf", b"%PDF-1.4", "application/pdf")},
        )

        response = api_client.get(f"/api/v1/livechat/messages.history/{room.id}",
                                  params={"token": visitor.token})

        messages = response.json()["messages"]
        assert len(messages) == 1
        assert messages[0]["file"]["name"] == "notes.pdf"
        assert messages[0]["attachments"][0]["title_link_download"] is True

    def test_history_requires_owner_token(self, api_client, room):
        response = api_client.get(f"/api/v1/livechat/messages.history/{room.id}",
                                  params={"token": "someone-else"})
        assert response.status_code == 401

    def test_health(self, api_client):
        assert api_client.get("/health").json() == {"status": "ok"}


class TestRoomStream:
    """Tests for the /ws/livechat/{rid} WebSocket."""

    def test_rejects_wrong_token(self, api_client, room):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with api_client.websocket_connect(f"/ws/livechat/{room.id}?token=nobody") as ws:
                ws.receive_json()

        assert exc_info.value.code == 4401

    def test_upload_is_pushed_to_subscriber(self, api_client, visitor, room):
        with api_client.websocket_connect(f"/ws/livechat/{room.id}?token={visitor.token}") as ws:
            response = api_client.post(
                f"/api/v1/livechat/upload/{room.id}",
                headers={"x-visitor-token": visitor.token},
                files={"file": ("photo.png", b"\x89PNG\r\n\x1a\n", "image/png")},
                data={"description": "Error screenshot"},
            )
            assert response.status_code == 200

            event = ws.receive_json()

        assert event["type"] == "message"
        assert event["message"]["_id"] == response.json()["_id"]
        assert event["message"]["attachments"][0]["description"] == "Error screenshot"
        assert manager.get_room_size(room.id) == 0
