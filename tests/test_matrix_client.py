"""Tests for the Matrix client wrapper."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import nio
import pytest

from am2r_matrix.client import (
    JoinedRoom,
    MatrixClient,
    MatrixRetryAfter,
    MatrixSendError,
    RetryAfter,
    parse_room_message,
)
from am2r_matrix.types import Attachment, MessageContent
from matrix_fixtures import (
    MATRIX_EVENT_ID,
    MATRIX_HOMESERVER,
    MATRIX_OTHER_ROOM_ID,
    MATRIX_ROOM_ID,
    MATRIX_SENDER,
    MATRIX_USER_ID,
)


def _make_client(tmp_path: Path, **kwargs) -> MatrixClient:
    kwargs.setdefault("access_token", "token")
    return MatrixClient(
        MATRIX_HOMESERVER,
        MATRIX_USER_ID,
        sync_store_path=tmp_path / "sync.json",
        **kwargs,
    )


def _with_nio(client: MatrixClient) -> MagicMock:
    mock_nio_client = MagicMock()
    mock_nio_client.room_send = AsyncMock(
        return_value=nio.RoomSendResponse(event_id="$reply", room_id=MATRIX_ROOM_ID)
    )
    client._nio_client = mock_nio_client
    client._logged_in = True
    return mock_nio_client


# --- exceptions ---


def test_retry_after_exception() -> None:
    exc = RetryAfter(2.5)
    assert exc.retry_after == 2.5
    assert "2.5" in str(exc)


def test_matrix_retry_after_is_retry_after() -> None:
    exc = MatrixRetryAfter(1, "slow down")
    assert isinstance(exc, RetryAfter)
    assert str(exc) == "slow down"


def test_matrix_send_error_message() -> None:
    exc = MatrixSendError(MATRIX_ROOM_ID, "M_FORBIDDEN")
    assert exc.room_id == MATRIX_ROOM_ID
    assert str(exc) == f"{MATRIX_ROOM_ID}: M_FORBIDDEN"


# --- login ---


@pytest.mark.anyio
async def test_login_with_token(tmp_path: Path) -> None:
    client = _make_client(tmp_path, device_id="DEVICE")
    mock_nio_client = MagicMock()
    client._nio_client = mock_nio_client

    assert await client.login() is True
    assert mock_nio_client.access_token == "token"
    assert mock_nio_client.user_id == MATRIX_USER_ID
    assert mock_nio_client.device_id == "DEVICE"


@pytest.mark.anyio
async def test_login_with_password(tmp_path: Path) -> None:
    client = _make_client(tmp_path, access_token=None, password="hunter2")
    mock_nio_client = MagicMock()
    mock_nio_client.login = AsyncMock(
        return_value=nio.LoginResponse(
            user_id=MATRIX_USER_ID, device_id="NEWDEV", access_token="fresh"
        )
    )
    client._nio_client = mock_nio_client

    assert await client.login() is True
    mock_nio_client.login.assert_awaited_once_with(
        password="hunter2", device_name="AM2R Bot"
    )


@pytest.mark.anyio
async def test_login_password_rejected(tmp_path: Path) -> None:
    client = _make_client(tmp_path, access_token=None, password="wrong")
    mock_nio_client = MagicMock()
    mock_nio_client.login = AsyncMock(
        return_value=nio.LoginError("Invalid password", "M_FORBIDDEN")
    )
    client._nio_client = mock_nio_client

    assert await client.login() is False


@pytest.mark.anyio
async def test_login_without_credentials(tmp_path: Path) -> None:
    client = _make_client(tmp_path, access_token=None)
    client._nio_client = MagicMock()
    assert await client.login() is False


# --- send_message ---


@pytest.mark.anyio
async def test_send_plain_message(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)

    event_id = await client.send_message(MATRIX_ROOM_ID, "🏓 pong 🏓")

    assert event_id == "$reply"
    mock_nio_client.room_send.assert_awaited_once_with(
        room_id=MATRIX_ROOM_ID,
        message_type="m.room.message",
        content={"msgtype": "m.text", "body": "🏓 pong 🏓"},
        ignore_unverified_devices=True,
    )


@pytest.mark.anyio
async def test_send_formatted_message(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)

    await client.send_message(
        MATRIX_ROOM_ID, "**bold**", formatted_body="<p><strong>bold</strong></p>"
    )

    content = mock_nio_client.room_send.await_args.kwargs["content"]
    assert content == {
        "msgtype": "m.text",
        "body": "**bold**",
        "format": "org.matrix.custom.html",
        "formatted_body": "<p><strong>bold</strong></p>",
    }


@pytest.mark.anyio
async def test_send_message_error_raises(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    mock_nio_client.room_send = AsyncMock(
        return_value=nio.RoomSendError("You are not in this room", "M_FORBIDDEN")
    )

    with pytest.raises(MatrixSendError, match="not in this room"):
        await client.send_message(MATRIX_ROOM_ID, "hello")


@pytest.mark.anyio
async def test_send_message_rate_limited(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    mock_nio_client.room_send = AsyncMock(
        return_value=nio.RoomSendError(
            "Too many requests", "M_LIMIT_EXCEEDED", retry_after_ms=2500
        )
    )

    with pytest.raises(MatrixRetryAfter) as exc_info:
        await client.send_message(MATRIX_ROOM_ID, "hello")
    assert exc_info.value.retry_after == 2.5


@pytest.mark.anyio
async def test_send_message_transport_error_propagates(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    mock_nio_client.room_send = AsyncMock(side_effect=ConnectionError("reset"))

    with pytest.raises(ConnectionError):
        await client.send_message(MATRIX_ROOM_ID, "hello")


@pytest.mark.anyio
async def test_send_message_login_failure_raises(tmp_path: Path) -> None:
    client = _make_client(tmp_path, access_token=None)
    client._nio_client = MagicMock()

    with pytest.raises(MatrixSendError, match="not logged in"):
        await client.send_message(MATRIX_ROOM_ID, "hello")


# --- attachments ---


@pytest.mark.anyio
async def test_send_attachment_uploads_then_posts(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    mock_nio_client.upload = AsyncMock(
        return_value=(nio.UploadResponse(content_uri="mxc://example.org/gif"), None)
    )
    attachment = Attachment(caption="Spider Ball", mime_type="image/gif", data=b"GIF89a")

    event_id = await client.send_attachment(MATRIX_ROOM_ID, attachment)

    assert event_id == "$reply"
    upload_kwargs = mock_nio_client.upload.await_args.kwargs
    assert upload_kwargs["content_type"] == "image/gif"
    assert upload_kwargs["filename"] == "spider_ball.gif"
    assert upload_kwargs["filesize"] == 6
    content = mock_nio_client.room_send.await_args.kwargs["content"]
    assert content == {
        "msgtype": "m.image",
        "body": "Spider Ball",
        "url": "mxc://example.org/gif",
        "info": {"mimetype": "image/gif", "size": 6},
    }


@pytest.mark.anyio
async def test_send_attachment_upload_failure(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    mock_nio_client.upload = AsyncMock(
        return_value=(nio.UploadError("media repo unavailable"), None)
    )
    attachment = Attachment(caption="Spider Ball", mime_type="image/gif", data=b"GIF")

    with pytest.raises(MatrixSendError, match="upload failed"):
        await client.send_attachment(MATRIX_ROOM_ID, attachment)
    mock_nio_client.room_send.assert_not_awaited()


# --- room handle ---


@pytest.mark.anyio
async def test_joined_room_renders_markdown(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    room = client.room(MATRIX_ROOM_ID)

    assert isinstance(room, JoinedRoom)
    await room.send(MessageContent.text_markdown("`Item not found.`"))

    content = mock_nio_client.room_send.await_args.kwargs["content"]
    assert content["body"] == "`Item not found.`"
    assert content["formatted_body"] == "<p><code>Item not found.</code></p>"


@pytest.mark.anyio
async def test_joined_room_plain_text_has_no_html(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)

    await client.room(MATRIX_ROOM_ID).send(MessageContent.text_plain("**not bold**"))

    content = mock_nio_client.room_send.await_args.kwargs["content"]
    assert content == {"msgtype": "m.text", "body": "**not bold**"}


# --- join / sync ---


@pytest.mark.anyio
async def test_join_room_success(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    mock_nio_client.join = AsyncMock(return_value=nio.JoinResponse(room_id=MATRIX_ROOM_ID))

    assert await client.join_room(MATRIX_ROOM_ID) is True


@pytest.mark.anyio
async def test_join_room_failure(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    mock_nio_client.join = AsyncMock(return_value=nio.JoinError("no", "M_FORBIDDEN"))

    assert await client.join_room(MATRIX_ROOM_ID) is False


@pytest.mark.anyio
async def test_sync_persists_token(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    response = MagicMock(spec=nio.SyncResponse)
    response.next_batch = "s123"
    mock_nio_client.sync = AsyncMock(return_value=response)

    assert await client.sync(timeout_ms=1000) is response
    assert client.sync_token == "s123"
    saved = json.loads((tmp_path / "sync.json").read_text())
    assert saved == {"next_batch": "s123", "user_id": MATRIX_USER_ID}

    reloaded = _make_client(tmp_path)
    assert reloaded.sync_token == "s123"


@pytest.mark.anyio
async def test_sync_token_ignored_for_other_user(tmp_path: Path) -> None:
    (tmp_path / "sync.json").write_text(
        json.dumps({"next_batch": "s1", "user_id": "@other:example.org"})
    )
    assert _make_client(tmp_path).sync_token is None


@pytest.mark.anyio
async def test_sync_rate_limited(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    mock_nio_client.sync = AsyncMock(
        return_value=nio.SyncError("slow down", "M_LIMIT_EXCEEDED", retry_after_ms=3000)
    )

    with pytest.raises(MatrixRetryAfter):
        await client.sync()


@pytest.mark.anyio
async def test_sync_error_returns_none(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    mock_nio_client.sync = AsyncMock(return_value=nio.SyncError("bad gateway"))

    assert await client.sync() is None


@pytest.mark.anyio
async def test_close_closes_nio_client(tmp_path: Path) -> None:
    client = _make_client(tmp_path)
    mock_nio_client = _with_nio(client)
    mock_nio_client.close = AsyncMock()

    await client.close()
    mock_nio_client.close.assert_awaited_once()
    assert client._nio_client is None


# --- parse_room_message ---


class FakeRoomMessageText:
    def __init__(
        self,
        body: str = "!ping",
        sender: str = MATRIX_SENDER,
        event_id: str | None = MATRIX_EVENT_ID,
        formatted_body: str | None = None,
    ) -> None:
        self.body = body
        self.sender = sender
        self.event_id = event_id
        self.formatted_body = formatted_body
        self.source = {"content": {"msgtype": "m.text", "body": body}}


def test_parse_room_message_basic() -> None:
    msg = parse_room_message(
        FakeRoomMessageText(),
        MATRIX_ROOM_ID,
        allowed_room_ids={MATRIX_ROOM_ID},
        own_user_id=MATRIX_USER_ID,
    )
    assert msg is not None
    assert msg.room_id == MATRIX_ROOM_ID
    assert msg.event_id == MATRIX_EVENT_ID
    assert msg.sender == MATRIX_SENDER
    assert msg.text == "!ping"
    assert msg.raw == {"content": {"msgtype": "m.text", "body": "!ping"}}


def test_parse_room_message_any_room_when_unrestricted() -> None:
    msg = parse_room_message(
        FakeRoomMessageText(),
        MATRIX_OTHER_ROOM_ID,
        allowed_room_ids=None,
        own_user_id=MATRIX_USER_ID,
    )
    assert msg is not None


def test_parse_room_message_filters_room() -> None:
    assert (
        parse_room_message(
            FakeRoomMessageText(),
            MATRIX_OTHER_ROOM_ID,
            allowed_room_ids={MATRIX_ROOM_ID},
            own_user_id=MATRIX_USER_ID,
        )
        is None
    )


def test_parse_room_message_filters_own() -> None:
    assert (
        parse_room_message(
            FakeRoomMessageText(sender=MATRIX_USER_ID),
            MATRIX_ROOM_ID,
            allowed_room_ids=None,
            own_user_id=MATRIX_USER_ID,
        )
        is None
    )


def test_parse_room_message_filters_sender_allowlist() -> None:
    event = FakeRoomMessageText()
    kwargs = dict(allowed_room_ids=None, own_user_id=MATRIX_USER_ID)
    assert (
        parse_room_message(
            event, MATRIX_ROOM_ID, user_allowlist={"@ridley:example.org"}, **kwargs
        )
        is None
    )
    assert (
        parse_room_message(
            event, MATRIX_ROOM_ID, user_allowlist={MATRIX_SENDER}, **kwargs
        )
        is not None
    )


def test_parse_room_message_missing_event_id() -> None:
    assert (
        parse_room_message(
            FakeRoomMessageText(event_id=None),
            MATRIX_ROOM_ID,
            allowed_room_ids=None,
            own_user_id=MATRIX_USER_ID,
        )
        is None
    )
