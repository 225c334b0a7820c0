from __future__ import annotations

import functools
import io
import json
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol, cast

import nio

from .logging import get_logger
from .render import MATRIX_HTML_FORMAT, prepare_markdown
from .types import Attachment, MatrixIncomingMessage, MessageContent

logger = get_logger(__name__)


class RetryAfter(Exception):
    def __init__(self, retry_after: float, description: str | None = None) -> None:
        super().__init__(description or f"retry after {retry_after}")
        self.retry_after = float(retry_after)
        self.description = description


class MatrixRetryAfter(RetryAfter):
    pass


class MatrixSendError(Exception):
    """An outbound message or upload was rejected by the homeserver."""

    def __init__(self, room_id: str, message: str) -> None:
        super().__init__(f"{room_id}: {message}")
        self.room_id = room_id
        self.message = message


class NioClientProtocol(Protocol):
    """Protocol for the parts of matrix-nio's AsyncClient the bot uses."""

    user_id: str
    access_token: str
    device_id: str

    async def close(self) -> None: ...

    async def login(
        self, password: str | None = None, device_name: str | None = None
    ) -> Any: ...

    async def sync(
        self,
        timeout: int = 30000,
        sync_filter: dict[str, Any] | None = None,
        since: str | None = None,
        full_state: bool = False,
    ) -> Any: ...

    async def room_send(
        self,
        room_id: str,
        message_type: str,
        content: dict[str, Any],
        tx_id: str | None = None,
        ignore_unverified_devices: bool = True,
    ) -> Any: ...

    async def upload(
        self,
        data_provider: Any,
        content_type: str = "application/octet-stream",
        filename: str | None = None,
        encrypt: bool = False,
        monitor: Any = None,
        filesize: int | None = None,
    ) -> Any: ...

    async def join(self, room_id: str) -> Any: ...


def _retry_after_seconds(response: Any) -> float | None:
    retry_ms = getattr(response, "retry_after_ms", None)
    if retry_ms is None:
        return None
    return retry_ms / 1000.0


def _error_message(response: Any) -> str:
    return getattr(response, "message", None) or str(response)


def _build_text_content(body: str, formatted_body: str | None) -> dict[str, Any]:
    content: dict[str, Any] = {
        "msgtype": "m.text",
        "body": body,
    }
    if formatted_body:
        content["format"] = MATRIX_HTML_FORMAT
        content["formatted_body"] = formatted_body
    return content


def _build_media_content(
    attachment: Attachment, content_uri: str
) -> dict[str, Any]:
    msgtype = "m.image" if attachment.mime_type.startswith("image/") else "m.file"
    return {
        "msgtype": msgtype,
        "body": attachment.caption,
        "url": content_uri,
        "info": {
            "mimetype": attachment.mime_type,
            "size": len(attachment.data),
        },
    }


def _upload_filename(attachment: Attachment) -> str:
    ext = mimetypes.guess_extension(attachment.mime_type) or ""
    stem = attachment.caption.strip().lower().replace(" ", "_") or "attachment"
    return f"{stem}{ext}"


def _require_login(func: Callable[..., Awaitable[Any]]) -> Callable[..., Awaitable[Any]]:
    """Log in lazily before running a client method; return None if that fails."""

    @functools.wraps(func)
    async def wrapper(self: MatrixClient, *args: Any, **kwargs: Any) -> Any:
        await self._ensure_nio_client()
        if not self._logged_in:
            if not await self.login():
                return None
        return await func(self, *args, **kwargs)

    return wrapper


@dataclass(frozen=True, slots=True)
class JoinedRoom:
    """Room handle passed to commands; replies go through the owning client."""

    client: MatrixClient
    room_id: str

    async def send(self, content: MessageContent) -> str:
        if content.markdown:
            body, formatted_body = prepare_markdown(content.body)
        else:
            body, formatted_body = content.body, None
        return await self.client.send_message(
            self.room_id, body, formatted_body=formatted_body
        )

    async def send_attachment(self, attachment: Attachment) -> str:
        return await self.client.send_attachment(self.room_id, attachment)


class MatrixClient:
    """Thin async wrapper over nio.AsyncClient for a single bot account."""

    def __init__(
        self,
        homeserver: str,
        user_id: str,
        *,
        access_token: str | None = None,
        password: str | None = None,
        device_id: str | None = None,
        device_name: str = "AM2R Bot",
        sync_store_path: Path | None = None,
    ) -> None:
        self.homeserver = homeserver.rstrip("/")
        self.user_id = user_id
        self._access_token = access_token
        self._password = password
        self._device_id = device_id
        self._device_name = device_name
        self._sync_store_path = sync_store_path or self._default_sync_store_path()
        self._nio_client: NioClientProtocol | None = None
        self._logged_in = False
        self._sync_token: str | None = self._load_sync_token()

    def _default_sync_store_path(self) -> Path:
        return Path.home() / ".am2r-bot" / "matrix_sync.json"

    @property
    def sync_token(self) -> str | None:
        return self._sync_token

    def _load_sync_token(self) -> str | None:
        """Load the sync token from disk if available."""
        if self._sync_store_path is None:
            return None
        try:
            if self._sync_store_path.exists():
                data = json.loads(self._sync_store_path.read_text())
                if data.get("user_id") == self.user_id:
                    token = data.get("next_batch")
                    if token:
                        logger.debug("matrix.sync.token_loaded", user_id=self.user_id)
                    return token
        except (OSError, ValueError, AttributeError) as exc:
            logger.warning(
                "matrix.sync.token_load_failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
        return None

    def _save_sync_token(self, token: str) -> None:
        if self._sync_store_path is None:
            return
        try:
            self._sync_store_path.parent.mkdir(parents=True, exist_ok=True)
            self._sync_store_path.write_text(
                json.dumps({"next_batch": token, "user_id": self.user_id})
            )
        except OSError as exc:
            logger.warning(
                "matrix.sync.token_save_failed",
                error=str(exc),
                error_type=exc.__class__.__name__,
            )

    async def _ensure_nio_client(self) -> NioClientProtocol:
        """Lazily initialize the nio client."""
        if self._nio_client is None:
            # nio.AsyncClient implements NioClientProtocol structurally
            self._nio_client = cast(
                NioClientProtocol,
                nio.AsyncClient(
                    self.homeserver,
                    self.user_id,
                    device_id=self._device_id,
                ),
            )
        return self._nio_client

    async def login(self) -> bool:
        """Login to the homeserver with the access token or the password."""
        client = await self._ensure_nio_client()

        if self._access_token:
            client.access_token = self._access_token
            client.user_id = self.user_id
            if self._device_id:
                client.device_id = self._device_id
            self._logged_in = True
            logger.info("matrix.login.token", user_id=self.user_id)
            return True

        if self._password:
            response = await client.login(
                password=self._password,
                device_name=self._device_name,
            )
            if isinstance(response, nio.LoginResponse):
                self._access_token = response.access_token
                self._device_id = response.device_id
                self._logged_in = True
                logger.info(
                    "matrix.login.password",
                    user_id=self.user_id,
                    device_id=response.device_id,
                )
                return True
            logger.error("matrix.login.failed", error=_error_message(response))
            return False

        logger.error("matrix.login.no_credentials")
        return False

    @_require_login
    async def sync(
        self,
        timeout_ms: int = 30000,
        full_state: bool = False,
    ) -> Any:
        """Perform one sync request, returning the nio SyncResponse or None."""
        client = self._nio_client
        assert client is not None

        response = await client.sync(
            timeout=timeout_ms,
            since=self._sync_token,
            full_state=full_state,
        )
        if isinstance(response, nio.SyncResponse):
            self._sync_token = response.next_batch
            self._save_sync_token(self._sync_token)
            return response
        retry_after = _retry_after_seconds(response)
        if retry_after is not None:
            raise MatrixRetryAfter(retry_after)
        logger.error("matrix.sync.failed", error=_error_message(response))
        return None

    @_require_login
    async def join_room(self, room_id: str) -> bool:
        client = self._nio_client
        assert client is not None

        try:
            response = await client.join(room_id)
        except Exception as exc:
            logger.error(
                "matrix.join.error",
                room_id=room_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return False
        if isinstance(response, nio.JoinResponse):
            logger.info("matrix.join.success", room_id=room_id)
            return True
        logger.error(
            "matrix.join.failed",
            room_id=room_id,
            error=_error_message(response),
        )
        return False

    async def _logged_in_client(self, room_id: str) -> NioClientProtocol:
        client = await self._ensure_nio_client()
        if not self._logged_in and not await self.login():
            raise MatrixSendError(room_id, "not logged in")
        return client

    async def _room_send(self, room_id: str, content: dict[str, Any]) -> str:
        client = await self._logged_in_client(room_id)
        response = await client.room_send(
            room_id=room_id,
            message_type="m.room.message",
            content=content,
            ignore_unverified_devices=True,
        )
        if isinstance(response, nio.RoomSendResponse):
            return response.event_id
        retry_after = _retry_after_seconds(response)
        if retry_after is not None:
            raise MatrixRetryAfter(retry_after)
        raise MatrixSendError(room_id, _error_message(response))

    async def send_message(
        self,
        room_id: str,
        body: str,
        *,
        formatted_body: str | None = None,
    ) -> str:
        """Send an m.text message and return its event id.

        Raises MatrixSendError (or MatrixRetryAfter) when the homeserver
        rejects the message.
        """
        event_id = await self._room_send(
            room_id, _build_text_content(body, formatted_body)
        )
        logger.debug("matrix.send.ok", room_id=room_id, event_id=event_id)
        return event_id

    async def send_attachment(self, room_id: str, attachment: Attachment) -> str:
        """Upload media to the content repository and post it to the room."""
        client = await self._logged_in_client(room_id)
        upload = await client.upload(
            io.BytesIO(attachment.data),
            content_type=attachment.mime_type,
            filename=_upload_filename(attachment),
            filesize=len(attachment.data),
        )
        # nio returns (UploadResponse | UploadError, decryption keys)
        response = upload[0] if isinstance(upload, tuple) else upload
        if not isinstance(response, nio.UploadResponse):
            retry_after = _retry_after_seconds(response)
            if retry_after is not None:
                raise MatrixRetryAfter(retry_after)
            raise MatrixSendError(room_id, f"upload failed: {_error_message(response)}")

        event_id = await self._room_send(
            room_id, _build_media_content(attachment, response.content_uri)
        )
        logger.debug(
            "matrix.attachment.ok",
            room_id=room_id,
            event_id=event_id,
            mime_type=attachment.mime_type,
            size=len(attachment.data),
        )
        return event_id

    def room(self, room_id: str) -> JoinedRoom:
        return JoinedRoom(client=self, room_id=room_id)

    async def close(self) -> None:
        if self._nio_client is not None:
            await self._nio_client.close()
            self._nio_client = None
        self._logged_in = False


def parse_room_message(
    event: Any,
    room_id: str,
    *,
    allowed_room_ids: set[str] | None,
    own_user_id: str,
    user_allowlist: set[str] | None = None,
) -> MatrixIncomingMessage | None:
    """Parse a nio RoomMessageText event into MatrixIncomingMessage.

    Returns None for events the bot must not answer: rooms outside the
    allowlist (None allows every room), its own messages, senders outside
    the user allowlist, and events missing sender or id.
    """
    if allowed_room_ids is not None and room_id not in allowed_room_ids:
        return None

    sender = getattr(event, "sender", None)
    event_id = getattr(event, "event_id", None)
    if sender is None or event_id is None:
        return None
    if sender == own_user_id:
        return None
    if user_allowlist is not None and sender not in user_allowlist:
        return None

    body = getattr(event, "body", None)
    if not isinstance(body, str):
        return None
    source = getattr(event, "source", None)

    return MatrixIncomingMessage(
        room_id=room_id,
        event_id=event_id,
        sender=sender,
        text=body,
        formatted_body=getattr(event, "formatted_body", None),
        raw=source if isinstance(source, dict) else None,
    )
