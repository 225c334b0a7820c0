"""Value types shared between the client, the runtime and the commands."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class MessageContent:
    """Body of an outgoing m.text message, plain or markdown."""

    body: str
    markdown: bool = False

    @classmethod
    def text_plain(cls, body: str) -> MessageContent:
        return cls(body=body, markdown=False)

    @classmethod
    def text_markdown(cls, body: str) -> MessageContent:
        return cls(body=body, markdown=True)


@dataclass(frozen=True, slots=True)
class Attachment:
    """Raw media uploaded to the room as an m.image/m.file event."""

    caption: str
    mime_type: str
    data: bytes = field(repr=False)


@dataclass(frozen=True, slots=True)
class MatrixIncomingMessage:
    room_id: str
    event_id: str
    sender: str
    text: str
    formatted_body: str | None = None
    raw: dict[str, Any] | None = field(default=None, repr=False)


class RoomHandle(Protocol):
    """A room that commands can reply into."""

    room_id: str

    async def send(self, content: MessageContent) -> str: ...

    async def send_attachment(self, attachment: Attachment) -> str: ...
