"""Commands shipped with the bot."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

import anyio

from ..logging import get_logger
from ..types import Attachment, MessageContent, RoomHandle
from .registry import CommandRegistry, CommandRegistryBuilder
from .whereis import (
    CHANGELOG_REPLY,
    FAQ_REPLY,
    NOT_FOUND_REPLY,
    WhereIsEntry,
    WhereIsTable,
)

if TYPE_CHECKING:
    from ..config import BotSettings

logger = get_logger(__name__)

PONG_REPLY = "🏓 pong 🏓"


@dataclass(frozen=True, slots=True)
class Ping:
    name: ClassVar[str] = "ping"

    async def handle(self, room: RoomHandle, args_text: str) -> None:
        await room.send(MessageContent.text_plain(PONG_REPLY))


@dataclass(frozen=True, slots=True)
class Faq:
    name: ClassVar[str] = "faq"

    async def handle(self, room: RoomHandle, args_text: str) -> None:
        await room.send(MessageContent.text_markdown(FAQ_REPLY))


@dataclass(frozen=True, slots=True)
class Changelog:
    name: ClassVar[str] = "changelog"

    async def handle(self, room: RoomHandle, args_text: str) -> None:
        await room.send(MessageContent.text_markdown(CHANGELOG_REPLY))


@dataclass(frozen=True, slots=True)
class WhereIs:
    """Point at where an item (or a community member) can be found.

    With ``attachments_dir`` set, entries that carry a local attachment are
    uploaded from that directory instead of linking the hosted GIF. A
    missing or unreadable file fails the command like a failed send.
    """

    name: ClassVar[str] = "whereis"

    table: WhereIsTable = field(default_factory=WhereIsTable)
    attachments_dir: Path | None = None

    async def handle(self, room: RoomHandle, args_text: str) -> None:
        entry = self.table.lookup(args_text)
        if entry is None:
            await room.send(MessageContent.text_markdown(NOT_FOUND_REPLY))
            return
        if entry.attachment is not None and self.attachments_dir is not None:
            await room.send_attachment(await self._load_attachment(entry))
            return
        await room.send(MessageContent.text_markdown(entry.reply))

    async def _load_attachment(self, entry: WhereIsEntry) -> Attachment:
        assert entry.attachment is not None
        assert self.attachments_dir is not None
        path = anyio.Path(self.attachments_dir) / entry.attachment.filename
        data = await path.read_bytes()
        logger.debug("whereis.attachment.loaded", path=str(path), size=len(data))
        return Attachment(
            caption=entry.attachment.caption,
            mime_type=entry.attachment.mime_type,
            data=data,
        )


def default_registry(settings: BotSettings | None = None) -> CommandRegistry:
    """Build the registry of built-in commands."""
    attachments_dir = None
    if settings is not None and settings.whereis.attachments:
        attachments_dir = settings.whereis.assets_dir
    return (
        CommandRegistryBuilder()
        .register(WhereIs(attachments_dir=attachments_dir))
        .register(Faq())
        .register(Changelog())
        .register(Ping())
        .build()
    )
