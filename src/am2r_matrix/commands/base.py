"""Command interface."""

from __future__ import annotations

from typing import Protocol

from ..types import RoomHandle


class Command(Protocol):
    """A single-shot, stateless chat command.

    ``handle`` performs at most one outbound action through ``room``.
    Errors from that action are not caught here.
    """

    name: str

    async def handle(self, room: RoomHandle, args_text: str) -> None: ...
