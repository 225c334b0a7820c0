"""Command dispatch."""

from __future__ import annotations

from anyio.abc import TaskGroup

from ..logging import get_logger
from ..types import RoomHandle
from .base import Command
from .registry import CommandRegistry

logger = get_logger(__name__)


async def _run_detached(command: Command, room: RoomHandle, args_text: str) -> None:
    try:
        await command.handle(room, args_text)
    except Exception as exc:
        # The failure ends this task only; the room gets no error reply.
        logger.exception(
            "command.failed",
            command=command.name,
            room_id=room.room_id,
            error=str(exc),
            error_type=exc.__class__.__name__,
        )


def spawn_detached(
    task_group: TaskGroup,
    command: Command,
    room: RoomHandle,
    args_text: str,
) -> None:
    """Start ``command`` in ``task_group`` without waiting for it.

    Exceptions raised by the command are logged and do not propagate into
    the task group, so one failed reply never cancels its siblings.
    """
    task_group.start_soon(
        _run_detached,
        command,
        room,
        args_text,
        name=f"command:{command.name}:{room.room_id}",
    )


def dispatch_command(
    task_group: TaskGroup,
    registry: CommandRegistry,
    room: RoomHandle,
    command_id: str,
    args_text: str,
) -> Command:
    """Resolve ``command_id`` and run it detached. Returns the resolved command.

    Unknown names resolve to the no-op fallback and are dropped without
    spawning anything.
    """
    command = registry.resolve(command_id)
    if command is registry.fallback:
        return command
    logger.debug("command.dispatch", command=command.name, room_id=room.room_id)
    spawn_detached(task_group, command, room, args_text)
    return command
