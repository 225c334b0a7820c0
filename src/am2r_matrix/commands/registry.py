"""Command registry: name -> command, frozen after startup."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from ..types import RoomHandle
from .base import Command


class Unknown:
    """Fallback for unregistered command names. Sends nothing."""

    name = "unknown"

    async def handle(self, room: RoomHandle, args_text: str) -> None:
        return None


UNKNOWN_COMMAND: Command = Unknown()


class CommandRegistry:
    """Read-only mapping from normalized command name to command."""

    __slots__ = ("_commands", "_fallback")

    def __init__(
        self,
        commands: Mapping[str, Command],
        *,
        fallback: Command = UNKNOWN_COMMAND,
    ) -> None:
        self._commands: Mapping[str, Command] = MappingProxyType(dict(commands))
        self._fallback = fallback

    @property
    def fallback(self) -> Command:
        return self._fallback

    def resolve(self, name: str) -> Command:
        """Return the command registered under ``name`` or the fallback.

        Matching is exact and case-sensitive; callers normalize first.
        """
        return self._commands.get(name, self._fallback)

    def names(self) -> list[str]:
        return sorted(self._commands)

    def __contains__(self, name: object) -> bool:
        return name in self._commands

    def __len__(self) -> int:
        return len(self._commands)


class CommandRegistryBuilder:
    def __init__(self) -> None:
        self._commands: dict[str, Command] = {}

    def register(self, command: Command) -> CommandRegistryBuilder:
        name = command.name
        if not name or name != name.strip().lower():
            raise ValueError(f"Command name {name!r} must be lowercase and trimmed")
        if name in self._commands:
            raise ValueError(f"Command {name!r} is already registered")
        self._commands[name] = command
        return self

    def register_all(self, commands: Iterable[Command]) -> CommandRegistryBuilder:
        for command in commands:
            self.register(command)
        return self

    def build(self) -> CommandRegistry:
        return CommandRegistry(self._commands)
