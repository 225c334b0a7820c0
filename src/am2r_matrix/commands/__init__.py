"""Chat commands: parsing, registry, dispatch and the built-in handlers."""

from __future__ import annotations

from .base import Command
from .builtin import Changelog, Faq, Ping, WhereIs, default_registry
from .dispatch import dispatch_command, spawn_detached
from .parse import DEFAULT_PREFIX, parse_command
from .registry import UNKNOWN_COMMAND, CommandRegistry, CommandRegistryBuilder, Unknown

__all__ = [
    "Changelog",
    "Command",
    "CommandRegistry",
    "CommandRegistryBuilder",
    "DEFAULT_PREFIX",
    "Faq",
    "Ping",
    "UNKNOWN_COMMAND",
    "Unknown",
    "WhereIs",
    "default_registry",
    "dispatch_command",
    "parse_command",
    "spawn_detached",
]
