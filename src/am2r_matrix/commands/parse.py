"""Command parsing utilities."""

from __future__ import annotations

DEFAULT_PREFIX = "!"


def parse_command(text: str, prefix: str = DEFAULT_PREFIX) -> tuple[str | None, str]:
    """Parse a prefixed command from text, returning (command_id, args_text).

    Args:
        text: The message body.
        prefix: The command prefix, e.g. ``!``.

    Returns:
        A tuple of (command_id, args_text). command_id is lowercased and is
        None if the text is not a command; args_text is returned as written.
    """
    stripped = text.lstrip()
    if not stripped.startswith(prefix):
        return None, text
    lines = stripped[len(prefix) :].splitlines()
    if not lines:
        return None, text
    first_line = lines[0]
    if not first_line or first_line[0].isspace():
        # "! ping" is chat, not a command.
        return None, text
    token, *rest = first_line.split(maxsplit=1)
    args_text = rest[0] if rest else ""
    if len(lines) > 1:
        tail = "\n".join(lines[1:])
        args_text = f"{args_text}\n{tail}" if args_text else tail
    return token.lower(), args_text
