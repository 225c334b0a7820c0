"""Sync response processing."""

from __future__ import annotations

import anyio.abc

from ..client import parse_room_message
from ..logging import get_logger
from ..types import MatrixIncomingMessage
from .config import MatrixBridgeConfig

logger = get_logger(__name__)


class ExponentialBackoff:
    """Exponential backoff for reconnection."""

    def __init__(
        self,
        initial: float = 1.0,
        maximum: float = 60.0,
        multiplier: float = 2.0,
    ) -> None:
        self.initial = initial
        self.maximum = maximum
        self.multiplier = multiplier
        self.current = initial

    def next(self) -> float:
        delay = self.current
        self.current = min(self.current * self.multiplier, self.maximum)
        return delay

    def reset(self) -> None:
        self.current = self.initial


async def _process_invite_events(
    cfg: MatrixBridgeConfig,
    response: object,
) -> list[str]:
    """Join rooms the bot was invited to. Returns the rooms joined."""
    rooms = getattr(response, "rooms", None)
    invites = getattr(rooms, "invite", None) or {}
    if not invites:
        return []

    allowed_room_ids = cfg.allowed_room_ids
    joined: list[str] = []
    for room_id in invites:
        if not cfg.auto_join:
            logger.debug("matrix.invite.auto_join_disabled", room_id=room_id)
            continue
        if allowed_room_ids is not None and room_id not in allowed_room_ids:
            logger.info("matrix.invite.room_not_allowed", room_id=room_id)
            continue
        if await cfg.client.join_room(room_id):
            joined.append(room_id)
    return joined


async def _process_room_timeline(
    cfg: MatrixBridgeConfig,
    room_id: str,
    room_info: object,
    *,
    message_queue: anyio.abc.ObjectSendStream[MatrixIncomingMessage],
) -> None:
    """Queue every text message in a room's timeline that the bot may answer."""
    timeline = getattr(room_info, "timeline", None)
    if timeline is None:
        return

    allowed_room_ids = cfg.allowed_room_ids
    own_user_id = cfg.client.user_id
    for event in getattr(timeline, "events", []):
        if type(event).__name__ != "RoomMessageText":
            continue
        msg = parse_room_message(
            event,
            room_id,
            allowed_room_ids=allowed_room_ids,
            own_user_id=own_user_id,
            user_allowlist=cfg.user_allowlist,
        )
        if msg is None:
            logger.debug(
                "matrix.sync.message_skipped",
                room_id=room_id,
                sender=getattr(event, "sender", None),
            )
            continue
        logger.debug(
            "matrix.sync.message_received",
            room_id=room_id,
            sender=msg.sender,
            event_id=msg.event_id,
        )
        await message_queue.send(msg)


async def _process_sync_response(
    cfg: MatrixBridgeConfig,
    response: object,
    *,
    message_queue: anyio.abc.ObjectSendStream[MatrixIncomingMessage],
) -> None:
    """Process all joined rooms in a sync response."""
    rooms = getattr(response, "rooms", None)
    if rooms is None:
        return

    join = getattr(rooms, "join", None) or {}
    for room_id, room_info in join.items():
        await _process_room_timeline(
            cfg,
            room_id,
            room_info,
            message_queue=message_queue,
        )
