"""Main runtime loop and startup sequence."""

from __future__ import annotations

import anyio
import anyio.abc

from ..client import MatrixRetryAfter, MatrixSendError
from ..commands import dispatch_command, parse_command
from ..logging import get_logger
from ..types import MatrixIncomingMessage
from .config import MatrixBridgeConfig
from .events import (
    ExponentialBackoff,
    _process_invite_events,
    _process_sync_response,
)

logger = get_logger(__name__)

# Max buffered messages before the sync loop blocks
MESSAGE_QUEUE_SIZE = 100


async def _send_startup(cfg: MatrixBridgeConfig) -> None:
    """Send the startup message to all configured rooms."""
    if not cfg.startup_msg:
        logger.debug("startup.message.disabled")
        return

    for room_id in cfg.room_ids:
        try:
            await cfg.client.send_message(room_id, cfg.startup_msg)
        except (MatrixSendError, MatrixRetryAfter) as exc:
            logger.warning("startup.send_failed", room_id=room_id, error=str(exc))
        else:
            logger.info("startup.sent", room_id=room_id)


async def _startup_sequence(cfg: MatrixBridgeConfig) -> bool:
    """Login, initial sync, startup message.

    The initial sync response is dropped so that commands sent while the bot
    was offline are not answered on startup.

    Returns:
        True if startup succeeded, False if login failed.
    """
    if not await cfg.client.login():
        logger.error("matrix.startup.login_failed")
        return False

    logger.debug("matrix.startup.initial_sync")
    response = await cfg.client.sync(timeout_ms=10000)
    if response is not None:
        await _process_invite_events(cfg, response)

    await _send_startup(cfg)
    logger.info(
        "matrix.startup.ready",
        user_id=cfg.client.user_id,
        commands=cfg.registry.names(),
        prefix=cfg.command_prefix,
    )
    return True


async def _sync_loop(
    cfg: MatrixBridgeConfig,
    message_queue: anyio.abc.ObjectSendStream[MatrixIncomingMessage],
) -> None:
    """Continuous sync loop with reconnection."""
    backoff = ExponentialBackoff()

    logger.debug(
        "matrix.sync.start",
        allowed_room_ids=sorted(cfg.allowed_room_ids or ()),
        own_user_id=cfg.client.user_id,
    )

    async with message_queue:
        while True:
            try:
                response = await cfg.client.sync(timeout_ms=30000)
                if response is None:
                    await anyio.sleep(backoff.next())
                    continue

                backoff.reset()

                await _process_invite_events(cfg, response)
                await _process_sync_response(
                    cfg,
                    response,
                    message_queue=message_queue,
                )

            except MatrixRetryAfter as exc:
                logger.warning("matrix.sync.rate_limited", retry_after=exc.retry_after)
                await anyio.sleep(exc.retry_after)
            except Exception as exc:
                logger.error(
                    "matrix.sync.error",
                    error=str(exc),
                    error_type=exc.__class__.__name__,
                )
                await anyio.sleep(backoff.next())


def handle_message(
    task_group: anyio.abc.TaskGroup,
    cfg: MatrixBridgeConfig,
    msg: MatrixIncomingMessage,
) -> bool:
    """Dispatch ``msg`` if it is a command. Returns True if a command was started."""
    command_id, args_text = parse_command(msg.text, cfg.command_prefix)
    if command_id is None:
        return False
    command = dispatch_command(
        task_group,
        cfg.registry,
        cfg.client.room(msg.room_id),
        command_id,
        args_text,
    )
    return command is not cfg.registry.fallback


async def run_main_loop(cfg: MatrixBridgeConfig) -> bool:
    """Main event loop: sync in the background, dispatch commands as they arrive.

    Returns False if startup failed.
    """
    try:
        if not await _startup_sequence(cfg):
            return False

        message_send, message_recv = anyio.create_memory_object_stream[
            MatrixIncomingMessage
        ](max_buffer_size=MESSAGE_QUEUE_SIZE)

        async with anyio.create_task_group() as tg:
            tg.start_soon(_sync_loop, cfg, message_send)

            async with message_recv:
                async for msg in message_recv:
                    handle_message(tg, cfg, msg)
        return True
    finally:
        await cfg.client.close()
