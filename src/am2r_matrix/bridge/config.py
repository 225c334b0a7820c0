"""Bridge configuration."""

from __future__ import annotations

from dataclasses import dataclass

from ..client import MatrixClient
from ..commands import CommandRegistry, default_registry
from ..commands.parse import DEFAULT_PREFIX
from ..config import BotSettings


@dataclass(frozen=True)
class MatrixBridgeConfig:
    """Everything the runtime loop needs, resolved from settings."""

    client: MatrixClient
    registry: CommandRegistry
    room_ids: list[str]
    user_allowlist: set[str] | None = None
    command_prefix: str = DEFAULT_PREFIX
    auto_join: bool = True
    startup_msg: str | None = None

    @property
    def allowed_room_ids(self) -> set[str] | None:
        """Rooms the bot answers in; None means every joined room."""
        return set(self.room_ids) if self.room_ids else None


def build_bridge_config(settings: BotSettings) -> MatrixBridgeConfig:
    matrix = settings.matrix
    client = MatrixClient(
        matrix.homeserver,
        matrix.user_id,
        access_token=matrix.access_token,
        password=matrix.password,
        device_id=matrix.device_id,
        device_name=matrix.device_name,
        sync_store_path=matrix.sync_store_path,
    )
    return MatrixBridgeConfig(
        client=client,
        registry=default_registry(settings),
        room_ids=list(matrix.room_ids),
        user_allowlist=(
            set(matrix.user_allowlist) if matrix.user_allowlist is not None else None
        ),
        command_prefix=settings.commands.prefix,
        auto_join=matrix.auto_join,
        startup_msg=settings.commands.startup_message,
    )
