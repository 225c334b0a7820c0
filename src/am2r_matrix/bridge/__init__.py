"""Matrix sync loop feeding chat commands."""

from __future__ import annotations

from .config import MatrixBridgeConfig, build_bridge_config
from .runtime import handle_message, run_main_loop

__all__ = [
    "MatrixBridgeConfig",
    "build_bridge_config",
    "handle_message",
    "run_main_loop",
]
