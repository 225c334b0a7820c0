"""Matrix command bot for the AM2R community."""

__version__ = "0.1.0"

from .types import Attachment, MatrixIncomingMessage, MessageContent, RoomHandle

__all__ = [
    "Attachment",
    "MatrixIncomingMessage",
    "MessageContent",
    "RoomHandle",
]
