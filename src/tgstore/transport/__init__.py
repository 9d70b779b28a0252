"""Transport package: channels that carry named binary documents."""

from .base import ChannelTransport
from .factory import make_transport
from .memory import MemoryChannel
from .telegram import TelegramTransport

__all__ = ["ChannelTransport", "MemoryChannel", "TelegramTransport", "make_transport"]
