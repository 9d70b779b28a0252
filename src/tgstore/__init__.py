"""Object storage over a Telegram chat, with a catalog kept in the chat itself."""

from .catalog import CatalogStore
from .config import StoreConfig, load_store_config
from .context import OperationContext
from .constants import CATALOG_NAME, TGSTORE_VERSION
from .store import ChannelObjectStore, ObjectHandle
from .transport import MemoryChannel, TelegramTransport

__version__ = TGSTORE_VERSION

__all__ = [
    "CATALOG_NAME",
    "CatalogStore",
    "ChannelObjectStore",
    "MemoryChannel",
    "ObjectHandle",
    "OperationContext",
    "StoreConfig",
    "TelegramTransport",
    "load_store_config",
]
