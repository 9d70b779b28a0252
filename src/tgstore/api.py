"""Stable API for tgstore operations.

A minimal API surface for scripts and other tools that want to store files
on a channel without wiring up transports and catalog stores themselves.
Configuration comes from the environment and ~/.tgstore/config.yaml.
"""

from pathlib import Path
from typing import List, Optional

from .config import StoreConfig, load_store_config
from .context import OperationContext
from .storage_models import ObjectRecord
from .store import ChannelObjectStore, ObjectHandle


def open_store(config: Optional[StoreConfig] = None) -> ChannelObjectStore:
    """Create a store from config (loaded from the environment when omitted).

    Raises:
        ConfigError: If the bot token or chat id is missing
    """
    return ChannelObjectStore.from_config(config or load_store_config())


def put_file(
    path: str,
    name: Optional[str] = None,
    timeout: Optional[float] = None,
    config: Optional[StoreConfig] = None,
) -> ObjectHandle:
    """Upload a local file and add it to the catalog.

    Args:
        path: Local file to upload
        name: Object name (defaults to the file name)
        timeout: Overall deadline in seconds
        config: Store configuration (defaults to load_store_config())

    Returns:
        Handle of the stored object

    Example:
        >>> from tgstore.api import put_file
        >>> handle = put_file("notes.txt")
        >>> handle.name
        'notes.txt'
    """
    store = open_store(config)
    return store.put_file(Path(path), name=name, ctx=OperationContext(timeout=timeout))


def list_objects(
    prefix: str = "",
    timeout: Optional[float] = None,
    config: Optional[StoreConfig] = None,
) -> List[ObjectRecord]:
    """List stored objects whose name starts with prefix."""
    store = open_store(config)
    return store.list(prefix, ctx=OperationContext(timeout=timeout))
