"""Object storage facade over a message channel.

`put` uploads the object as a named document and appends its name to the
catalog; `list` reads the catalog. Everything that would need random access
to a previously sent document is declined with UnsupportedOperationError.
"""

import logging
from pathlib import Path
from typing import List, Optional

from .catalog import CatalogStore
from .config import StoreConfig
from .context import OperationContext, ensure_context
from .errors import UnsupportedOperationError
from .service_types import CatalogInfo
from .storage_models import (
    BlobReference,
    CatalogVersion,
    ObjectRecord,
    validate_object_name,
    version_label,
)
from .transport import ChannelTransport, make_transport

logger = logging.getLogger(__name__)


class ObjectHandle:
    """Handle to a stored object.

    Handles returned by put carry the blob reference and size; handles built
    from a listing only know the name (the catalog keeps nothing else).
    """

    capabilities = frozenset()

    def __init__(
        self,
        name: str,
        ref: Optional[BlobReference] = None,
        size: Optional[int] = None,
        catalog_version: Optional[CatalogVersion] = None,
    ):
        self.name = name
        self.ref = ref
        self.size = size
        self.catalog_version = catalog_version

    def __repr__(self) -> str:
        return f"ObjectHandle(name={self.name!r}, size={self.size!r})"

    def open(self, ctx: Optional[OperationContext] = None) -> bytes:
        raise UnsupportedOperationError("open", self.name)

    def update(self, data: bytes, ctx: Optional[OperationContext] = None) -> None:
        raise UnsupportedOperationError("update", self.name)

    def remove(self, ctx: Optional[OperationContext] = None) -> None:
        raise UnsupportedOperationError("remove", self.name)

    def content_hash(self, kind: str = "sha256", ctx: Optional[OperationContext] = None) -> str:
        raise UnsupportedOperationError("content_hash", self.name)

    def mod_time(self, ctx: Optional[OperationContext] = None) -> float:
        raise UnsupportedOperationError("mod_time", self.name)


class ChannelObjectStore:
    """
    Put/list object store backed by a channel.

    Duplicate names are allowed: every put appends a record, and records with
    the same name are distinct versions listed in publish order. The reserved
    catalog name is rejected.
    """

    capabilities = frozenset({"put", "list"})

    def __init__(self, transport: ChannelTransport, catalog: Optional[CatalogStore] = None):
        """
        Initialize store.

        Args:
            transport: Channel transport for object blobs
            catalog: Catalog store (defaults to one over the same transport)
        """
        self.transport = transport
        self.catalog = catalog or CatalogStore(transport)

    @classmethod
    def from_config(
        cls, config: StoreConfig, transport: Optional[ChannelTransport] = None
    ) -> "ChannelObjectStore":
        """Build a store, creating the transport from config unless given."""
        transport = transport or make_transport(config)
        return cls(transport, CatalogStore.from_config(transport, config))

    # ============= Supported operations =============

    def put(self, name: str, data: bytes, ctx: Optional[OperationContext] = None) -> ObjectHandle:
        """
        Store an object and record it in the catalog.

        Args:
            name: Object name (must not be the reserved catalog name)
            data: Object content
            ctx: Deadline/cancellation context

        Returns:
            ObjectHandle for the stored object

        Raises:
            ReservedNameError: If name is the catalog name
            ValueError: If name is empty
            TransportError, RateLimitedError, AuthError: Upload failed; the
                catalog was not touched
            ConflictError: Catalog could not be reconciled with concurrent writers;
                the blob stays on the channel unlisted
        """
        validate_object_name(name, self.catalog.catalog_name)
        ctx = ensure_context(ctx)

        descriptor = self.transport.upload_blob(name, data, ctx)
        logger.debug("Stored blob for %s as %s", name, descriptor.short())

        version = self.catalog.append(name, ctx)
        logger.info("Put %s (%d bytes), catalog %s", name, len(data), version.short())
        return ObjectHandle(name, ref=descriptor.ref, size=len(data), catalog_version=version)

    def put_file(
        self, path: Path, name: Optional[str] = None, ctx: Optional[OperationContext] = None
    ) -> ObjectHandle:
        """Store a local file, named after its file name unless name is given."""
        path = Path(path)
        return self.put(name or path.name, path.read_bytes(), ctx)

    def list(self, prefix: str = "", ctx: Optional[OperationContext] = None) -> List[ObjectRecord]:
        """
        List stored objects whose name starts with prefix, in catalog order.

        An empty channel yields an empty list.
        """
        snapshot = self.catalog.load_latest(ctx)
        return snapshot.catalog.filter(prefix)

    def catalog_info(self, ctx: Optional[OperationContext] = None) -> CatalogInfo:
        """Describe the resolved catalog."""
        snapshot = self.catalog.load_latest(ctx)
        return CatalogInfo(
            version=version_label(snapshot.version),
            entries=len(snapshot.catalog),
            window=self.catalog.lookback_window,
            window_exhausted=snapshot.window_exhausted,
        )

    def object(self, name: str) -> ObjectHandle:
        """Handle for a listed object (name only)."""
        return ObjectHandle(name)

    # ============= Declined operations =============

    def open(self, name: str, ctx: Optional[OperationContext] = None) -> bytes:
        raise UnsupportedOperationError("open", name)

    def update(self, name: str, data: bytes, ctx: Optional[OperationContext] = None) -> None:
        raise UnsupportedOperationError("update", name)

    def remove(self, name: str, ctx: Optional[OperationContext] = None) -> None:
        raise UnsupportedOperationError("remove", name)

    def content_hash(
        self, name: str, kind: str = "sha256", ctx: Optional[OperationContext] = None
    ) -> str:
        raise UnsupportedOperationError("content_hash", name)

    def mod_time(self, name: str, ctx: Optional[OperationContext] = None) -> float:
        raise UnsupportedOperationError("mod_time", name)
