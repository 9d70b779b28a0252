"""Catalog synchronization over an append-only message channel.

The channel has no "current pointer": the catalog is found by scanning recent
history for documents carrying the reserved catalog name, and readers take the
most recent one. Writers never lock anything; they use the catalog version
they built on as an optimistic-concurrency token:

1. Head: starting from the newest catalog, walk back to the last catalog that
   extends (has as a prefix) the one sent before it, then follow forward the
   first catalog extending the current one. The result is the newest catalog
   of the confirmed chain; an unconfirmed catalog from a writer that lost a
   race is never built on.
2. Publish: check the head is still the caller's base, upload, then rescan.
   The upload is confirmed only if no other catalog adding to the same base
   was sent between the base and it (the first one sent wins). Otherwise the
   caller's change is re-based onto the new head and retried, up to a bound.

Confirmed catalogs only ever grow by appending, so the head always lists every
confirmed entry.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .config import StoreConfig
from .constants import CATALOG_NAME, DEFAULT_LOOKBACK_WINDOW, DEFAULT_MAX_CONFLICT_RETRIES
from .context import OperationContext, ensure_context
from .errors import (
    CatalogWindowExhaustedError,
    ConflictError,
    CorruptCatalogError,
    NotFoundError,
)
from .storage_models import (
    Catalog,
    CatalogSnapshot,
    CatalogVersion,
    MessageDescriptor,
    same_message,
    version_label,
)
from .transport import ChannelTransport

logger = logging.getLogger(__name__)

Rebase = Callable[[Catalog], Catalog]


@dataclass
class _Scan:
    """Catalog descriptors in the lookback window, oldest first."""
    catalogs: List[MessageDescriptor]
    window_full: bool

    def index_of(self, descriptor: Optional[MessageDescriptor]) -> Optional[int]:
        for i, candidate in enumerate(self.catalogs):
            if same_message(candidate, descriptor):
                return i
        return None


class CatalogStore:
    """Locates, decodes and publishes catalog snapshots on a channel."""

    def __init__(
        self,
        transport: ChannelTransport,
        catalog_name: str = CATALOG_NAME,
        lookback_window: int = DEFAULT_LOOKBACK_WINDOW,
        max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
        on_window_exhausted: str = "error",
    ):
        """
        Initialize catalog store.

        Args:
            transport: Channel transport
            catalog_name: Reserved document name for catalog snapshots
            lookback_window: Messages scanned when resolving the latest catalog
            max_conflict_retries: Publish attempts before ConflictError
            on_window_exhausted: "error" to raise, "warn" to proceed as empty,
                when a full window holds no catalog
        """
        if lookback_window < 1:
            raise ValueError("lookback_window must be at least 1")
        if max_conflict_retries < 1:
            raise ValueError("max_conflict_retries must be at least 1")
        self.transport = transport
        self.catalog_name = catalog_name
        self.lookback_window = lookback_window
        self.max_conflict_retries = max_conflict_retries
        self.on_window_exhausted = on_window_exhausted

    @classmethod
    def from_config(cls, transport: ChannelTransport, config: StoreConfig) -> "CatalogStore":
        return cls(
            transport,
            catalog_name=config.catalog_name,
            lookback_window=config.lookback_window,
            max_conflict_retries=config.max_conflict_retries,
            on_window_exhausted=config.on_window_exhausted,
        )

    # ============= Read =============

    def load_latest(self, ctx: Optional[OperationContext] = None) -> CatalogSnapshot:
        """
        Resolve the most recent catalog on the channel.

        Only the newest catalog document is downloaded; superseded ones are
        never read.

        Returns:
            CatalogSnapshot; an empty catalog with version None when the
            channel holds no catalog yet

        Raises:
            CorruptCatalogError: The newest catalog payload is undecodable
            CatalogWindowExhaustedError: A full window held no catalog and
                on_window_exhausted is "error"
            NotFoundError: The newest catalog blob has expired
        """
        ctx = ensure_context(ctx)
        scan = self._scan(ctx)
        if not scan.catalogs:
            return self._empty(scan)
        newest = scan.catalogs[-1]
        catalog = self._download(newest, ctx)
        logger.debug("Resolved catalog %s with %d entries", newest.short(), len(catalog))
        return CatalogSnapshot(catalog=catalog, version=newest)

    def _scan(self, ctx: OperationContext) -> _Scan:
        descriptors = self.transport.scan_recent_messages(self.lookback_window, ctx)
        return _Scan(
            catalogs=[d for d in descriptors if d.name == self.catalog_name],
            window_full=len(descriptors) >= self.lookback_window,
        )

    def _empty(self, scan: _Scan) -> CatalogSnapshot:
        """Snapshot for a window without catalogs, applying the exhausted-window policy."""
        if scan.window_full:
            if self.on_window_exhausted == "error":
                raise CatalogWindowExhaustedError(self.lookback_window)
            logger.warning(
                "No catalog in the last %d messages; listing may be stale "
                "(catalog older than the lookback window)",
                self.lookback_window
            )
        else:
            logger.debug("Channel holds no catalog yet")
        return CatalogSnapshot(window_exhausted=scan.window_full)

    def _download(self, descriptor: MessageDescriptor, ctx: OperationContext) -> Catalog:
        data = self.transport.download_blob(descriptor.ref, ctx)
        try:
            return Catalog.decode(data)
        except ValueError as e:
            raise CorruptCatalogError(descriptor.ref.file_id, str(e)) from e

    def _try_download(self, descriptor: MessageDescriptor, ctx: OperationContext) -> Optional[Catalog]:
        """Download an older catalog, None if it expired or cannot be decoded."""
        try:
            return self._download(descriptor, ctx)
        except (NotFoundError, CorruptCatalogError) as e:
            logger.warning("Ignoring unreadable catalog %s: %s", descriptor.short(), e)
            return None

    # ============= Write =============

    def head(self, ctx: Optional[OperationContext] = None) -> CatalogSnapshot:
        """
        Resolve the newest confirmed catalog, the base for the next publish.

        Usually this is the newest catalog. It differs while a writer that
        lost a race has not yet re-published: its catalog is the newest but
        does not extend the catalog sent before it.

        Raises:
            Same as load_latest
        """
        ctx = ensure_context(ctx)
        return self._head(self._scan(ctx), ctx)

    def _head(self, scan: _Scan, ctx: OperationContext) -> CatalogSnapshot:
        if not scan.catalogs:
            return self._empty(scan)

        catalogs = scan.catalogs
        newest = len(catalogs) - 1
        loaded: Dict[int, Catalog] = {newest: self._download(catalogs[newest], ctx)}

        # Walk back to the last catalog that extends its predecessor
        anchor: Optional[int] = None
        i = newest
        while i > 0:
            previous = self._try_download(catalogs[i - 1], ctx)
            if previous is None or loaded[i].extends(previous):
                anchor = i
                break
            loaded[i - 1] = previous
            i -= 1
        if anchor is None:
            # The oldest catalog in a partial window is the first one ever sent.
            # In a full window it may be an unconfirmed one, so trust the newest.
            anchor = newest if scan.window_full else 0

        head = anchor
        for j in range(anchor + 1, len(catalogs)):
            if loaded[j].extends(loaded[head]):
                head = j

        if head != newest:
            logger.debug(
                "Newest catalog %s is unconfirmed; head is %s",
                catalogs[newest].short(), catalogs[head].short()
            )
        return CatalogSnapshot(catalog=loaded[head], version=catalogs[head])

    def _confirmed(
        self, base: CatalogSnapshot, published: MessageDescriptor, ctx: OperationContext
    ) -> bool:
        """True if published is the first catalog sent after base that adds to it."""
        scan = self._scan(ctx)
        end = scan.index_of(published)
        if end is None:
            logger.warning("Published catalog %s not visible in the scan", published.short())
            return False

        start = 0
        if base.version is not None:
            base_index = scan.index_of(base.version)
            if base_index is None:
                # Base scrolled out of the window; fall back to the head
                return same_message(self._head(scan, ctx).version, published)
            start = base_index + 1

        for rival in scan.catalogs[start:end]:
            catalog = self._try_download(rival, ctx)
            # A catalog equal to the base adds nothing and does not compete
            if catalog is not None and len(catalog) > len(base.catalog) and catalog.extends(base.catalog):
                logger.debug("Catalog %s lost a race to %s", published.short(), rival.short())
                return False
        return True

    def publish(
        self,
        base_version: Optional[CatalogVersion],
        new_catalog: Catalog,
        ctx: Optional[OperationContext] = None,
        rebase: Optional[Rebase] = None,
    ) -> CatalogVersion:
        """
        Publish new_catalog if the channel's head is still base_version.

        Args:
            base_version: Version new_catalog was derived from (None: no catalog)
            new_catalog: Catalog to publish
            ctx: Deadline/cancellation context
            rebase: Re-applies the caller's change to a fresher catalog; without
                it the first conflict raises

        Returns:
            Version of the published catalog

        Raises:
            ConflictError: Another writer moved the catalog and it could not be
                reconciled within max_conflict_retries attempts
        """
        ctx = ensure_context(ctx)
        attempt = 0

        while True:
            attempt += 1
            head = self.head(ctx)

            if same_message(head.version, base_version):
                published = self.transport.upload_blob(self.catalog_name, new_catalog.encode(), ctx)
                if self._confirmed(head, published, ctx):
                    logger.info(
                        "Published catalog %s (%d entries, attempt %d)",
                        published.short(), len(new_catalog), attempt
                    )
                    return published
                head = self.head(ctx)

            if rebase is None or attempt >= self.max_conflict_retries:
                raise ConflictError(attempt, version_label(base_version), version_label(head.version))

            logger.warning(
                "Catalog moved (expected %s, found %s); rebasing (attempt %d/%d)",
                version_label(base_version), version_label(head.version),
                attempt, self.max_conflict_retries
            )
            base_version = head.version
            new_catalog = rebase(head.catalog)

    def append(self, name: str, ctx: Optional[OperationContext] = None) -> CatalogVersion:
        """
        Append name to the catalog, reconciling with concurrent writers.

        Every call adds a record, even when a concurrent writer appends the
        same name from the same base.

        Returns:
            Version of the catalog that contains the new entry
        """
        ctx = ensure_context(ctx)
        head = self.head(ctx)
        return self.publish(
            head.version,
            head.catalog.append(name),
            ctx,
            rebase=lambda catalog: catalog.append(name),
        )
