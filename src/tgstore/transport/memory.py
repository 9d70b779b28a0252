"""In-memory channel transport for testing and local use."""

import itertools
import threading
import uuid
from typing import Dict, List, Optional

from ..context import OperationContext, ensure_context
from ..errors import NotFoundError
from ..storage_models import BlobReference, MessageDescriptor


class MemoryChannel:
    """
    In-process stand-in for a remote channel (avoids network in unit tests).

    Messages get increasing ids and are kept in send order, so scans follow
    the same oldest-first contract as the Telegram transport. The lock only
    keeps the message log consistent; it is not a catalog lock.
    """

    def __init__(self, history_limit: Optional[int] = None):
        """
        Initialize channel.

        Args:
            history_limit: Only this many most recent messages stay visible
                to scans (mimics a server-side retention window)
        """
        self.history_limit = history_limit
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._messages: List[MessageDescriptor] = []
        self._blobs: Dict[str, bytes] = {}

    def upload_blob(
        self, name: str, data: bytes, ctx: Optional[OperationContext] = None
    ) -> MessageDescriptor:
        """Append a named document to the channel."""
        ensure_context(ctx).check(f"upload {name}")
        with self._lock:
            file_id = uuid.uuid4().hex
            descriptor = MessageDescriptor(
                name=name,
                ref=BlobReference(file_id=file_id, message_id=next(self._ids)),
            )
            self._blobs[file_id] = bytes(data)
            self._messages.append(descriptor)
        return descriptor

    def scan_recent_messages(
        self, limit: int, ctx: Optional[OperationContext] = None
    ) -> List[MessageDescriptor]:
        """Return up to limit most recent documents, oldest first."""
        ensure_context(ctx).check("scan")
        if limit <= 0:
            return []
        with self._lock:
            visible = self._visible()
            return list(visible[-limit:])

    def download_blob(
        self, ref: BlobReference, ctx: Optional[OperationContext] = None
    ) -> bytes:
        """Return stored bytes for ref."""
        ensure_context(ctx).check("download")
        with self._lock:
            if ref.file_id not in self._blobs:
                raise NotFoundError(f"Blob not found: {ref.file_id}")
            return self._blobs[ref.file_id]

    def expire(self, ref: BlobReference) -> None:
        """Drop a blob so later downloads fail (simulates an expired file_id)."""
        with self._lock:
            self._blobs.pop(ref.file_id, None)

    @property
    def messages(self) -> List[MessageDescriptor]:
        """Snapshot of every message sent, oldest first."""
        with self._lock:
            return list(self._messages)

    def _visible(self) -> List[MessageDescriptor]:
        if self.history_limit is None:
            return self._messages
        return self._messages[-self.history_limit:]
