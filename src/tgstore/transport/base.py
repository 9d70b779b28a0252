"""Base protocol for channel transport implementations."""

from typing import List, Optional, Protocol

from ..context import OperationContext
from ..storage_models import BlobReference, MessageDescriptor


class ChannelTransport(Protocol):
    """
    Protocol for message-channel transports.

    The channel is append-only: documents can be sent and recent history
    scanned, but nothing can be renamed, replaced or deleted.
    """

    def upload_blob(
        self, name: str, data: bytes, ctx: Optional[OperationContext] = None
    ) -> MessageDescriptor:
        """
        Send bytes to the channel as a named document.

        Args:
            name: Declared document name
            data: Document content
            ctx: Deadline/cancellation context

        Returns:
            Descriptor of the message carrying the document

        Raises:
            TransportError: Network/HTTP failure after retries
            RateLimitedError: Still throttled after retries
            AuthError: Credentials rejected
        """
        ...

    def scan_recent_messages(
        self, limit: int, ctx: Optional[OperationContext] = None
    ) -> List[MessageDescriptor]:
        """
        Scan recent channel history for named documents.

        Args:
            limit: Maximum number of descriptors to return
            ctx: Deadline/cancellation context

        Returns:
            Up to limit descriptors, oldest first and newest last
        """
        ...

    def download_blob(
        self, ref: BlobReference, ctx: Optional[OperationContext] = None
    ) -> bytes:
        """
        Fetch document content.

        Args:
            ref: Reference returned by upload_blob or a scan
            ctx: Deadline/cancellation context

        Raises:
            NotFoundError: If the reference expired or is invalid
        """
        ...
