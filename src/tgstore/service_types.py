"""Service layer types for tgstore.

Storage backends expose capabilities rather than one interface with every
method: callers check `supports(store, "open")` before relying on it.
"""

from typing import Any, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel

from .context import OperationContext
from .storage_models import ObjectRecord


@runtime_checkable
class Putter(Protocol):
    """Can store named objects."""

    def put(self, name: str, data: bytes, ctx: Optional[OperationContext] = None) -> Any:
        ...


@runtime_checkable
class Lister(Protocol):
    """Can list stored objects by name prefix."""

    def list(self, prefix: str = "", ctx: Optional[OperationContext] = None) -> List[ObjectRecord]:
        ...


@runtime_checkable
class RandomAccessObject(Protocol):
    """Per-object read, update, delete and hashing."""

    def open(self, ctx: Optional[OperationContext] = None) -> bytes:
        ...

    def update(self, data: bytes, ctx: Optional[OperationContext] = None) -> None:
        ...

    def remove(self, ctx: Optional[OperationContext] = None) -> None:
        ...

    def content_hash(self, kind: str = "sha256", ctx: Optional[OperationContext] = None) -> str:
        ...


_CAPABILITY_PROTOCOLS = {
    "put": Putter,
    "list": Lister,
    "open": RandomAccessObject,
    "update": RandomAccessObject,
    "remove": RandomAccessObject,
    "content_hash": RandomAccessObject,
}


def supports(obj: Any, capability: str) -> bool:
    """Check whether obj declares a capability ("put", "list", "open", ...).

    The capability must be listed in obj.capabilities and obj must provide
    the methods of the matching protocol.
    """
    if capability not in getattr(obj, "capabilities", frozenset()):
        return False
    protocol = _CAPABILITY_PROTOCOLS.get(capability)
    return protocol is None or isinstance(obj, protocol)


class PutResult(BaseModel):
    """Result of storing an object."""
    name: str
    file_id: str
    size: int
    catalog_version: str


class CatalogInfo(BaseModel):
    """Summary of the resolved catalog."""
    version: Optional[str]
    entries: int
    window: int
    window_exhausted: bool = False
