"""Storage-related data models for the channel-backed object store.

This module contains the catalog (the authoritative ordered list of object
names, itself stored as a blob on the channel) and the references the
transport hands out for stored documents.
"""

import json
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constants import CATALOG_NAME
from .errors import ReservedNameError


def validate_object_name(name: str, reserved: str = CATALOG_NAME) -> str:
    """
    Validate a user-supplied object name.

    Args:
        name: Object name (path-like string)
        reserved: Reserved catalog name

    Returns:
        The name unchanged

    Raises:
        ValueError: If name is empty
        ReservedNameError: If name equals the reserved catalog name
    """
    if not name or not name.strip():
        raise ValueError("Object name cannot be empty")
    if name == reserved:
        raise ReservedNameError(name)
    return name


class BlobReference(BaseModel):
    """Opaque reference to a document previously sent to the channel."""
    model_config = ConfigDict(frozen=True)

    file_id: str                       # Transport-assigned download handle
    message_id: Optional[int] = None   # Message that carried the document

    @field_validator("file_id")
    @classmethod
    def validate_file_id(cls, v: str) -> str:
        if not v:
            raise ValueError("file_id cannot be empty")
        return v


class MessageDescriptor(BaseModel):
    """A named document as reported by a channel history scan."""
    model_config = ConfigDict(frozen=True)

    name: str
    ref: BlobReference

    @property
    def message_id(self) -> Optional[int]:
        return self.ref.message_id

    def short(self) -> str:
        """Compact display form for logs and error messages."""
        if self.message_id is not None:
            return f"{self.name}@{self.message_id}"
        return f"{self.name}@{self.ref.file_id[:12]}"


# The descriptor of the catalog currently considered latest doubles as the
# optimistic-concurrency token.
CatalogVersion = MessageDescriptor


def same_message(a: Optional[MessageDescriptor], b: Optional[MessageDescriptor]) -> bool:
    """
    Compare two descriptors by the message they identify.

    Telegram may hand out different file_ids for the same document, so the
    message id wins when both sides carry one.
    """
    if a is None or b is None:
        return a is b
    if a.message_id is not None and b.message_id is not None:
        return a.message_id == b.message_id
    return a.ref.file_id == b.ref.file_id


def version_label(version: Optional[CatalogVersion]) -> Optional[str]:
    """Render a catalog version for messages (None stays None)."""
    return version.short() if version is not None else None


class ObjectRecord(BaseModel):
    """A stored object as listed by the catalog."""
    model_config = ConfigDict(frozen=True)

    name: str


class Catalog(BaseModel):
    """
    Ordered, immutable list of stored object names.

    Insertion order is significant: it is the order in which appends were
    published. Duplicate names are allowed and kept as distinct records.
    """
    model_config = ConfigDict(frozen=True)

    records: Tuple[ObjectRecord, ...] = Field(default_factory=tuple)

    @classmethod
    def from_names(cls, names: List[str]) -> "Catalog":
        return cls(records=tuple(ObjectRecord(name=n) for n in names))

    @property
    def names(self) -> List[str]:
        return [r.name for r in self.records]

    def __len__(self) -> int:
        return len(self.records)

    def append(self, name: str) -> "Catalog":
        """Return a new catalog with name appended."""
        return Catalog(records=self.records + (ObjectRecord(name=name),))

    def extends(self, other: "Catalog") -> bool:
        """True if other is a prefix of this catalog."""
        if len(other.records) > len(self.records):
            return False
        return self.records[:len(other.records)] == other.records

    def filter(self, prefix: str = "") -> List[ObjectRecord]:
        """Records whose name starts with prefix, in catalog order."""
        return [r for r in self.records if r.name.startswith(prefix)]

    def encode(self) -> bytes:
        """Compact UTF-8 JSON array of names."""
        return json.dumps(self.names, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    @classmethod
    def decode(cls, data: bytes) -> "Catalog":
        """
        Decode a catalog payload.

        Raises:
            ValueError: If payload is not a UTF-8 JSON array of strings
        """
        try:
            names = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"not a UTF-8 JSON document: {e}") from e
        if not isinstance(names, list):
            raise ValueError(f"expected a JSON array, got {type(names).__name__}")
        for i, name in enumerate(names):
            if not isinstance(name, str):
                raise ValueError(f"entry {i} is {type(name).__name__}, expected string")
        return cls.from_names(names)


class CatalogSnapshot(BaseModel):
    """Result of resolving the latest catalog on the channel."""
    model_config = ConfigDict(frozen=True)

    catalog: Catalog = Field(default_factory=Catalog)
    version: Optional[CatalogVersion] = None   # None: channel has no catalog yet
    window_exhausted: bool = False             # Full window scanned, no catalog seen

    @property
    def is_empty(self) -> bool:
        return self.version is None
