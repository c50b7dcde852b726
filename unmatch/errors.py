"""Error taxonomy for the Unmatch data layer.

Structural errors (malformed envelope) and I/O errors (file read/parse/write)
are raised before any mutation. Storage errors come from the local store.
RestoreError is what callers of an import see once the transaction has been
rolled back.
"""

from __future__ import annotations


class UnmatchError(Exception):
    """Base class for all Unmatch data-layer errors."""


class EnvelopeError(UnmatchError, ValueError):
    """The input is not a well-formed export envelope."""


class StorageError(UnmatchError):
    """An underlying read/write/transaction failure in the local store."""


class BackupFileError(UnmatchError):
    """The backup file could not be read or written."""


class InvalidBackupFileError(BackupFileError):
    """The backup file was read but is not valid JSON."""


class RestoreError(UnmatchError):
    """An import commit failed. The store was rolled back and is unchanged."""

    STRUCTURAL = "structural"
    STORAGE = "storage"

    def __init__(self, kind: str, detail: str) -> None:
        self.kind = kind
        self.detail = detail
        super().__init__(
            f"Could not import data ({kind}): {detail}. Your previous data is unchanged."
        )
