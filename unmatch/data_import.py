"""Backup import: validate an untrusted envelope, then replace all data atomically.

Import is two-phase. ``validate_import_data`` is pure and returns row counts
for a confirmation step. ``import_data`` deletes every table and inserts the
envelope's rows inside one exclusive transaction; on any failure the store is
rolled back and left exactly as it was.

Rows within one logical table must share identical columns. The column list
comes from the first row, and every later row must carry exactly that set.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping

from unmatch.errors import (
    BackupFileError,
    EnvelopeError,
    InvalidBackupFileError,
    RestoreError,
    StorageError,
)
from unmatch.export import EXPORT_VERSION
from unmatch.models import RECORD_TYPES, TABLE_KEYS, TableCounts
from unmatch.repositories import TABLE_NAME_MAP
from unmatch.store import LocalStore, Transaction
from unmatch.workspace import parse_iso, to_utc_iso

logger = logging.getLogger(__name__)

SQLITE_INT_MIN = -(2 ** 63)
SQLITE_INT_MAX = 2 ** 63 - 1

# Columns the progress rules read as timestamps; stored as UTC ISO with a Z suffix.
TIMESTAMP_COLUMNS: dict[str, tuple[str, ...]] = {
    "urge_events": ("started_at",),
    "content_progress": ("completed_at",),
}


def _json_type(value: Any) -> str:
    """Name of a parsed value's JSON type, for error messages."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def _is_utc_timestamp(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        return to_utc_iso(parse_iso(value)) == value
    except (ValueError, OverflowError):
        return False


# ── File boundary ─────────────────────────────────────────────


def read_import_file(path: Path) -> Any:
    """Read and parse a backup file.

    Raises BackupFileError if it cannot be read, InvalidBackupFileError if it
    is not JSON.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise BackupFileError(f"Could not read {Path(path).name}: {e}") from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidBackupFileError("The selected file is not valid JSON.") from e


# ── Validation ────────────────────────────────────────────────


def validate_import_data(raw: Any) -> TableCounts:
    """Check the envelope's structure and return per-table row counts.

    1. must be an object
    2. ``version`` must be exactly the integer 1
    3. ``tables`` must be an object
    4. all six table keys must be present, each an array
    """
    if not isinstance(raw, Mapping):
        raise EnvelopeError(f"Import failed: data must be a JSON object, got {_json_type(raw)}")

    if "version" not in raw:
        raise EnvelopeError(
            'Import failed: missing required field "version". Is this a valid Unmatch export?'
        )
    version = raw["version"]
    if isinstance(version, bool) or not isinstance(version, int) or version != EXPORT_VERSION:
        raise EnvelopeError(
            f'Import failed: unsupported version "{version}". '
            f"Only version {EXPORT_VERSION} exports can be imported by this app."
        )

    if "tables" not in raw:
        raise EnvelopeError(
            'Import failed: missing required field "tables". Is this a valid Unmatch export?'
        )
    tables = raw["tables"]
    if not isinstance(tables, Mapping):
        raise EnvelopeError(f'Import failed: "tables" must be an object, got {_json_type(tables)}')

    for key in TABLE_KEYS:
        if key not in tables:
            raise EnvelopeError(f'Import failed: missing required table key "{key}" in the export file.')
        if not isinstance(tables[key], (list, tuple)):
            raise EnvelopeError(
                f'Import failed: table "{key}" must be an array, got {_json_type(tables[key])}.'
            )

    return TableCounts(**{key: len(tables[key]) for key in TABLE_KEYS})


def _table_columns(key: str, rows: list[Any]) -> list[str]:
    """Column list for a logical table, taken from its first row."""
    first = rows[0]
    if not isinstance(first, Mapping):
        raise EnvelopeError(f'Import failed: row in "{key}" is not a plain object.')
    columns = list(first.keys())
    if not columns:
        raise EnvelopeError(f'Import failed: first row in "{key}" has no columns.')
    allowed = set(RECORD_TYPES[key].columns())
    unknown = [c for c in columns if c not in allowed]
    if unknown:
        raise EnvelopeError(
            f'Import failed: unknown column(s) {", ".join(map(str, unknown))} in "{key}".'
        )
    return columns


def _check_value(key: str, column: str, value: Any) -> None:
    if value is None:
        return
    if not isinstance(value, (str, int, float)):
        raise EnvelopeError(
            f'Import failed: column "{column}" in "{key}" holds a {_json_type(value)}.'
        )
    if isinstance(value, int) and not isinstance(value, bool) and not SQLITE_INT_MIN <= value <= SQLITE_INT_MAX:
        raise EnvelopeError(
            f'Import failed: column "{column}" in "{key}" holds an integer out of range.'
        )
    if column in TIMESTAMP_COLUMNS.get(key, ()) and not _is_utc_timestamp(value):
        raise EnvelopeError(
            f'Import failed: column "{column}" in "{key}" is not a UTC timestamp.'
        )


def _insert_rows(txn: Transaction, key: str, rows: list[Any]) -> None:
    table = TABLE_NAME_MAP[key]
    columns = _table_columns(key, rows)
    expected = set(columns)
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            raise EnvelopeError(f'Import failed: encountered a non-object row in "{key}".')
        if set(row.keys()) != expected:
            raise EnvelopeError(
                f'Import failed: row {index} in "{key}" does not match the columns of the first row.'
            )
        for c in columns:
            _check_value(key, c, row[c])
        txn.insert(table, {c: row[c] for c in columns}, replace=True)


# ── Commit ────────────────────────────────────────────────────


def import_data(store: LocalStore, envelope: Any) -> TableCounts:
    """Replace all local data with the envelope's contents, atomically.

    Deletes every table in a fixed order, then inserts each non-empty table,
    all in one exclusive transaction. Raises RestoreError after rollback on
    any failure; the previous data is then unchanged.
    """
    raw = envelope.to_dict() if hasattr(envelope, "to_dict") else envelope
    counts = validate_import_data(raw)
    tables = raw["tables"]

    try:
        with store.exclusive_transaction() as txn:
            for key in TABLE_KEYS:
                txn.delete_all(TABLE_NAME_MAP[key])
            for key in TABLE_KEYS:
                rows = list(tables[key])
                if rows:
                    _insert_rows(txn, key, rows)
    except EnvelopeError as e:
        logger.warning("Import rolled back: %s", e)
        raise RestoreError(RestoreError.STRUCTURAL, str(e)) from e
    except StorageError as e:
        logger.warning("Import rolled back: %s", e)
        raise RestoreError(RestoreError.STORAGE, str(e)) from e

    logger.info("Imported backup (%s)", counts.describe())
    return counts


def import_from_file(store: LocalStore, path: Path) -> TableCounts:
    """Read, validate and commit a backup file in one call."""
    return import_data(store, read_import_file(path))
