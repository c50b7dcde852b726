"""Backup export: snapshot every table into a versioned JSON envelope.

This is a personal backup, not an analytics payload. Every column is
exported, including check-in notes and spend amounts.
"""

from __future__ import annotations

import logging
from pathlib import Path

from unmatch.fileio import write_json_atomic
from unmatch.models import TABLE_KEYS, ExportEnvelope
from unmatch.repositories import dump_table
from unmatch.store import LocalStore
from unmatch.workspace import BACKUP_FILENAME, Clock, cache_dir as _cache_dir

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1
APP_VERSION = "1.0.0"


def gather_snapshot(store: LocalStore, clock: Clock | None = None) -> ExportEnvelope:
    """Read all six tables in full and wrap them in a version 1 envelope."""
    clock = clock or Clock()
    with store.read_transaction():
        tables = {key: dump_table(store, key) for key in TABLE_KEYS}
    return ExportEnvelope(
        version=EXPORT_VERSION,
        exported_at=clock.utc_now_iso(),
        app_version=APP_VERSION,
        tables=tables,
    )


def write_envelope_to_file(envelope: ExportEnvelope, cache_dir: Path | None = None) -> Path:
    """Write an already gathered envelope to the cache directory."""
    target = (cache_dir or _cache_dir()) / BACKUP_FILENAME
    write_json_atomic(target, envelope.to_dict())
    logger.info("Exported backup to %s (%s)", target, envelope.counts().describe())
    return target


def write_snapshot_to_file(
    store: LocalStore,
    cache_dir: Path | None = None,
    clock: Clock | None = None,
) -> Path:
    """Write the snapshot to the cache directory and return its path.

    The cache location is transient; callers hand the file off right away.
    """
    return write_envelope_to_file(gather_snapshot(store, clock), cache_dir)
