"""Tests for unmatch/data_import.py — validation, atomic restore, round trip."""

import copy
import json

import pytest

from unmatch.data_import import import_data, import_from_file, read_import_file, validate_import_data
from unmatch.errors import BackupFileError, EnvelopeError, InvalidBackupFileError, RestoreError
from unmatch.export import gather_snapshot, write_snapshot_to_file
from unmatch.progress import compute_progress, progress_summary
from unmatch.repositories import dump_table
from unmatch.store import LocalStore, Transaction

from conftest import populate, snapshot_tables


def _envelope(**tables):
    base = {
        "user_profile": [],
        "urge_events": [],
        "daily_checkins": [],
        "progress": [],
        "content_progress": [],
        "subscription_state": [],
    }
    base.update(tables)
    return {
        "version": 1,
        "exported_at": "2026-02-18T12:00:00.000Z",
        "app_version": "1.0.0",
        "tables": base,
    }


def _urge(n, outcome="success"):
    return {
        "id": f"ev-{n}",
        "started_at": f"2026-02-1{n}T10:00:00.000Z",
        "from_screen": "home",
        "urge_level": 3,
        "protocol_completed": 1,
        "urge_kind": "swipe",
        "action_type": None,
        "action_id": None,
        "outcome": outcome,
        "trigger_tag": None,
        "spend_category": None,
        "spend_item_type": None,
        "spend_amount": None,
    }


# ── Validation ───────────────────────────────────────────────


def test_validate_counts():
    raw = {
        "version": 1,
        "tables": {
            "user_profile": [{}],
            "urge_events": [{}, {}, {}],
            "daily_checkins": [{}, {}],
            "progress": [{}, {}, {}, {}, {}],
            "content_progress": [],
            "subscription_state": [{}],
        },
    }
    assert validate_import_data(raw).to_dict() == {
        "user_profile": 1,
        "urge_events": 3,
        "daily_checkins": 2,
        "progress": 5,
        "content_progress": 0,
        "subscription_state": 1,
    }


@pytest.mark.parametrize("version", [0, 2, "1", True, 1.0, None])
def test_validate_rejects_other_versions(version):
    raw = _envelope()
    raw["version"] = version
    with pytest.raises(EnvelopeError, match="unsupported version"):
        validate_import_data(raw)


def test_validate_missing_version():
    raw = _envelope()
    del raw["version"]
    with pytest.raises(EnvelopeError, match='missing required field "version"'):
        validate_import_data(raw)


@pytest.mark.parametrize("raw, kind", [
    (None, "null"),
    ([1, 2], "array"),
    ("backup", "string"),
    (42, "number"),
])
def test_validate_rejects_non_objects(raw, kind):
    with pytest.raises(EnvelopeError, match=f"must be a JSON object, got {kind}"):
        validate_import_data(raw)


def test_validate_tables_must_be_object():
    raw = _envelope()
    del raw["tables"]
    with pytest.raises(EnvelopeError, match='missing required field "tables"'):
        validate_import_data(raw)
    raw["tables"] = []
    with pytest.raises(EnvelopeError, match='"tables" must be an object, got array'):
        validate_import_data(raw)


def test_validate_missing_table_key():
    raw = _envelope()
    del raw["tables"]["content_progress"]
    with pytest.raises(EnvelopeError, match='missing required table key "content_progress"'):
        validate_import_data(raw)


def test_validate_table_must_be_array():
    raw = _envelope(urge_events={"0": {}})
    with pytest.raises(EnvelopeError, match='table "urge_events" must be an array, got object'):
        validate_import_data(raw)


def test_validate_is_pure(populated_store, clock):
    raw = gather_snapshot(populated_store, clock).to_dict()
    untouched = copy.deepcopy(raw)
    before = snapshot_tables(populated_store)
    validate_import_data(raw)
    assert raw == untouched
    assert snapshot_tables(populated_store) == before


# ── Commit ───────────────────────────────────────────────────


def test_import_maps_logical_keys_to_tables(store, monkeypatch):
    inserted = []
    original = Transaction.insert

    def spy(self, table, row, replace=False):
        inserted.append(table)
        return original(self, table, row, replace)

    monkeypatch.setattr(Transaction, "insert", spy)
    counts = import_data(store, _envelope(urge_events=[_urge(1), _urge(2), _urge(3)]))

    assert counts.urge_events == 3
    assert inserted == ["urge_event"] * 3
    assert [r["id"] for r in store.read_all("urge_event")] == ["ev-1", "ev-2", "ev-3"]


def test_import_replaces_everything(populated_store):
    import_data(populated_store, _envelope(urge_events=[_urge(1)]))
    tables = snapshot_tables(populated_store)
    assert [r["id"] for r in tables["urge_event"]] == ["ev-1"]
    assert all(tables[t] == [] for t in tables if t != "urge_event")


def test_import_empty_envelope_clears_store(populated_store):
    counts = import_data(populated_store, _envelope())
    assert counts.total() == 0
    assert all(rows == [] for rows in snapshot_tables(populated_store).values())


def test_import_duplicate_ids_last_wins(store):
    first = _urge(1)
    second = dict(_urge(1), outcome="fail")
    import_data(store, _envelope(urge_events=[first, second]))
    rows = store.read_all("urge_event")
    assert len(rows) == 1
    assert rows[0]["outcome"] == "fail"


def test_invalid_envelope_leaves_store_untouched(populated_store):
    before = snapshot_tables(populated_store)
    raw = _envelope()
    raw["version"] = 2
    with pytest.raises(EnvelopeError):
        import_data(populated_store, raw)
    assert snapshot_tables(populated_store) == before


def test_malformed_row_rolls_back(populated_store):
    before = snapshot_tables(populated_store)
    raw = _envelope(urge_events=[_urge(1)], progress=["not a row"])
    with pytest.raises(RestoreError) as exc:
        import_data(populated_store, raw)
    assert exc.value.kind == RestoreError.STRUCTURAL
    assert "Your previous data is unchanged" in str(exc.value)
    assert snapshot_tables(populated_store) == before


def test_mismatched_columns_roll_back(populated_store):
    before = snapshot_tables(populated_store)
    short = _urge(2)
    del short["trigger_tag"]
    with pytest.raises(RestoreError) as exc:
        import_data(populated_store, _envelope(urge_events=[_urge(1), short]))
    assert exc.value.kind == RestoreError.STRUCTURAL
    assert snapshot_tables(populated_store) == before


def test_unknown_column_rolls_back(populated_store):
    before = snapshot_tables(populated_store)
    row = dict(_urge(1), mood_ring="green")
    with pytest.raises(RestoreError) as exc:
        import_data(populated_store, _envelope(urge_events=[row]))
    assert exc.value.kind == RestoreError.STRUCTURAL
    assert snapshot_tables(populated_store) == before


def test_nested_value_rolls_back(populated_store):
    before = snapshot_tables(populated_store)
    row = dict(_urge(1), trigger_tag={"tag": "boredom"})
    with pytest.raises(RestoreError):
        import_data(populated_store, _envelope(urge_events=[row]))
    assert snapshot_tables(populated_store) == before


def test_storage_failure_in_last_table_rolls_back(populated_store):
    before = snapshot_tables(populated_store)
    raw = _envelope(
        urge_events=[_urge(1)],
        subscription_state=[{"id": "singleton", "status": None}],
    )
    with pytest.raises(RestoreError) as exc:
        import_data(populated_store, raw)
    assert exc.value.kind == RestoreError.STORAGE
    assert snapshot_tables(populated_store) == before


# ── Round trip ───────────────────────────────────────────────


def test_round_trip_restores_identical_tables(tmp_path, clock):
    source = LocalStore(tmp_path / "source.db")
    target = LocalStore(tmp_path / "target.db")
    try:
        populate(source, clock)
        path = write_snapshot_to_file(source, cache_dir=tmp_path / "cache", clock=clock)
        counts = import_from_file(target, path)

        assert counts == gather_snapshot(source, clock).counts()
        assert snapshot_tables(target) == snapshot_tables(source)

        restored = compute_progress(
            dump_table(target, "urge_events"), dump_table(target, "content_progress"), clock
        )
        original = compute_progress(
            dump_table(source, "urge_events"), dump_table(source, "content_progress"), clock
        )
        assert restored == original
    finally:
        source.close()
        target.close()


def test_import_accepts_envelope_object(populated_store, clock, tmp_path):
    envelope = gather_snapshot(populated_store, clock)
    with LocalStore(tmp_path / "other.db") as other:
        import_data(other, envelope)
        assert snapshot_tables(other) == snapshot_tables(populated_store)


# ── File boundary ────────────────────────────────────────────


def test_read_import_file_invalid_json(tmp_path):
    path = tmp_path / "unmatch-backup.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(InvalidBackupFileError, match="not valid JSON"):
        read_import_file(path)


def test_read_import_file_missing(tmp_path):
    with pytest.raises(BackupFileError):
        read_import_file(tmp_path / "nope.json")


def test_import_from_file_rejects_bad_envelope(store, tmp_path):
    path = tmp_path / "unmatch-backup.json"
    path.write_text(json.dumps({"version": 3, "tables": {}}), encoding="utf-8")
    with pytest.raises(EnvelopeError):
        import_from_file(store, path)


def test_out_of_range_integer_rolls_back(populated_store):
    before = snapshot_tables(populated_store)
    row = dict(_urge(1), urge_level=2 ** 70)
    with pytest.raises(RestoreError) as exc:
        import_data(populated_store, _envelope(urge_events=[row]))
    assert exc.value.kind == RestoreError.STRUCTURAL
    assert "out of range" in str(exc.value)
    assert snapshot_tables(populated_store) == before


def test_largest_sqlite_integer_is_accepted(store):
    row = dict(_urge(1), urge_level=2 ** 63 - 1)
    import_data(store, _envelope(urge_events=[row]))
    assert store.read_all("urge_event")[0]["urge_level"] == 2 ** 63 - 1


@pytest.mark.parametrize("key, row", [
    ("urge_events", dict(_urge(1), started_at="yesterday")),
    ("urge_events", dict(_urge(1), started_at="2026-02-18T23:30:00+09:00")),
    ("urge_events", dict(_urge(1), started_at=1771408800)),
    ("content_progress", {"content_id": "day_1", "completed_at": "2026-02-30T10:00:00.000Z"}),
])
def test_bad_timestamps_roll_back(populated_store, clock, key, row):
    before = snapshot_tables(populated_store)
    with pytest.raises(RestoreError) as exc:
        import_data(populated_store, _envelope(**{key: [row]}))
    assert exc.value.kind == RestoreError.STRUCTURAL
    assert "not a UTC timestamp" in str(exc.value)
    assert snapshot_tables(populated_store) == before
    assert progress_summary(populated_store, clock)["streak"] == 4
