from unittest.mock import Mock

import pytest

from conftest import make_initiative
from lamap.initiative_engine.cancel import CancelToken
from lamap.initiative_engine.dedupe import ProximityDeduplicator
from lamap.initiative_engine.errors import ConstraintViolation, StorageUnavailable
from lamap.initiative_engine.writer import BatchWriter


def _five():
    return [make_initiative(name=f"Initiative {i}", lon=2.30 + i * 0.01) for i in range(1, 6)]


def test_constraint_violation_on_third_record_is_isolated(store):
    def reject_third(initiative):
        if initiative.name == "Initiative 3":
            raise ConstraintViolation("duplicate key value violates unique constraint")

    store.before_insert = reject_third
    result = BatchWriter(store).write_batch(_five())

    assert result.inserted_count == 4
    assert len(result.inserted_ids) == 4
    assert len(result.failures) == 1
    failure = result.failures[0]
    assert failure.initiative.name == "Initiative 3"
    assert failure.reason.startswith("ConstraintViolation:")
    assert [r.name for r in store.rows.values()] == ["Initiative 1", "Initiative 2", "Initiative 4", "Initiative 5"]


def test_records_are_written_in_input_order():
    store = Mock()
    store.insert.side_effect = ["id-a", "id-b", "id-c"]
    batch = [make_initiative(name=n) for n in ("a", "b", "c")]

    result = BatchWriter(store).write_batch(batch)

    assert result.inserted_ids == ["id-a", "id-b", "id-c"]
    assert [c.args[0].name for c in store.insert.call_args_list] == ["a", "b", "c"]


def test_storage_unavailable_is_recorded_per_record(store):
    store.before_insert = Mock(side_effect=StorageUnavailable("connection refused"))
    result = BatchWriter(store).write_batch(_five())

    assert result.inserted_count == 0
    assert len(result.failures) == 5
    assert all(f.reason.startswith("StorageUnavailable:") for f in result.failures)


def test_duplicates_are_skipped_not_failed(store):
    store.insert(make_initiative(name="Existing", lon=2.31))
    writer = BatchWriter(store, deduplicator=ProximityDeduplicator(store, 50))

    result = writer.write_batch(_five())

    assert result.skipped_duplicates == 1
    assert result.inserted_count == 4
    assert result.failures == []


def test_dedupe_check_failure_is_a_record_failure():
    store = Mock()
    store.find_near.side_effect = [0, StorageUnavailable("timeout"), 0]
    store.insert.side_effect = ["id-1", "id-3"]
    writer = BatchWriter(store, deduplicator=ProximityDeduplicator(store))

    result = writer.write_batch([make_initiative(name=n) for n in ("1", "2", "3")])

    assert result.inserted_ids == ["id-1", "id-3"]
    assert [f.initiative.name for f in result.failures] == ["2"]


def test_cancelled_batch_stops_without_rollback(store):
    cancel = CancelToken()

    def cancel_after_second(initiative):
        if initiative.name == "Initiative 2":
            cancel.cancel("test")

    store.before_insert = cancel_after_second
    result = BatchWriter(store, cancel=cancel).write_batch(_five())

    assert result.cancelled
    assert result.inserted_count == 2
    assert len(store.rows) == 2


def test_empty_batch():
    result = BatchWriter(Mock()).write_batch([])
    assert result.as_counts() == {"inserted": 0, "skipped_duplicate": 0, "failed": 0}


def test_dedupe_rejects_non_positive_radius(store):
    with pytest.raises(ValueError):
        ProximityDeduplicator(store, 0)
