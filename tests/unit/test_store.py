from __future__ import annotations

from datetime import datetime, timezone

import pytest

from bayesdb.errors import StoreIntegrityError
from bayesdb.stores import MemoryStore, SQLiteStore, StatisticsStore, open_store
from bayesdb.types import GlobalCounters


def _add_word(store: StatisticsStore, token: str, counts: list[int]) -> int:
    word_id = store.upsert_word(token, sum(counts), 0, is_new=True)
    for class_id, count in enumerate(counts):
        store.upsert_word_class_count(word_id, class_id, count)
    return word_id


def test_backends_satisfy_protocol(store: StatisticsStore) -> None:
    assert isinstance(store, StatisticsStore)


def test_lookup_returns_only_known_words(store: StatisticsStore) -> None:
    _add_word(store, "apple", [2, 1])

    found = store.lookup_words(["apple", "pear", "apple"], 2)

    assert set(found) == {"apple"}
    assert found["apple"].seen == 3
    assert found["apple"].count == (2, 1)


def test_lookup_empty_tokens(store: StatisticsStore) -> None:
    assert store.lookup_words([], 2) == {}


def test_lookup_pads_missing_classes(store: StatisticsStore) -> None:
    word_id = store.upsert_word("apple", 1, 0, is_new=True)
    store.upsert_word_class_count(word_id, 0, 1)

    assert store.lookup_words(["apple"], 3)["apple"].count == (1, 0, 0)


def test_lookup_keeps_counts_beyond_class_count(store: StatisticsStore) -> None:
    word_id = store.upsert_word("apple", 2, 0, is_new=True)
    store.upsert_word_class_count(word_id, 0, 1)
    store.upsert_word_class_count(word_id, 3, 1)

    word = store.lookup_words(["apple"], 2)["apple"]

    assert word.count == (1, 0, 0, 1)
    assert sum(word.count) == word.seen


def test_update_returns_same_id(store: StatisticsStore) -> None:
    word_id = _add_word(store, "apple", [1, 0])

    assert store.upsert_word("apple", 2, 1, is_new=False) == word_id
    word = store.lookup_words(["apple"], 2)["apple"]
    assert word.seen == 2
    assert word.docs_seen == 1


def test_update_of_missing_word_is_integrity_error(store: StatisticsStore) -> None:
    with pytest.raises(StoreIntegrityError):
        store.upsert_word("ghost", 1, 0, is_new=False)


def test_duplicate_insert_is_integrity_error(store: StatisticsStore) -> None:
    _add_word(store, "apple", [1, 0])
    with pytest.raises(StoreIntegrityError):
        store.upsert_word("apple", 1, 0, is_new=True)


def test_class_count_overwrites(store: StatisticsStore) -> None:
    word_id = _add_word(store, "apple", [1, 0])
    store.upsert_word("apple", 3, 0, is_new=False)
    store.upsert_word_class_count(word_id, 0, 3)

    assert store.lookup_words(["apple"], 2)["apple"].count == (3, 0)


def test_increment_docs_seen_once_per_token(store: StatisticsStore) -> None:
    _add_word(store, "apple", [1, 0])
    _add_word(store, "banana", [1, 0])

    store.increment_docs_seen(["apple", "apple", "banana"])
    store.increment_docs_seen(["apple"])

    found = store.lookup_words(["apple", "banana"], 2)
    assert found["apple"].docs_seen == 2
    assert found["banana"].docs_seen == 1


def test_increment_docs_seen_without_rows_is_integrity_error(store: StatisticsStore) -> None:
    with pytest.raises(StoreIntegrityError):
        store.increment_docs_seen(["ghost"])


def test_increment_docs_seen_empty_is_noop(store: StatisticsStore) -> None:
    store.increment_docs_seen([])


def test_class_aggregates_replace(store: StatisticsStore) -> None:
    assert store.max_class_id() is None
    assert store.class_aggregates() == []

    store.replace_class_aggregate(1, 4, 0.8)
    store.replace_class_aggregate(0, 1, 0.2)
    store.replace_class_aggregate(1, 5, 0.75)

    aggregates = store.class_aggregates()
    assert [a.class_id for a in aggregates] == [0, 1]
    assert aggregates[1].document_count == 5
    assert aggregates[1].probability == pytest.approx(0.75)
    assert store.max_class_id() == 1


def test_global_counters_singleton(store: StatisticsStore) -> None:
    assert store.get_global_counters() is None
    stamp = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)

    store.put_global_counters(GlobalCounters(3, 10, stamp))
    store.put_global_counters(GlobalCounters(4, 12, stamp))

    counters = store.get_global_counters()
    assert counters is not None
    assert counters.total_documents == 4
    assert counters.dictionary_size == 12
    assert counters.last_training == stamp


def test_sqlite_creates_schema(tmp_path) -> None:
    store = SQLiteStore(tmp_path / "nested" / "stats.sqlite3")
    with store.connection() as conn:
        tables = {
            row["name"] for row in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
    store.close()

    assert {"word", "count_by_word", "count_by_cate", "count"} <= tables


def test_sqlite_survives_reopen(tmp_path) -> None:
    path = tmp_path / "stats.sqlite3"
    first = SQLiteStore(path)
    _add_word(first, "apple", [2, 1])
    first.put_global_counters(GlobalCounters(1, 1))
    first.close()

    second = SQLiteStore(path)
    try:
        assert second.lookup_words(["apple"], 2)["apple"].count == (2, 1)
        assert second.get_global_counters() == GlobalCounters(1, 1, None)
    finally:
        second.close()


def test_sqlite_skips_unchanged_class_counts() -> None:
    store = SQLiteStore()
    word_id = _add_word(store, "apple", [1, 0])
    with store.connection() as conn:
        before = conn.total_changes
    store.upsert_word_class_count(word_id, 0, 1)
    with store.connection() as conn:
        after = conn.total_changes
    store.close()

    assert after == before


def test_sqlite_keeps_a_single_counters_row() -> None:
    store = SQLiteStore()
    store.put_global_counters(GlobalCounters(1, 1))
    store.put_global_counters(GlobalCounters(2, 2))
    with store.connection() as conn:
        rows = conn.execute('SELECT COUNT(*) AS n FROM "count"').fetchone()["n"]
    store.close()

    assert rows == 1


def test_sqlite_lookup_handles_large_batches() -> None:
    store = SQLiteStore()
    tokens = [f"token{index:04d}" for index in range(1200)]
    for token in tokens:
        _add_word(store, token, [1, 0])

    found = store.lookup_words(tokens, 2)
    store.increment_docs_seen(tokens)
    refreshed = store.lookup_words(tokens[-3:], 2)
    store.close()

    assert len(found) == 1200
    assert all(word.docs_seen == 1 for word in refreshed.values())


def test_open_store_selects_backend(tmp_path) -> None:
    assert isinstance(open_store("memory"), MemoryStore)
    sqlite_store = open_store(tmp_path / "model.sqlite3")
    assert isinstance(sqlite_store, SQLiteStore)
    sqlite_store.close()


def test_memory_store_flush_survives_reopen(tmp_path) -> None:
    path = tmp_path / "state" / "memory-model.pickle"
    first = MemoryStore(path)
    apple = _add_word(first, "apple", [2, 1])
    first.replace_class_aggregate(0, 3, 0.75)
    stamp = datetime(2024, 1, 2, tzinfo=timezone.utc)
    first.put_global_counters(GlobalCounters(3, 1, stamp))
    first.flush()

    second = MemoryStore(path)

    assert second.lookup_words(["apple"], 2)["apple"].count == (2, 1)
    assert second.max_class_id() == 0
    assert second.get_global_counters() == GlobalCounters(3, 1, stamp)
    assert second.upsert_word("banana", 1, 0, is_new=True) > apple
    assert [item.name for item in path.parent.iterdir()] == ["memory-model.pickle"]


def test_memory_store_without_path_keeps_nothing(tmp_path) -> None:
    store = MemoryStore()
    _add_word(store, "apple", [1, 0])
    store.flush()

    assert store.path is None
    assert list(tmp_path.iterdir()) == []


def test_memory_store_quarantines_corrupt_state(tmp_path) -> None:
    path = tmp_path / "memory-model.pickle"
    path.write_bytes(b"not a pickle")

    store = MemoryStore(path)

    assert len(store) == 0
    assert not path.exists()
    assert (tmp_path / "memory-model.pickle.corrupt").exists()


def test_open_store_persists_memory_under_state_dir(tmp_path) -> None:
    store = open_store("memory", tmp_path)

    assert isinstance(store, MemoryStore)
    assert store.path == tmp_path / "memory-model.pickle"
