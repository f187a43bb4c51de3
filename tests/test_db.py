"""Tests for the SQLite schema, checkpoint lookup and page inserts."""

import sqlite3

import pytest

from tests.fixtures import TABLE, make_record
from utils.db import COLUMNS, DispensingRepository, get_conn, init_schema, record_params
from utils.errors import PersistenceError


class TestSchema:
    def test_get_conn_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "app.db"
        conn = get_conn(str(path))
        try:
            assert path.parent.is_dir()
            assert conn.row_factory is sqlite3.Row
        finally:
            conn.close()

    def test_init_schema_is_idempotent(self, db_conn):
        init_schema(db_conn, TABLE)
        columns = [row["name"] for row in db_conn.execute(f"PRAGMA table_info({TABLE})")]
        assert columns == list(COLUMNS)

    def test_unique_store_source_index(self, db_conn):
        indexes = {row["name"]: row["unique"] for row in db_conn.execute(f"PRAGMA index_list({TABLE})")}
        assert indexes[f"ux_{TABLE}_store_source"] == 1


class TestCheckpoints:
    def test_empty_table_has_no_checkpoints(self, repository):
        assert repository.get_checkpoints() == {}

    def test_max_source_id_per_store(self, repository):
        repository.insert_page("S1", (make_record(100, "S1"), make_record(120, "S1")))
        repository.insert_page("S2", (make_record(7, "S2"),))

        assert repository.get_checkpoints() == {"S1": 120, "S2": 7}

    def test_store_without_records_is_absent(self, repository):
        repository.insert_page("S1", (make_record(100, "S1"),))
        checkpoints = repository.get_checkpoints()

        assert "S2" not in checkpoints
        assert checkpoints.get("S2") is None


class TestInsertPage:
    def test_inserts_in_upstream_order(self, repository, db_conn):
        inserted = repository.insert_page("S1", tuple(make_record(i) for i in (101, 102, 103)))

        assert inserted == 3
        rows = db_conn.execute(f"SELECT source_id FROM {TABLE} ORDER BY rowid").fetchall()
        assert [row["source_id"] for row in rows] == [101, 102, 103]

    def test_stored_values(self, repository, db_conn):
        record = make_record(101)
        repository.insert_page("S1", (record,))

        row = db_conn.execute(f"SELECT * FROM {TABLE}").fetchone()
        assert row["store_id"] == "S1"
        assert row["occurred_at"] == record.occurred_at.isoformat()
        assert row["accounting_day"] == record.accounting_day.isoformat()
        assert row["accounting_day"].startswith("2024-03-15T00:00:00")
        assert row["transaction_number"] == 9876543210
        assert row["card_id"] == "0001234"
        assert float(row["amount"]) == 50.0

    def test_duplicate_rolls_back_whole_page(self, repository):
        repository.insert_page("S1", (make_record(101),))

        with pytest.raises(PersistenceError) as exc_info:
            repository.insert_page("S1", (make_record(102), make_record(101), make_record(103)))

        assert exc_info.value.store_id == "S1"
        assert exc_info.value.source_id == 101
        assert repository.count("S1") == 1
        assert repository.get_checkpoints() == {"S1": 101}

    def test_same_source_id_in_other_store_is_allowed(self, repository):
        repository.insert_page("S1", (make_record(101, "S1"),))
        repository.insert_page("S2", (make_record(101, "S2"),))
        assert repository.count() == 2

    def test_rows_use_the_requested_store(self, repository):
        repository.insert_page("S1", (make_record(101, "S1-ALT"),))

        assert repository.get_checkpoints() == {"S1": 101}
        assert repository.count("S1-ALT") == 0

    def test_empty_page(self, repository):
        assert repository.insert_page("S1", ()) == 0
        assert repository.count() == 0


class TestRecordParams:
    def test_order_matches_columns(self):
        record = make_record(101)
        params = record_params(record)

        assert len(params) == len(COLUMNS)
        assert params[list(COLUMNS).index("source_id")] == 101
        assert params[list(COLUMNS).index("amount")] == "50.00"
        assert params[list(COLUMNS).index("occurred_at")] == record.occurred_at.isoformat()

    def test_store_id_override(self):
        record = make_record(101, "S1-ALT")
        store_column = list(COLUMNS).index("store_id")

        assert record_params(record)[store_column] == "S1-ALT"
        assert record_params(record, "S1")[store_column] == "S1"


class TestRepositoryTable:
    def test_uses_configured_table(self, db_conn):
        init_schema(db_conn, "other_events")
        repository = DispensingRepository(db_conn, "other_events")
        repository.insert_page("S1", (make_record(1),))

        assert repository.count() == 1
        assert DispensingRepository(db_conn, TABLE).count() == 0
