"""Tests for producer writes, role enforcement and retention trimming."""

import logging
import sqlite3
import time

import pytest

from sensors_db import (
    PrepareError,
    Role,
    SampleStoreError,
    StorePermissionError,
    WriteError,
    open_store,
)


def _row_count(path) -> int:
    conn = sqlite3.connect(str(path))
    try:
        return conn.execute("SELECT COUNT(*) FROM SensorData").fetchone()[0]
    finally:
        conn.close()


def _execute(path, sql: str) -> None:
    conn = sqlite3.connect(str(path))
    try:
        conn.execute(sql)
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "sensors.db"


# =============================================================================
# Basic Writes
# =============================================================================


def test_store_returns_increasing_ids(db_path) -> None:
    """Test that each store() inserts exactly one row with the next id."""
    with open_store(db_path, Role.PRODUCER) as store:
        ids = [store.store(20.0 + i, 1000.0 + i, 21.0 + i, 50.0 + i) for i in range(5)]

    assert ids == [1, 2, 3, 4, 5]
    assert _row_count(db_path) == 5


def test_unlimited_retention_keeps_every_row(db_path) -> None:
    """Test that retention_limit=0 never trims."""
    n = 50
    with open_store(db_path, Role.PRODUCER, retention_limit=0) as store:
        for i in range(n):
            store.store(float(i), 1000.0, 21.0, 50.0)

        samples = store.read_n(n)

    assert len(samples) == n
    assert [s.id for s in samples] == list(range(n, 0, -1))
    assert [s.bmp280_temperature for s in samples] == [float(i) for i in reversed(range(n))]


def test_negative_retention_means_unlimited(db_path) -> None:
    """Test that a negative retention limit behaves like no limit."""
    with open_store(db_path, Role.PRODUCER, retention_limit=-1) as store:
        for i in range(4):
            store.store(float(i), 1000.0, 21.0, 50.0)

    assert _row_count(db_path) == 4


def test_store_coerces_ints_to_float(db_path) -> None:
    """Test that integer measurements are stored as REAL values."""
    with open_store(db_path, Role.PRODUCER) as store:
        store.store(20, 1013, 21, 55)
        sample = store.read_latest()

    assert isinstance(sample.bmp280_temperature, float)
    assert sample.bmp280_pressure == 1013.0


# =============================================================================
# Role Enforcement
# =============================================================================


def test_consumer_store_raises_permission_error(db_path) -> None:
    """Test that a consumer cannot write and leaves the table unchanged."""
    with open_store(db_path, Role.PRODUCER) as producer:
        producer.store(20.5, 1013.2, 21.0, 55.3)

    with open_store(db_path, Role.CONSUMER) as consumer:
        with pytest.raises(StorePermissionError, match="read-only"):
            consumer.store(1.0, 2.0, 3.0, 4.0)

    assert _row_count(db_path) == 1


def test_permission_error_matches_builtin_and_base(db_path) -> None:
    """Test that the permission error can be caught as PermissionError or SampleStoreError."""
    open_store(db_path, Role.PRODUCER).close()

    with open_store(db_path, Role.CONSUMER) as consumer:
        with pytest.raises(PermissionError):
            consumer.store(1.0, 2.0, 3.0, 4.0)
        with pytest.raises(SampleStoreError):
            consumer.store(1.0, 2.0, 3.0, 4.0)


# =============================================================================
# Retention Trimming
# =============================================================================


def test_retention_keeps_most_recent_rows(db_path) -> None:
    """Test that after K > L inserts exactly the L newest rows remain."""
    limit = 4
    with open_store(db_path, Role.PRODUCER, retention_limit=limit) as store:
        for i in range(10):
            store.store(float(i), 1000.0, 21.0, 50.0)
            assert _row_count(db_path) == min(i + 1, limit)

        samples = store.read_n(100)

    assert [s.id for s in samples] == [10, 9, 8, 7]


def test_retention_scenario_a_to_e(db_path) -> None:
    """Test limit=3 with samples A..E: read_n(10) gives [E, D, C], latest is E."""
    readings = {
        "A": (10.0, 1000.0, 11.0, 40.0),
        "B": (12.0, 1001.0, 13.0, 41.0),
        "C": (14.0, 1002.0, 15.0, 42.0),
        "D": (16.0, 1003.0, 17.0, 43.0),
        "E": (18.0, 1004.0, 19.0, 44.0),
    }

    with open_store(db_path, Role.PRODUCER, retention_limit=3) as store:
        for values in readings.values():
            store.store(*values)

        samples = store.read_n(10)
        latest = store.read_latest()

    assert len(samples) == 3
    assert [s.bmp280_temperature for s in samples] == [18.0, 16.0, 14.0]
    assert [s.id for s in samples] == [5, 4, 3]
    assert latest == samples[0]
    assert latest.htu21d_humidity == 44.0


def test_ids_not_reused_after_trim(db_path) -> None:
    """Test that AUTOINCREMENT ids keep growing after old rows are deleted."""
    with open_store(db_path, Role.PRODUCER, retention_limit=1) as store:
        store.store(1.0, 1.0, 1.0, 1.0)
        store.store(2.0, 2.0, 2.0, 2.0)

    with open_store(db_path, Role.PRODUCER, retention_limit=1) as store:
        new_id = store.store(3.0, 3.0, 3.0, 3.0)

    assert new_id == 3


def test_trim_failure_does_not_fail_write(db_path, caplog) -> None:
    """Test that a failing trim is logged and the inserted row survives."""
    with open_store(db_path, Role.PRODUCER, retention_limit=2) as store:
        _execute(
            db_path,
            "CREATE TRIGGER block_delete BEFORE DELETE ON SensorData "
            "BEGIN SELECT RAISE(ABORT, 'deletes blocked'); END;",
        )

        caplog.set_level(logging.WARNING, logger="sensors_db.store")
        for i in range(4):
            store.store(float(i), 1000.0, 21.0, 50.0)

        assert store.read_latest().id == 4

    assert _row_count(db_path) == 4
    assert any("Retention trim" in r.getMessage() for r in caplog.records)


# =============================================================================
# Write Failures
# =============================================================================


def test_store_without_table_raises_prepare_error(db_path) -> None:
    """Test that an insert that cannot compile raises PrepareError."""
    with open_store(db_path, Role.PRODUCER) as store:
        _execute(db_path, "DROP TABLE SensorData")

        with pytest.raises(PrepareError):
            store.store(20.5, 1013.2, 21.0, 55.3)


def test_rejected_insert_raises_write_error(db_path) -> None:
    """Test that an insert aborted at execution raises WriteError and writes nothing."""
    with open_store(db_path, Role.PRODUCER) as store:
        store.store(20.5, 1013.2, 21.0, 55.3)
        _execute(
            db_path,
            "CREATE TRIGGER block_insert BEFORE INSERT ON SensorData "
            "BEGIN SELECT RAISE(ABORT, 'inserts blocked'); END;",
        )

        with pytest.raises(WriteError):
            store.store(1.0, 2.0, 3.0, 4.0)

        assert store.read_latest().id == 1

    assert _row_count(db_path) == 1


def test_locked_database_fails_without_waiting(db_path) -> None:
    """Test that a write blocked by another reader fails at once and is rolled back."""
    with open_store(db_path, Role.PRODUCER) as store:
        store.store(20.5, 1013.2, 21.0, 55.3)

        reader = sqlite3.connect(str(db_path), isolation_level=None)
        try:
            reader.execute("BEGIN")
            reader.execute("SELECT COUNT(*) FROM SensorData").fetchall()

            started = time.monotonic()
            with pytest.raises(WriteError):
                store.store(1.0, 2.0, 3.0, 4.0)
            assert time.monotonic() - started < 1.0
        finally:
            reader.execute("ROLLBACK")
            reader.close()

        assert store.store(20.6, 1013.1, 21.1, 55.0) == 2
        assert [s.id for s in store.read_n(10)] == [2, 1]


# =============================================================================
# Measurement Validation
# =============================================================================


@pytest.mark.parametrize(
    "values, bad_name",
    [
        ((None, 1013.2, 21.0, 55.3), "bmp280_temperature"),
        ((20.5, "high", 21.0, 55.3), "bmp280_pressure"),
        ((20.5, 1013.2, 21.0, [55.3]), "htu21d_humidity"),
    ],
)
def test_non_numeric_measurement_raises_value_error(db_path, values, bad_name) -> None:
    """Test that a bad measurement is named in the error and nothing is written."""
    with open_store(db_path, Role.PRODUCER) as store:
        with pytest.raises(ValueError, match=bad_name):
            store.store(*values)

    assert _row_count(db_path) == 0


def test_numeric_strings_are_accepted(db_path) -> None:
    """Test that values float() understands are stored as numbers."""
    with open_store(db_path, Role.PRODUCER) as store:
        store.store("20.5", "1013.2", 21, 55.3)
        sample = store.read_latest()

    assert sample.bmp280_temperature == 20.5
    assert sample.bmp280_pressure == 1013.2
