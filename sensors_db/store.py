"""SQLite-backed sample store for BMP280/HTU21D sensor readings.

This module provides:
- open_store(): Opens a store file in the producer or consumer role
- ProducerStore: Creates the schema, inserts samples and trims to a retention limit
- ConsumerStore: Read-only view of an existing store file

Design notes:
- The role is fixed when the store is opened; ConsumerStore rejects writes
- A consumer never creates a file; it opens the existing one with mode=ro
- Retention trim runs after each committed insert and is best-effort: a failed
  trim is logged and the write still succeeds
- No locking beyond SQLite's own; a consumer process may read while the
  producer process writes
- Connections are opened with timeout=0: a locked database fails at once
  instead of retrying in a busy handler
"""

import logging
import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union

from sensors_db.errors import (
    NotFoundError,
    OpenError,
    PrepareError,
    QueryError,
    StoreClosedError,
    StorePermissionError,
    WriteError,
)
from sensors_db.models import Role, Sample

logger = logging.getLogger(__name__)

TABLE_NAME = "SensorData"

CREATE_TABLE_SQL = (
    "CREATE TABLE IF NOT EXISTS SensorData ("
    "id INTEGER PRIMARY KEY AUTOINCREMENT, "
    "timestamp DATETIME DEFAULT CURRENT_TIMESTAMP, "
    "bmp280_temperature REAL, "
    "bmp280_pressure REAL, "
    "htu21d_temperature REAL, "
    "htu21d_humidity REAL);"
)

INSERT_SQL = (
    "INSERT INTO SensorData "
    "(bmp280_temperature, bmp280_pressure, htu21d_temperature, htu21d_humidity) "
    "VALUES (?, ?, ?, ?);"
)

TRIM_SQL = (
    "DELETE FROM SensorData WHERE id NOT IN ("
    "SELECT id FROM SensorData ORDER BY id DESC LIMIT ?);"
)

SELECT_LATEST_SQL = (
    "SELECT id, timestamp, bmp280_temperature, bmp280_pressure, "
    "htu21d_temperature, htu21d_humidity "
    "FROM SensorData ORDER BY id DESC LIMIT 1;"
)

SELECT_N_SQL = (
    "SELECT id, timestamp, bmp280_temperature, bmp280_pressure, "
    "htu21d_temperature, htu21d_humidity "
    "FROM SensorData ORDER BY id DESC LIMIT ?;"
)

StorePath = Union[str, Path]

# Largest value SQLite can bind as an INTEGER
SQLITE_MAX_INT = 2**63 - 1

MEASUREMENT_NAMES = (
    "bmp280_temperature",
    "bmp280_pressure",
    "htu21d_temperature",
    "htu21d_humidity",
)


def _is_prepare_failure(exc: sqlite3.Error) -> bool:
    """Check whether an sqlite3 error came from compiling the statement.

    SQLite reports compile failures (unknown table, syntax) with the generic
    SQLITE_ERROR primary result code; runtime failures use specific codes.
    """
    if isinstance(exc, sqlite3.ProgrammingError):
        return True
    code = getattr(exc, "sqlite_errorcode", None)
    if code is None:
        return False
    return (code & 0xFF) == sqlite3.SQLITE_ERROR


class SampleStore(ABC):
    """Handle on one open store file.

    Not thread-safe: each handle owns a single connection. Use as a context
    manager to guarantee close().
    """

    role: Role

    def __init__(self, conn: sqlite3.Connection, path: Path) -> None:
        self._conn: Optional[sqlite3.Connection] = conn
        self._path = path

    @property
    def path(self) -> Path:
        """Path of the underlying database file."""
        return self._path

    @property
    def retention_limit(self) -> int:
        """Maximum row count kept after each write (<= 0 means unlimited)."""
        return 0

    @property
    def closed(self) -> bool:
        return self._conn is None

    @abstractmethod
    def store(
        self,
        bmp280_temperature: float,
        bmp280_pressure: float,
        htu21d_temperature: float,
        htu21d_humidity: float,
    ) -> int:
        """Insert one sample. Only producer stores accept writes."""

    def read_latest(self) -> Sample:
        """Get the most recently inserted sample.

        Returns:
            Sample with the greatest id

        Raises:
            NotFoundError: If the table is empty
            QueryError: If the query fails
            StoreClosedError: If the store was closed
        """
        conn = self._require_open()

        try:
            cursor = conn.execute(SELECT_LATEST_SQL)
            try:
                row = cursor.fetchone()
            finally:
                cursor.close()
        except sqlite3.Error as e:
            raise QueryError(f"Failed to read latest sample from {self._path}: {e}") from e

        if row is None:
            raise NotFoundError(f"No samples stored in {self._path}")

        try:
            return Sample.from_row(row)
        except (TypeError, ValueError) as e:
            raise QueryError(f"Malformed sample row {row!r}: {e}") from e

    def read_n(self, max_samples: int) -> List[Sample]:
        """Get up to max_samples most recent samples, newest first.

        Stops consuming rows once max_samples samples have been produced.

        Args:
            max_samples: Upper bound on the number of samples returned

        Returns:
            List of min(max_samples, row count) samples ordered by descending id

        Raises:
            ValueError: If max_samples is negative
            PrepareError: If the statement cannot be compiled
            QueryError: If fetching rows fails (no partial result is returned)
            StoreClosedError: If the store was closed
        """
        conn = self._require_open()

        if max_samples < 0:
            raise ValueError(f"max_samples must be >= 0, got {max_samples}")
        if max_samples == 0:
            return []

        # At most max_samples rows are consumed below, so a larger bound is harmless
        limit = min(int(max_samples), SQLITE_MAX_INT)
        try:
            cursor = conn.execute(SELECT_N_SQL, (limit,))
        except sqlite3.Error as e:
            if _is_prepare_failure(e):
                raise PrepareError(f"Cannot prepare sample query: {e}") from e
            raise QueryError(f"Failed to read samples from {self._path}: {e}") from e

        samples: List[Sample] = []
        try:
            for row in cursor:
                samples.append(Sample.from_row(row))
                if len(samples) >= max_samples:
                    break
        except (sqlite3.Error, TypeError, ValueError) as e:
            raise QueryError(
                f"Failed after {len(samples)} samples from {self._path}: {e}"
            ) from e
        finally:
            cursor.close()

        return samples

    def close(self) -> None:
        """Close the underlying connection. Calling close() again is a no-op."""
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        conn.close()
        logger.debug(f"Closed {self.role.value} store {self._path}")

    def _require_open(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreClosedError(f"Store {self._path} is closed")
        return self._conn

    def __enter__(self) -> "SampleStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return f"<{type(self).__name__} path={str(self._path)!r} {state}>"


class ProducerStore(SampleStore):
    """Read/write store that owns the schema and enforces retention."""

    role = Role.PRODUCER

    def __init__(self, conn: sqlite3.Connection, path: Path, retention_limit: int = 0) -> None:
        super().__init__(conn, path)
        self._retention_limit = retention_limit

    @property
    def retention_limit(self) -> int:
        return self._retention_limit

    def store(
        self,
        bmp280_temperature: float,
        bmp280_pressure: float,
        htu21d_temperature: float,
        htu21d_humidity: float,
    ) -> int:
        """Insert one sample; id and timestamp are assigned by SQLite.

        The insert is committed before the retention trim runs. A failed trim
        is logged and does not fail the write.

        Returns:
            id of the inserted row

        Raises:
            ValueError: If a measurement is not a real number
            PrepareError: If the insert statement cannot be compiled
            WriteError: If the insert cannot be executed or committed
            StoreClosedError: If the store was closed
        """
        conn = self._require_open()
        values = _measurements(
            bmp280_temperature, bmp280_pressure, htu21d_temperature, htu21d_humidity
        )

        try:
            # Commits on success, rolls back on error
            with conn:
                cursor = conn.execute(INSERT_SQL, values)
                row_id = cursor.lastrowid
        except sqlite3.Error as e:
            _rollback(conn)
            if _is_prepare_failure(e):
                raise PrepareError(f"Cannot prepare insert: {e}") from e
            raise WriteError(f"Failed to write sample to {self._path}: {e}") from e

        logger.debug(f"Stored sample id={row_id} in {self._path}")

        if self._retention_limit > 0:
            self._trim(conn)

        return row_id

    def _trim(self, conn: sqlite3.Connection) -> None:
        """Delete every row outside the retention_limit greatest ids (best-effort)."""
        try:
            with conn:
                cursor = conn.execute(TRIM_SQL, (self._retention_limit,))
                deleted = cursor.rowcount
        except sqlite3.Error as e:
            logger.warning(
                f"Retention trim to {self._retention_limit} rows failed for {self._path}: {e}"
            )
            return

        if deleted > 0:
            logger.debug(f"Trimmed {deleted} oldest samples, keeping {self._retention_limit}")


class ConsumerStore(SampleStore):
    """Read-only store over an existing file."""

    role = Role.CONSUMER

    def store(
        self,
        bmp280_temperature: float,
        bmp280_pressure: float,
        htu21d_temperature: float,
        htu21d_humidity: float,
    ) -> int:
        """Always rejected: consumer stores are read-only.

        Raises:
            StorePermissionError: Always
        """
        self._require_open()
        raise StorePermissionError("store is read-only")


def open_store(
    path: StorePath,
    role: Union[Role, str],
    retention_limit: int = 0,
) -> SampleStore:
    """Open a sample store file.

    Args:
        path: Database file path
        role: Role.PRODUCER (create if missing, read/write) or Role.CONSUMER
              (existing file, read-only). The string values are accepted too.
        retention_limit: Producer only. Rows kept after each write; <= 0 keeps all.

    Returns:
        ProducerStore or ConsumerStore. The caller must close() it, or use it
        in a with-block.

    Raises:
        ValueError: If role is not a known role
        NotFoundError: If role is consumer and the file does not exist
        OpenError: If the connection or schema setup fails
    """
    role = Role(role)
    db_path = Path(path)

    if role is Role.PRODUCER:
        return _open_producer(db_path, int(retention_limit))
    return _open_consumer(db_path)


def close_store(store: Optional[SampleStore]) -> None:
    """Close a store handle; None is accepted and ignored."""
    if store is None:
        return
    store.close()


def _open_producer(db_path: Path, retention_limit: int) -> ProducerStore:
    try:
        conn = sqlite3.connect(str(db_path), timeout=0)
    except sqlite3.Error as e:
        logger.error(f"Cannot open DB {db_path}: {e}")
        raise OpenError(f"Cannot open {db_path}: {e}") from e

    try:
        conn.execute(CREATE_TABLE_SQL)
        conn.commit()
    except sqlite3.Error as e:
        conn.close()
        logger.error(f"Cannot create {TABLE_NAME} table in {db_path}: {e}")
        raise OpenError(f"Cannot create schema in {db_path}: {e}") from e

    logger.info(f"Opened producer store {db_path} (retention limit: {retention_limit})")
    return ProducerStore(conn, db_path, retention_limit)


def _open_consumer(db_path: Path) -> ConsumerStore:
    if not db_path.exists():
        logger.error(f"Database does not exist: {db_path}")
        raise NotFoundError(f"Database does not exist: {db_path}")

    uri = f"{db_path.resolve().as_uri()}?mode=ro"
    try:
        conn = sqlite3.connect(uri, uri=True, timeout=0)
    except sqlite3.Error as e:
        logger.error(f"Cannot open DB {db_path}: {e}")
        raise OpenError(f"Cannot open {db_path} read-only: {e}") from e

    logger.info(f"Opened consumer store {db_path}")
    return ConsumerStore(conn, db_path)


def _measurements(*values) -> tuple:
    """Convert the four measurements to floats, naming the first bad one."""
    converted = []
    for name, value in zip(MEASUREMENT_NAMES, values):
        try:
            converted.append(float(value))
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be a real number, got {value!r}") from None
    return tuple(converted)


def _rollback(conn: sqlite3.Connection) -> None:
    if not conn.in_transaction:
        return
    try:
        conn.rollback()
    except sqlite3.Error as e:
        logger.warning(f"Rollback after failed write did not complete: {e}")
