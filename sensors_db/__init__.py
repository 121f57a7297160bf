"""
sensors_db - Persistent SQLite store for BMP280/HTU21D environmental sensor samples.

One producer process writes samples and enforces a retention limit; any number
of consumer processes read the latest or most recent N samples.
"""

from sensors_db.errors import (
    NotFoundError,
    OpenError,
    PrepareError,
    QueryError,
    SampleStoreError,
    StoreClosedError,
    StorePermissionError,
    WriteError,
)
from sensors_db.models import Role, Sample
from sensors_db.store import (
    ConsumerStore,
    ProducerStore,
    SampleStore,
    close_store,
    open_store,
)

__version__ = "0.1.0"

__all__ = [
    "open_store",
    "close_store",
    "SampleStore",
    "ProducerStore",
    "ConsumerStore",
    "Role",
    "Sample",
    "SampleStoreError",
    "NotFoundError",
    "OpenError",
    "StorePermissionError",
    "PrepareError",
    "WriteError",
    "QueryError",
    "StoreClosedError",
]
