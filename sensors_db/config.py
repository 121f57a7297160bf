"""Environment configuration for processes that embed the sample store.

The store itself never reads the environment; the sensor poller and the
reporting process call StoreSettings.from_env() and pass the values to
open_store().

Environment variables:
- SENSORS_DB_PATH: database file path (default "sensors.db")
- SENSORS_DB_RETENTION: rows kept by the producer, <= 0 keeps all (default 0)
- LOG_LEVEL: logging level name (default "INFO")
"""

import logging
import os
from dataclasses import dataclass
from typing import Optional, Union

from sensors_db.models import Role
from sensors_db.store import SampleStore, open_store

DEFAULT_DB_PATH = "sensors.db"
DEFAULT_RETENTION = 0
DEFAULT_LOG_LEVEL = "INFO"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class StoreSettings:
    """Settings used to open a store."""

    db_path: str = DEFAULT_DB_PATH
    retention_limit: int = DEFAULT_RETENTION
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "StoreSettings":
        """Read settings from environment variables.

        Raises:
            ValueError: If SENSORS_DB_RETENTION is not an integer
        """
        raw_retention = os.getenv("SENSORS_DB_RETENTION", str(DEFAULT_RETENTION))
        try:
            retention = int(raw_retention)
        except ValueError:
            raise ValueError(
                f"SENSORS_DB_RETENTION must be an integer, got '{raw_retention}'"
            ) from None

        return cls(
            db_path=os.getenv("SENSORS_DB_PATH", DEFAULT_DB_PATH),
            retention_limit=retention,
            log_level=os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL),
        )


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging. Unknown level names fall back to INFO."""
    if level is None:
        level = os.getenv("LOG_LEVEL", DEFAULT_LOG_LEVEL)
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def open_from_settings(settings: StoreSettings, role: Union[Role, str]) -> SampleStore:
    """Open a store using the path and retention limit from settings."""
    return open_store(settings.db_path, role, settings.retention_limit)
