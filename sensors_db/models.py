"""Data models for the sensor sample store."""

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Optional

# Usable characters of a stored timestamp; longer values are cut on read
TIMESTAMP_MAX_LEN = 31


class Role(Enum):
    """Access role a store is opened with."""

    PRODUCER = "producer"
    CONSUMER = "consumer"


@dataclass(frozen=True)
class Sample:
    """One row of the SensorData table.

    Attributes:
        id: Row id assigned by SQLite on insert (strictly increasing, never reused).
        timestamp: Insert time recorded by SQLite ("YYYY-MM-DD HH:MM:SS", UTC).
        bmp280_temperature: BMP280 temperature in Celsius.
        bmp280_pressure: BMP280 barometric pressure.
        htu21d_temperature: HTU21D temperature in Celsius.
        htu21d_humidity: HTU21D relative humidity in percent.
    """

    id: int
    timestamp: str
    bmp280_temperature: Optional[float]
    bmp280_pressure: Optional[float]
    htu21d_temperature: Optional[float]
    htu21d_humidity: Optional[float]

    @classmethod
    def from_row(cls, row: tuple) -> "Sample":
        """Build a Sample from a (id, timestamp, t1, p, t2, h) result row.

        The timestamp is truncated to TIMESTAMP_MAX_LEN characters; NULL becomes "".
        """
        row_id, timestamp, t1, p, t2, h = row
        text = "" if timestamp is None else str(timestamp)
        return cls(
            id=int(row_id),
            timestamp=text[:TIMESTAMP_MAX_LEN],
            bmp280_temperature=_as_float(t1),
            bmp280_pressure=_as_float(p),
            htu21d_temperature=_as_float(t2),
            htu21d_humidity=_as_float(h),
        )

    def to_row(self) -> Dict[str, Any]:
        """Return the sample as a dict keyed by column name."""
        return asdict(self)


def _as_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)
