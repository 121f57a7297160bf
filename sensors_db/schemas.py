"""Column schema and DataFrame view of stored samples.

Reporting code that wants tabular data (plots, dashboards) converts the
result of read_n() here instead of querying SQLite directly.
"""

from typing import Any, Dict, Iterable

import pandas as pd

from sensors_db.models import Sample

# DataFrame schema: SensorData column names and their dtypes, in table order
SCHEMA = {
    "id": int,
    "timestamp": str,  # SQLite CURRENT_TIMESTAMP text, UTC
    "bmp280_temperature": float,
    "bmp280_pressure": float,
    "htu21d_temperature": float,
    "htu21d_humidity": float,
}


def sample_to_row(sample: Sample) -> Dict[str, Any]:
    """Convert a Sample to a row dictionary with all SCHEMA keys.

    Missing measurements stay None, which become NaN in pandas.
    """
    row = sample.to_row()
    return {column: row[column] for column in SCHEMA}


def samples_to_dataframe(samples: Iterable[Sample]) -> pd.DataFrame:
    """Build a DataFrame from samples, preserving their order.

    Args:
        samples: Samples, e.g. the newest-first list returned by read_n()

    Returns:
        DataFrame with exactly the SCHEMA columns (empty if no samples)
    """
    rows = [sample_to_row(s) for s in samples]
    return pd.DataFrame(rows, columns=list(SCHEMA.keys()))
