from datetime import datetime, timedelta

import pandas as pd

# BOPTEST time is seconds since midnight of January 1st of the weather year
DEFAULT_BASE_DATE = datetime(2023, 1, 1, 0, 0, 0)


def seconds_to_datetime(seconds: float, base_date: datetime = DEFAULT_BASE_DATE) -> datetime:
    """Convert simulation seconds to a calendar datetime.

    Example:
        >>> seconds_to_datetime(86400)
        datetime.datetime(2023, 1, 2, 0, 0)
    """
    return base_date + timedelta(seconds=float(seconds))


def add_datetime_column(
        data: pd.DataFrame,
        base_date: datetime = DEFAULT_BASE_DATE,
        column: str = "datetime",
    ) -> pd.DataFrame:
    """Return a copy of ``data`` with a datetime column derived from ``time``."""
    data = data.copy()
    data[column] = data["time"].apply(seconds_to_datetime, base_date=base_date)
    return data
