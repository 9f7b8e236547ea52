"""
Time series retrieval from the BOPTEST ``/results`` and ``/forecast`` services.

The server caps the number of points it returns per request, so long
measurement histories are fetched in several windows and stitched back
together into one table ordered by ``time``.
"""
import logging
import math
import warnings
from typing import Dict, List, Sequence, Tuple

import numpy as np
import pandas as pd

from boptest_api.config import DEFAULT_BATCH_TARGET_POINTS, MAX_NATIVE_STEP
from boptest_api.exceptions import DataShapeError, TypeCoercionWarning

logger = logging.getLogger(__name__)


def batch_windows(
        start_time: float,
        final_time: float,
        step: float,
        n_points: int,
        batch_target_points: int = DEFAULT_BATCH_TARGET_POINTS,
    ) -> List[Tuple[float, float]]:
    """
    Split ``[start_time, final_time]`` into request windows.

    Each window covers at most ``batch_target_points // n_points`` samples
    spaced ``min(step, 30)`` seconds apart. Consecutive windows share their
    boundary, the last one always ends exactly at ``final_time``, and a
    zero-length range gives a single ``(start_time, start_time)`` window.

    Example:
        >>> batch_windows(0, 1000, 3600, 2, batch_target_points=20)
        [(0.0, 300.0), (300.0, 600.0), (600.0, 900.0), (900.0, 1000.0)]
    """
    if final_time < start_time:
        raise ValueError(f"final_time ({final_time}) is before start_time ({start_time})")
    if n_points < 1:
        raise ValueError("At least one point name is required")

    start_time = float(start_time)
    final_time = float(final_time)
    if final_time == start_time:
        return [(start_time, final_time)]

    samples_per_batch = max(1, batch_target_points // n_points)
    sample_step = min(float(step), MAX_NATIVE_STEP) if step else MAX_NATIVE_STEP
    span = samples_per_batch * sample_step

    n_windows = math.ceil((final_time - start_time) / span)
    edges = [start_time + i * span for i in range(n_windows)] + [final_time]
    return list(zip(edges[:-1], edges[1:]))


def payload_to_frame(payload: Dict, point_names: Sequence[str]) -> pd.DataFrame:
    """Turn a ``{"time": [...], name: [...]}`` payload into a DataFrame.

    Requested points the server did not return are left out rather than
    filled, so that stitching keeps only the columns every batch has.
    """
    if not isinstance(payload, dict) or "time" not in payload:
        raise DataShapeError("Time series payload has no 'time' entry")

    data = {"time": np.atleast_1d(payload["time"])}
    for name in point_names:
        if name == "time":
            continue
        if name not in payload:
            logger.debug("Point %s missing from response", name)
            continue
        data[name] = np.atleast_1d(np.asarray(payload[name], dtype=object))
    try:
        return pd.DataFrame(data)
    except ValueError as e:
        raise DataShapeError(f"Time series payload has ragged columns: {e}") from e


def stitch_batches(frames: Sequence[pd.DataFrame]) -> pd.DataFrame:
    """Concatenate batches, keep shared columns and drop repeated timestamps."""
    if not frames:
        raise ValueError("No batches to stitch")
    data = pd.concat(frames, join="inner", ignore_index=True)
    data = data.drop_duplicates(subset="time", keep="first")
    data = data.sort_values("time", kind="stable")
    return data.reset_index(drop=True)


def coerce_float(data: pd.DataFrame) -> pd.DataFrame:
    """Convert every non-time column to float64 where possible.

    Columns that cannot be converted are kept as they are and reported with
    a ``TypeCoercionWarning``.
    """
    data = data.copy()
    for col in data.columns:
        if col == "time":
            data[col] = pd.to_numeric(data[col], errors="coerce").astype("float64")
            continue
        try:
            data[col] = pd.to_numeric(data[col], errors="raise").astype("float64")
        except (ValueError, TypeError) as e:
            msg = f"Could not convert column '{col}' to float: {e}"
            logger.warning(msg)
            warnings.warn(msg, TypeCoercionWarning, stacklevel=2)
    return data


def fetch_series(
        client,
        points: Sequence[str],
        start_time: float,
        final_time: float,
        batch_target_points: int = DEFAULT_BATCH_TARGET_POINTS,
        convert_f64: bool = True,
    ) -> pd.DataFrame:
    """
    Query measurements for ``points`` over ``[start_time, final_time]``.

    Args:
        client: A ``BOPTESTClient`` (anything with ``get_results`` and ``step``).
        points: Measurement point names.
        start_time: Start of the window in seconds.
        final_time: End of the window in seconds.
        batch_target_points: Approximate number of values per request.
        convert_f64: Convert the columns to float64.

    Returns:
        pd.DataFrame: One row per timestamp, ``time`` first.
    """
    points = [p for p in points if p != "time"]
    windows = batch_windows(start_time, final_time, client.step, len(points), batch_target_points)
    if len(windows) > 1:
        logger.info(
            "Fetching %d points over [%s, %s] in %d batches",
            len(points), start_time, final_time, len(windows)
        )
    frames = [client.get_results(points, start, final) for start, final in windows]
    data = stitch_batches(frames)
    return coerce_float(data) if convert_f64 else data
