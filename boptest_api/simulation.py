"""Open-loop simulation on top of a BOPTEST session."""
import logging
from typing import Dict, Optional, Sequence, Union

import pandas as pd

logger = logging.getLogger(__name__)


def open_loop_sim(
        client,
        n_steps: int,
        u: Union[Dict, Sequence[Dict], None] = None,
        include_forecast: bool = False,
        print_every: int = 0,
        prog_bar=None,
    ) -> pd.DataFrame:
    """
    Run the plant in open loop for ``n_steps`` control steps.

    Args:
        client: An initialized ``BOPTESTClient`` (or ``CachedPlant``).
        n_steps: Number of steps.
        u: Control inputs. A sequence of dicts gives the input of each step,
            a single dict is applied at every step, and ``None`` or ``{}``
            keeps the baseline control for all signals.
        include_forecast: Add the forecast points as extra columns.
        print_every: Log progress every ``print_every`` steps, 0 disables.
        prog_bar: Optional progress bar with an ``update(subtitle=...)`` method.

    Returns:
        pd.DataFrame: ``n_steps + 1`` rows of measurements, the first one at
        the current time.
    """
    if u is None or isinstance(u, dict):
        u = [u or {}] * n_steps
    if len(u) < n_steps:
        raise ValueError(f"Need at least {n_steps} control input entries, got {len(u)}")

    start = client.time if client.time is not None else 0.0
    points = client.measurement_points["Name"].tolist()
    rows = client.get_measurements(start, start, points).to_dict(orient="records")[:1]

    forecast = None
    if include_forecast:
        step = client.step if client.step is not None else client.get_step()
        # forecast from the initial time, before stepping
        forecast = client.get_forecasts(n_steps * step, step)

    if print_every > 0:
        logger.info("Starting open-loop simulation")
    for i in range(n_steps):
        if print_every > 0 and (i + 1) % print_every == 0:
            logger.info("Current time step = %d", i + 1)
        y = client.advance(u[i])
        rows.append({name: y.get(name) for name in ["time"] + points})
        if prog_bar is not None:
            prog_bar.update(subtitle=f"Current step time: {y.get('time')}")

    results = pd.DataFrame(rows, columns=["time"] + points).astype("float64")

    if forecast is not None:
        forecast["time"] = forecast["time"].astype("float64")
        results = results.merge(forecast, on="time", how="left")
    return results
