"""
A BOPTEST session that mirrors forecasts, measurements and sent inputs locally.

Instead of querying the history after every step, the tables are updated
incrementally from what ``advance`` returns:

* ``forecasts`` always holds ``horizon_steps + 1`` rows starting at the
  current time,
* ``measurements`` starts with the snapshot at the initial time and gets one
  row per step,
* ``inputs`` gets one row per step with the control inputs that were sent,
  ``NaN`` for the signals that were not.
"""
import logging
from typing import Dict, Optional

import numpy as np
import pandas as pd

from boptest_api.boptest_suite import BOPTESTClient

logger = logging.getLogger(__name__)


def _append_row(data: pd.DataFrame, row: Dict) -> pd.DataFrame:
    row = {col: np.nan if row.get(col) is None else row[col] for col in data.columns}
    new = pd.DataFrame([row], columns=data.columns).astype(data.dtypes.to_dict())
    if data.empty:
        return new
    return pd.concat([data, new], ignore_index=True)


class CachedPlant:
    """
    Wrap a ``BOPTESTClient`` and keep rolling local copies of its data.

    Parameters
    ----------
    client : BOPTESTClient
        An initialized session with a step and loaded points.

    horizon_steps : int
        Number of control steps covered by the forecast table.

    Any attribute not defined here (``get_kpi``, ``stop``, ``input_points``...)
    is looked up on the wrapped client.
    """

    def __init__(self, client: BOPTESTClient, horizon_steps: int):
        if horizon_steps < 1:
            raise ValueError("horizon_steps must be at least 1")
        self.client = client
        self.horizon_steps = horizon_steps
        if client.input_points is None:
            client.load_points()
        self._build()

    def __getattr__(self, name):
        # only called when normal lookup fails
        if name == "client":
            raise AttributeError(name)
        return getattr(self.client, name)

    def __repr__(self):
        return f"CachedPlant({self.client!r}, horizon_steps={self.horizon_steps})"

    @property
    def horizon(self) -> float:
        return self.horizon_steps * self.client.step

    def _fetch_forecasts(self) -> pd.DataFrame:
        return self.client.get_forecasts(self.horizon, self.client.step)

    def _build(self) -> None:
        now = self.client.time if self.client.time is not None else 0.0
        self.forecasts = self._fetch_forecasts().reset_index(drop=True)
        self._forecasts_stale = False
        self.measurements = self.client.get_measurements(now, now)
        input_names = self.client.input_points["Name"].tolist()
        self.inputs = pd.DataFrame(
            {col: pd.Series(dtype="float64") for col in ["time"] + input_names}
        )
        logger.debug(
            "Built local tables at t=%s: %d forecast rows, %d measurement rows",
            now, len(self.forecasts), len(self.measurements)
        )

    def initialize(self, **init_vals) -> Dict:
        """Re-initialize the simulation and rebuild the local tables."""
        payload = self.client.initialize(**init_vals)
        self._build()
        return payload

    def advance(self, u: Optional[Dict] = None, timeout: Optional[float] = None) -> Dict:
        """Step the plant and update the local tables."""
        u = u or {}
        applied_at = self.client.time
        y = self.client.advance(u, timeout=timeout)

        # The server has stepped: record the step before anything else can fail
        self.measurements = _append_row(self.measurements, y)
        unknown = set(u) - set(self.inputs.columns)
        if unknown:
            logger.warning("Inputs not declared by the test case are not recorded: %s", sorted(unknown))
        self.inputs = _append_row(self.inputs, {**u, "time": applied_at})

        self._update_forecasts()
        return y

    def _update_forecasts(self) -> None:
        # A failed refetch leaves the window behind, so the next update
        # replaces it instead of rolling it
        stale = self._forecasts_stale
        self._forecasts_stale = True
        fresh = self._fetch_forecasts().reset_index(drop=True)
        if stale:
            logger.info("Refetching the whole forecast window at t=%s", self.client.time)
            self.forecasts = fresh
        else:
            self.forecasts = pd.concat(
                [self.forecasts.iloc[1:], fresh.iloc[[-1]].reindex(columns=self.forecasts.columns)],
                ignore_index=True,
            )
        self._forecasts_stale = False

    def set_scenario(self, scenario: Optional[Dict] = None, **kwargs) -> Dict:
        """Set the scenario; rebuild the local tables if the simulation was re-initialized."""
        before = self.client.time
        confirmed = self.client.set_scenario(scenario, **kwargs)
        reinitialized = kwargs.get("time_period") or (scenario or {}).get("time_period")
        if reinitialized or self.client.time != before:
            self._build()
        return confirmed
