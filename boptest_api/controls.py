"""Helpers to build BOPTEST control inputs and unpack plant outputs."""
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Sequence

import numpy as np
import pandas as pd


@dataclass(frozen=True)
class SignalTransform:
    """
    Bundle information for transforming data to and from BOPTEST.

    Attributes:
        names: Signal names. Leave out the ``_u`` and ``_activate``
            suffixes for control signals.
        transform: Function to transform between BOPTEST and controller units.
    """
    names: Sequence[str]
    transform: Callable = lambda x: x


def signal_control_inputs(
        transformer: SignalTransform,
        u: Sequence[float],
        overwrite: Sequence[int],
    ) -> Dict[str, float]:
    """
    Return the control inputs dict for BOPTEST.

    ``transformer.transform`` is applied to ``u``, then two entries are
    created per signal name: ``"<name>_u"`` with the value and
    ``"<name>_activate"`` with the overwrite flag.
    """
    if len(u) != len(transformer.names) or len(overwrite) != len(transformer.names):
        raise ValueError(
            f"Expected {len(transformer.names)} values and overwrite flags, "
            f"got {len(u)} and {len(overwrite)}"
        )
    u = transformer.transform(np.asarray(u, dtype=float))
    inputs = {}
    for i, name in enumerate(transformer.names):
        inputs[f"{name}_u"] = float(u[i])
        inputs[f"{name}_activate"] = int(overwrite[i])
    return inputs


def _minimum(u_points: pd.DataFrame):
    return u_points["Minimum"]


def control_inputs(client, default: Optional[Callable[[pd.DataFrame], Sequence]] = None) -> Dict:
    """
    Return a dict overriding every control input of the test case.

    Every ``*_activate`` input is set to 1 and every ``*_u`` input gets the
    value computed by ``default``, which receives the ``*_u`` rows of the
    input point descriptors (columns Name, Unit, Description, Minimum,
    Maximum). By default the minimum allowed value is used.
    """
    default = default or _minimum
    inputs = client.input_points
    if inputs is None:
        inputs = client.get_input_points()

    names = inputs["Name"]
    activate_points = inputs[names.str.endswith("_activate")]
    u_points = inputs[names.str.endswith("_u")].reset_index(drop=True)

    u = {name: 1 for name in activate_points["Name"]}
    values = list(default(u_points))
    if len(values) != len(u_points):
        raise ValueError(f"default returned {len(values)} values for {len(u_points)} inputs")
    for name, value in zip(u_points["Name"], values):
        u[name] = None if pd.isna(value) else value
    return u


def plant_outputs(transformer: SignalTransform, data: Mapping) -> np.ndarray:
    """
    Return the transformed outputs as a matrix.

    Each row is one signal of ``transformer.names``; columns hold the
    samples, so a scalar snapshot from ``advance`` gives a single column.
    """
    n_samples = len(np.atleast_1d(data[transformer.names[0]]))
    x = np.zeros((len(transformer.names), n_samples))
    for i, name in enumerate(transformer.names):
        x[i, :] = np.atleast_1d(data[name])
    return transformer.transform(x)
