"""Unit conversion and plots for simulation results."""
from typing import Iterable, List, Optional

import matplotlib.pyplot as plt
import pandas as pd


def convert_temperature_value(temperature: float, temp_unit: str = 'C') -> float:
    """Convert temperature value from Kelvin to ``temp_unit`` ('C', 'F' or 'K')."""
    if temp_unit == 'C':
        return temperature - 273.15
    elif temp_unit == 'F':
        return (temperature - 273.15) * 9/5 + 32
    elif temp_unit == 'K':
        return temperature
    raise ValueError(f"Unknown temperature unit '{temp_unit}'")


def kelvin_points(*point_tables: pd.DataFrame) -> List[str]:
    """Names of the points whose unit is Kelvin."""
    names = []
    for table in point_tables:
        # Unit can be pd.NA
        names += [
            name for name, unit in zip(table["Name"], table["Unit"])
            if isinstance(unit, str) and unit == "K"
        ]
    return names


def convert_temperature_variables(
        sim_results: pd.DataFrame,
        temp_variables: Iterable[str],
        temp_unit: str = 'C',
    ) -> pd.DataFrame:
    """Return a copy of ``sim_results`` with the Kelvin columns converted."""
    sim_results = sim_results.copy()
    for temp_var in temp_variables:
        if temp_var in sim_results.columns:
            sim_results[temp_var] = sim_results[temp_var].apply(convert_temperature_value, temp_unit=temp_unit)
    return sim_results


def plot_simulation_results(
        results: pd.DataFrame,
        temp_y1_vars: Optional[List[str]] = None,
        temp_y2_vars: Optional[List[str]] = None,
        power_vars: Optional[List[str]] = None,
        control_vars: Optional[List[str]] = None,
        temp_unit: str = 'K',
        x: str = "time",
    ):
    """
    Plot simulation results

    Args:
        results: Time series, e.g. from ``open_loop_sim`` or ``get_measurements``.
        temp_y1_vars: List of temperature variables to plot on y1 axis.
        temp_y2_vars: List of temperature variables to plot on y2 axis.
        power_vars: List of power variables to plot.
        control_vars: List of control variables to plot.
        temp_unit: Unit the temperatures are in, used for the labels.
        x: Column used as x axis, ``time`` or a datetime column.

    Returns:
        fig: matplotlib figure object.
    """
    fig, ax = plt.subplots(3, 1, figsize=(15, 15), sharex=True)

    ax_0_0 = ax[0].twinx()

    for temp_var in temp_y1_vars or []:
        ax[0].plot(results[x], results[temp_var], label=temp_var)
    ax[0].set_ylabel(f"Temperature ({temp_unit})")
    ax[0].set_title("Temperature Variables")
    if temp_y1_vars:
        ax[0].legend(loc=(1.1, 0))

    for temp_var in temp_y2_vars or []:
        ax_0_0.plot(results[x], results[temp_var], label=temp_var, color='r')
    ax_0_0.set_ylabel(f"Temperature ({temp_unit})", color='r')
    if temp_y2_vars:
        ax_0_0.legend(loc=(1.1, 0.5))

    for power_var in power_vars or []:
        ax[1].plot(results[x], results[power_var], label=power_var)
    ax[1].set_ylabel("Power (W)")
    ax[1].set_title("Power Variables")
    if power_vars:
        ax[1].legend(loc=(1.1, 0))

    for control_var in control_vars or []:
        ax[2].plot(results[x], results[control_var], label=control_var)
    ax[2].set_ylabel("Control Value")
    ax[2].set_title("Control Variables")
    if control_vars:
        ax[2].legend(loc=(1.1, 0))

    ax[2].set_xlabel("Time [s]" if x == "time" else "Time")

    ax[2].xaxis.set_major_locator(plt.MaxNLocator(10))
    plt.setp(ax[2].xaxis.get_majorticklabels(), rotation=45)

    return fig
