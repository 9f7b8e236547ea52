import numpy as np
import pytest
import requests

from boptest_api import CachedPlant, NetworkError

N = 24


@pytest.fixture
def cached(plant):
    return CachedPlant(plant, N)


def test_initial_tables(cached):
    assert len(cached.forecasts) == N + 1
    assert len(cached.measurements) == 1
    assert cached.measurements["time"].iloc[0] == 0
    assert len(cached.inputs) == 0
    assert list(cached.inputs.columns) == ["time"] + cached.input_points["Name"].tolist()


def test_advance_rolls_forecast_window(cached, server):
    for k in range(1, 6):
        cached.advance({})
        assert len(cached.forecasts) == N + 1
        assert cached.forecasts["time"].iloc[0] == k * 300
        assert cached.forecasts["time"].iloc[-1] == (k + N) * 300
    assert cached.forecasts["time"].is_unique


def test_measurements_and_inputs_grow_one_row_per_step(cached):
    cached.advance({"oveTSetHea_u": 293.15, "oveTSetHea_activate": 1})
    cached.advance({})
    assert len(cached.measurements) == 3
    assert cached.measurements["time"].tolist() == [0, 300, 600]
    assert len(cached.inputs) == 2

    first = cached.inputs.iloc[0]
    assert first["time"] == 0
    assert first["oveTSetHea_u"] == 293.15
    assert first["oveTSetHea_activate"] == 1
    assert np.isnan(first["ovePum_u"])
    assert cached.inputs.iloc[1][["oveTSetHea_u", "ovePum_activate"]].isna().all()


def test_initialize_resets_tables(cached):
    for _ in range(3):
        cached.advance({})
    cached.initialize(start_time=0, warmup_period=0)
    assert len(cached.forecasts) == N + 1
    assert len(cached.measurements) == 1
    assert len(cached.inputs) == 0
    cached.advance({})
    assert len(cached.forecasts) == N + 1
    assert len(cached.measurements) == 2


def test_forecast_rows_survive_any_sequence(cached):
    for op in ["advance", "advance", "initialize", "advance", "initialize", "initialize", "advance"]:
        getattr(cached, op)()
        assert len(cached.forecasts) == N + 1


def test_history_is_not_refetched(cached, server):
    n_results = server.count("results")
    for _ in range(4):
        cached.advance({})
    assert server.count("results") == n_results


def test_other_calls_reach_the_client(cached, server):
    cached.advance({})
    assert cached.get_kpi()["ener_tot"] == pytest.approx(0.05)
    assert cached.testid == server.testid
    cached.stop()
    assert server.stopped


def test_horizon_must_be_positive(plant):
    with pytest.raises(ValueError):
        CachedPlant(plant, 0)


def test_failed_forecast_refetch_keeps_the_step(cached, server):
    cached.advance({"ovePum_u": 0.5, "ovePum_activate": 1})
    server.faults["forecast"] = [requests.ConnectionError("reset")]
    with pytest.raises(NetworkError):
        cached.advance({})
    # the server stepped, so the history has that step
    assert cached.measurements["time"].tolist() == [0, 300, 600]
    assert len(cached.inputs) == 2
    assert cached.inputs["time"].tolist() == [0, 300]

    cached.advance({})
    assert cached.measurements["time"].tolist() == [0, 300, 600, 900]
    assert len(cached.inputs) == 3
    assert len(cached.forecasts) == N + 1
    assert cached.forecasts["time"].iloc[0] == 900
    assert (np.diff(cached.forecasts["time"].to_numpy()) == 300).all()


def test_scenario_time_period_rebuilds_tables(cached, server):
    cached.advance({})
    cached.set_scenario(time_period="peak_heat_day")
    assert cached.time == server.time
    assert cached.forecasts["time"].iloc[0] == server.time
    assert len(cached.forecasts) == N + 1
    assert cached.measurements["time"].tolist() == [server.time]
    assert len(cached.inputs) == 0

    cached.advance({})
    assert len(cached.forecasts) == N + 1
    assert (np.diff(cached.forecasts["time"].to_numpy()) == 300).all()
    assert len(cached.measurements) == 2
    assert len(cached.inputs) == 1


def test_scenario_price_keeps_tables(cached):
    cached.advance({})
    cached.set_scenario(electricity_price="dynamic")
    assert len(cached.measurements) == 2
    assert len(cached.inputs) == 1
